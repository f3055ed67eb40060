"""IEEE 1394 (FireWire) Serial Bus Protocol transport"""

import os
from typing import Optional

from ..models import AddressTuple, TransportInfo, TransportKind
from .base import BaseTransport


class SbpTransport(BaseTransport):
    """FireWire storage, found through a fw-host ancestor of the SCSI host"""

    @property
    def transport_kind(self) -> TransportKind:
        return TransportKind.SBP

    def probe_host(self, host_name: str) -> Optional[TransportInfo]:
        host_dir = self._host_dir("scsi_host", host_name)
        link = self.sysfs.readlink(os.path.join(host_dir, "device"))
        if not link:
            return None

        marker = link.find("/fw-host")
        if marker < 0:
            return None
        end = link.find("/", marker + 1)
        if end < 0:
            return None

        fw_host_dir = os.path.join(host_dir, link[:end])
        guid = self.sysfs.read(fw_host_dir, "host_id/guid")
        # "0x" followed by the 16 hex digit EUI-64
        if guid is None or len(guid) != 18:
            self.logger.debug(f"{host_name}: unusable FireWire host guid {guid!r}")
            return None
        return self._info(f"sbp:{guid[2:]}", {"guid": guid})

    def probe_device(self, address: AddressTuple, devname: str) -> Optional[TransportInfo]:
        ieee1394_id = self.sysfs.read(self.sysfs.path("bus", "scsi", "devices", devname), "ieee1394_id")
        if ieee1394_id is None:
            return None
        return self._info(f"sbp:{ieee1394_id}:", {"ieee1394_id": ieee1394_id})
