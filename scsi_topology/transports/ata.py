"""ATA and SATA transports, guessed from the host driver name"""

import logging
from typing import Optional

from ..models import AddressTuple, TransportInfo, TransportKind
from ..sysfs import SysfsReader
from ..vpd import VpdReader
from .base import BaseTransport


def ata_kind(proc_name: Optional[str]) -> Optional[TransportKind]:
    """Classify a SCSI host driver name as SATA, ATA or neither"""
    if not proc_name:
        return None
    if proc_name == "ahci" or proc_name.startswith("sata"):
        return TransportKind.SATA
    if "ata" in proc_name:
        return TransportKind.ATA
    return None


class AtaTransport(BaseTransport):
    """libata hosts; the device summary carries the logical unit name"""

    def __init__(self, sysfs: SysfsReader, vpd_reader: Optional[VpdReader] = None,
                 logger: Optional[logging.Logger] = None):
        super().__init__(sysfs, logger=logger)
        self.vpd_reader = vpd_reader or VpdReader(sysfs, logger=self.logger)

    @property
    def transport_kind(self) -> TransportKind:
        return TransportKind.ATA

    def _kind(self, host_name: str) -> Optional[TransportKind]:
        return ata_kind(self.sysfs.read(self._host_dir("scsi_host", host_name), "proc_name"))

    def probe_host(self, host_name: str) -> Optional[TransportInfo]:
        kind = self._kind(host_name)
        if kind is None:
            return None
        return self._info(f"{kind.value}:", kind=kind)

    def probe_device(self, address: AddressTuple, devname: str) -> Optional[TransportInfo]:
        kind = self._kind(self._host_name(address))
        if kind is None:
            return None
        identity = self.vpd_reader.lu_identity(devname, want_prefix=False)
        lu_name = str(identity) if identity else ""
        return self._info(f"{kind.value}:{lu_name}", kind=kind)
