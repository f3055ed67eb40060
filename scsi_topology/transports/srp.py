"""SCSI RDMA Protocol (InfiniBand) transport"""

from typing import Dict, Optional

from ..models import AddressTuple, TransportInfo, TransportKind
from .base import BaseTransport

# Length of the "fe80:0000:0000:0000:" subnet prefix of a GID
GID_PREFIX_LEN = 20


class SrpTransport(BaseTransport):
    """SRP initiator, identified by the GUID part of its InfiniBand port GID"""

    @property
    def transport_kind(self) -> TransportKind:
        return TransportKind.SRP

    def local_gid(self, host_name: str) -> str:
        """GUID of the local InfiniBand port used by a SCSI host, "" if unknown"""
        host_dir = self._host_dir("scsi_host", host_name)
        port = self.sysfs.read_int(host_dir, "local_ib_port")
        device = self.sysfs.read(host_dir, "local_ib_device")
        if port is None or not device:
            return ""
        gid = self.sysfs.read(self.sysfs.class_path("infiniband", device, "ports", str(port), "gids"), "0")
        if gid and len(gid) > GID_PREFIX_LEN:
            return gid[GID_PREFIX_LEN:]
        return ""

    def _remote_gids(self, host_name: str) -> Dict[str, str]:
        host_dir = self._host_dir("scsi_host", host_name)
        gids = {}
        for name in ("orig_dgid", "dgid"):
            value = self.sysfs.read(host_dir, name)
            if value and len(value) > GID_PREFIX_LEN:
                gids[name] = value[GID_PREFIX_LEN:]
        return gids

    def _probe(self, host_name: str) -> Optional[TransportInfo]:
        if not self._has_class_entry("srp_host", host_name):
            return None
        return self._info(f"srp:{self.local_gid(host_name)}", self._remote_gids(host_name))

    def probe_host(self, host_name: str) -> Optional[TransportInfo]:
        return self._probe(host_name)

    def probe_device(self, address: AddressTuple, devname: str) -> Optional[TransportInfo]:
        return self._probe(self._host_name(address))
