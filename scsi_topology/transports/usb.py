"""USB mass storage transport"""

from typing import Optional

from ..models import AddressTuple, TransportInfo, TransportKind
from .base import BaseTransport


def usb_device_name(resolved_path: str) -> Optional[str]:
    """Extract the USB interface name from a resolved sysfs path

    For ".../usb2/2-1/2-1:1.0/host6/scsi_host/host6" this is "2-1:1.0".

    Returns:
        Interface name ("" when no host component follows it), None when the
        path is not below a USB controller
    """
    if "usb" not in resolved_path:
        return None
    index = resolved_path.find("/host")
    if index <= 0:
        return ""
    return resolved_path[:index].rsplit("/", 1)[-1]


class UsbTransport(BaseTransport):

    @property
    def transport_kind(self) -> TransportKind:
        return TransportKind.USB

    def _probe(self, class_name: str, name: str) -> Optional[TransportInfo]:
        resolved = self.sysfs.realpath(self.sysfs.class_path(class_name, name))
        if resolved is None:
            return None
        device_name = usb_device_name(resolved)
        if device_name is None:
            return None
        return self._info(f"usb:{device_name}", {"device_name": device_name})

    def probe_host(self, host_name: str) -> Optional[TransportInfo]:
        return self._probe("scsi_host", host_name)

    def probe_device(self, address: AddressTuple, devname: str) -> Optional[TransportInfo]:
        return self._probe("scsi_device", devname)
