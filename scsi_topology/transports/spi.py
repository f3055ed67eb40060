"""SCSI Parallel Interface transport"""

from typing import Optional

from ..models import AddressTuple, TransportInfo, TransportKind
from .base import BaseTransport

SPI_TARGET_ATTRS = ("dt", "max_offset", "max_width", "min_period", "offset", "period", "width")


class SpiTransport(BaseTransport):
    """Parallel SCSI, recognised by the spi_host class entry of the host"""

    @property
    def transport_kind(self) -> TransportKind:
        return TransportKind.SPI

    def probe_host(self, host_name: str) -> Optional[TransportInfo]:
        host_dir = self._host_dir("spi_host", host_name)
        if not self.sysfs.is_dir(host_dir):
            return None
        return self._info("spi:", self._read_attributes(host_dir, ("signalling",)))

    def probe_device(self, address: AddressTuple, devname: str) -> Optional[TransportInfo]:
        if not self._has_class_entry("spi_host", self._host_name(address)):
            return None
        attributes = {"target_id": str(address.target)}
        target_dir = self.sysfs.class_path("spi_transport", self._target_name(address))
        attributes.update(self._read_attributes(target_dir, SPI_TARGET_ATTRS))
        return self._info(f"spi:{address.target}", attributes)
