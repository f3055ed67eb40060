"""NVMe controller transports (PCIe and fabrics)"""

import os
from typing import Optional

from ..models import TransportInfo, TransportKind
from .base import BaseTransport

PCIE_LINK_ATTRS = ("current_link_speed", "current_link_width",
                   "max_link_speed", "max_link_width")


class NvmeTransport(BaseTransport):
    """Transport of an NVMe controller, from its 'transport' attribute"""

    @property
    def transport_kind(self) -> TransportKind:
        return TransportKind.PCIE

    def probe_controller(self, controller_dir: str) -> Optional[TransportInfo]:
        """Classify an NVMe controller

        Args:
            controller_dir: Controller directory, e.g. /sys/class/nvme/nvme0

        Returns:
            TransportInfo, None when the controller reports no transport
        """
        transport = self.sysfs.read(controller_dir, "transport")
        if transport is None:
            return None
        transport = transport.strip()

        if transport == "pcie":
            device_dir = os.path.join(controller_dir, "device")
            vendor = self.sysfs.read(device_dir, "subsystem_vendor") or "?"
            device = self.sysfs.read(device_dir, "subsystem_device") or "?"
            attributes = {"subsystem_vendor": vendor, "subsystem_device": device}
            attributes.update(self._read_attributes(device_dir, PCIE_LINK_ATTRS))
            return self._info(f"pcie {vendor}:{device}", attributes)

        attributes = {"transport": transport}
        address = self.sysfs.read(controller_dir, "address")
        if address:
            attributes["address"] = address
        summary = f"{transport}:{address}" if address else f"{transport}:"
        return self._info(summary, attributes, kind=TransportKind.NVME_FABRICS)
