"""Serial Attached SCSI transports"""

import os
from typing import Dict, List, Optional

from ..models import AddressTuple, TransportInfo, TransportKind
from .base import BaseTransport

NULL_SAS_ADDRESS = "0x0000000000000000"

SAS_PHY_ATTRS = (
    "device_type", "initiator_port_protocols", "invalid_dword_count",
    "loss_of_dword_sync_count", "minimum_linkrate", "minimum_linkrate_hw",
    "maximum_linkrate", "maximum_linkrate_hw", "negotiated_linkrate",
    "phy_identifier", "phy_reset_problem_count",
    "running_disparity_error_count", "sas_address", "target_port_protocols",
)

SAS_DEVICE_ATTRS = (
    "bay_identifier", "enclosure_identifier", "initiator_port_protocols",
    "phy_identifier", "sas_address", "scsi_target_id", "target_port_protocols",
)

SAS_END_DEVICE_ATTRS = (
    "initiator_response_timeout", "I_T_nexus_loss_timeout",
    "ready_led_meaning", "tlr_enabled", "tlr_supported",
)

SAS_HA_ATTRS = ("device_name", "ha_name", "version_descriptor")
SAS_HA_PHY_ATTRS = ("class", "enabled", "id", "iproto", "linkrate", "oob_mode",
                    "role", "sas_addr", "tproto", "type")
SAS_CLASS_DEVICE_ATTRS = (
    "device_name", "dev_type", "iproto", "iresp_timeout", "itnl_timeout",
    "linkrate", "max_linkrate", "max_pathways", "min_linkrate", "pathways",
    "ready_led_meaning", "rl_wlun", "sas_addr", "tproto",
    "transport_layer_retries",
)


def _phy_number(name: str) -> int:
    _, sep, number = name.rpartition(":")
    if sep and number.isdigit():
        return int(number)
    return -1


def lowest_phy(names: List[str]) -> Optional[str]:
    """Pick the phy entry with the lowest number after its last ':'

    Args:
        names: Directory entry names

    Returns:
        Name of the lowest numbered "phy*" entry, None when there is none
    """
    phys = [n for n in names if n.startswith("phy")]
    if not phys:
        return None
    numbered = [n for n in phys if _phy_number(n) >= 0]
    if not numbered:
        return phys[0]
    return min(numbered, key=_phy_number)


class SasTransport(BaseTransport):
    """SAS transport layer (sas_host, sas_phy, sas_port, sas_device classes)"""

    @property
    def transport_kind(self) -> TransportKind:
        return TransportKind.SAS

    def _host_entries(self, host_name: str) -> List[str]:
        return self.sysfs.list_dir(os.path.join(self._host_dir("scsi_host", host_name), "device")) or []

    def _phy_attributes(self, phy: str, key_prefix: str) -> Dict[str, str]:
        return self._read_attributes(self.sysfs.class_path("sas_phy", phy), SAS_PHY_ATTRS,
                                     key_prefix=key_prefix)

    def _host_port_attributes(self, host_name: str) -> Dict[str, str]:
        entries = self._host_entries(host_name)
        ports = sorted(e for e in entries if e.startswith("port-"))
        attributes: Dict[str, str] = {}

        if not ports:
            for phy in sorted(e for e in entries if e.startswith("phy")):
                attributes.update(self._phy_attributes(phy, f"{phy}."))
            return attributes

        device_dir = os.path.join(self._host_dir("scsi_host", host_name), "device")
        for port in ports:
            port_phys = sorted(e for e in self.sysfs.list_dir(os.path.join(device_dir, port)) or []
                               if e.startswith("phy"))
            if not port_phys:
                self.logger.debug(f"{host_name}: {port} phy list not available")
                continue
            num_phys = self.sysfs.read(self.sysfs.class_path("sas_port", port), "num_phys")
            if num_phys is not None:
                attributes[f"{port}.num_phys"] = num_phys
            attributes[f"{port}.phys"] = " ".join(port_phys)
            attributes.update(self._phy_attributes(lowest_phy(port_phys), f"{port}."))
        return attributes

    def probe_host(self, host_name: str) -> Optional[TransportInfo]:
        sas_host_dir = self._host_dir("sas_host", host_name)
        if not self.sysfs.exists(sas_host_dir):
            return None
        attributes = self._host_port_attributes(host_name)

        phy = lowest_phy(self.sysfs.list_dir(os.path.join(sas_host_dir, "device")) or [])
        if phy is None:
            self.logger.debug(f"{host_name}: no SAS phys found")
            return self._info("sas:", attributes)
        sas_address = self.sysfs.read(self.sysfs.class_path("sas_phy", phy), "sas_address")
        if sas_address is None:
            self.logger.debug(f"{host_name}: no sas_address for {phy}")
            return self._info("sas:", attributes)
        return self._info(f"sas:{sas_address}", attributes)

    def end_device_name(self, devname: str) -> Optional[str]:
        """Name of the end device ("end_device-H:...") above a SCSI device"""
        end_device_dir = self._device_link_dir(devname, levels_up=2)
        if end_device_dir is None:
            return None
        return os.path.basename(end_device_dir)

    def _enclosure_device(self, end_device: str, address: AddressTuple, devname: str) -> Optional[str]:
        lu_dir = self.sysfs.class_path("sas_end_device", end_device, "device",
                                       self._target_name(address), devname)
        for entry in sorted(self.sysfs.list_dir(lu_dir) or []):
            if entry.startswith("enclosure_device"):
                return entry
        return None

    def probe_device(self, address: AddressTuple, devname: str) -> Optional[TransportInfo]:
        if not self.sysfs.exists(self._host_dir("sas_host", self._host_name(address))):
            return None

        end_device = self.end_device_name(devname)
        if end_device is None:
            self.logger.debug(f"{devname}: device link not found in SAS domain")
            return self._info("sas:")

        sas_device_dir = self.sysfs.class_path("sas_device", end_device)
        # non-SAS device in a SAS domain
        sas_address = self.sysfs.read(sas_device_dir, "sas_address") or NULL_SAS_ADDRESS

        attributes = {"end_device": end_device}
        attributes.update(self._read_attributes(sas_device_dir, SAS_DEVICE_ATTRS))
        attributes.update(self._read_attributes(self.sysfs.class_path("scsi_device", devname, "device"),
                                                ("vendor", "model")))
        enclosure_device = self._enclosure_device(end_device, address, devname)
        if enclosure_device:
            attributes["enclosure_device"] = enclosure_device
        attributes.update(self._read_attributes(self.sysfs.class_path("sas_end_device", end_device),
                                                SAS_END_DEVICE_ATTRS))
        return self._info(f"sas:{sas_address}", attributes)


class SasClassTransport(BaseTransport):
    """Legacy SAS class layout (device/sas/ha) found on old kernels"""

    @property
    def transport_kind(self) -> TransportKind:
        return TransportKind.SAS_CLASS

    def probe_host(self, host_name: str) -> Optional[TransportInfo]:
        ha_dir = os.path.join(self._host_dir("scsi_host", host_name), "device", "sas", "ha")
        if not self.sysfs.is_dir(ha_dir):
            return None
        attributes = self._read_attributes(ha_dir, SAS_HA_ATTRS)
        attributes.update(self._read_attributes(os.path.join(ha_dir, "phys", "0"), SAS_HA_PHY_ATTRS,
                                                key_prefix="phy0."))
        return self._info(f"sas:{attributes.get('device_name', '')}", attributes)

    def probe_device(self, address: AddressTuple, devname: str) -> Optional[TransportInfo]:
        sas_device_dir = self.sysfs.path("bus", "scsi", "devices", devname, "sas_device")
        if not self.sysfs.is_dir(sas_device_dir):
            return None
        attributes = self._read_attributes(sas_device_dir, SAS_CLASS_DEVICE_ATTRS)
        return self._info(f"sas:{attributes.get('sas_addr', '')}", attributes)
