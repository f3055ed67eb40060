"""Fibre Channel and FCoE transport"""

import os
from typing import Optional

from ..models import AddressTuple, TransportInfo, TransportKind
from .base import BaseTransport

FC_HOST_ATTRS = (
    "active_fc4s", "supported_fc4s", "fabric_name", "maxframe_size",
    "max_npiv_vports", "npiv_vports_inuse", "node_name", "port_name",
    "port_id", "port_state", "port_type", "speed", "supported_speeds",
    "supported_classes", "tgtid_bind_type",
)

FC_RPORT_ATTRS = (
    "node_name", "port_name", "port_id", "port_state", "roles",
    "scsi_target_id", "supported_classes", "fast_io_fail_tmo", "dev_loss_tmo",
)


class FcTransport(BaseTransport):
    """Fibre Channel host or remote port

    FCoE is reported when the host's symbolic name says the link runs
    "over" an Ethernet interface.
    """

    @property
    def transport_kind(self) -> TransportKind:
        return TransportKind.FC

    def _kind_and_prefix(self, fc_host_dir: str):
        symbolic_name = self.sysfs.read(fc_host_dir, "symbolic_name") or ""
        if " over " in symbolic_name:
            return TransportKind.FCOE, "fcoe:"
        return TransportKind.FC, "fc:"

    def _port_summary(self, prefix: str, directory: str) -> str:
        port_name = self.sysfs.read(directory, "port_name")
        if port_name is None:
            self.logger.debug(f"No port_name in {directory}")
            return prefix
        port_id = self.sysfs.read(directory, "port_id")
        return f"{prefix}{port_name},{port_id or ''}"

    def probe_host(self, host_name: str) -> Optional[TransportInfo]:
        host_dir = self._host_dir("fc_host", host_name)
        if not self.sysfs.is_dir(host_dir):
            return None
        kind, prefix = self._kind_and_prefix(host_dir)
        return self._info(self._port_summary(prefix, host_dir),
                          self._read_attributes(host_dir, FC_HOST_ATTRS), kind=kind)

    def probe_device(self, address: AddressTuple, devname: str) -> Optional[TransportInfo]:
        host_dir = self._host_dir("fc_host", self._host_name(address))
        if not self.sysfs.is_dir(host_dir):
            return None
        kind, prefix = self._kind_and_prefix(host_dir)
        target_dir = self.sysfs.class_path("fc_transport", self._target_name(address))
        summary = self._port_summary(prefix, target_dir)

        device_dir = self.sysfs.class_path("scsi_device", devname, "device")
        attributes = self._read_attributes(device_dir, ("vendor", "model"))
        rport_dir = self._device_link_dir(devname, levels_up=2)
        if rport_dir is not None:
            rport = os.path.basename(rport_dir)
            attributes["rport"] = rport
            # older kernels keep the attributes below the rport device itself
            remote_dir = os.path.join(rport_dir, "fc_remote_ports", rport)
            if not self.sysfs.is_dir(remote_dir):
                remote_dir = self.sysfs.class_path("fc_remote_ports", rport)
            attributes.update(self._read_attributes(remote_dir, FC_RPORT_ATTRS))
        return self._info(summary, attributes, kind=kind)
