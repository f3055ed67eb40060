"""iSCSI transport"""

import os
from typing import List, Optional

from ..models import AddressTuple, TransportInfo, TransportKind
from .base import BaseTransport

ISCSI_SESSION_ATTRS = (
    "targetname", "tpgt", "data_pdu_in_order", "data_seq_in_order", "erl",
    "first_burst_len", "initial_r2t", "max_burst_len", "max_outstanding_r2t",
    "recovery_tmo",
)


class IscsiTransport(BaseTransport):
    """iSCSI initiator; devices are matched to the session owning their target"""

    @property
    def transport_kind(self) -> TransportKind:
        return TransportKind.ISCSI

    def probe_host(self, host_name: str) -> Optional[TransportInfo]:
        if not self._has_class_entry("iscsi_host", host_name):
            return None
        return self._info("iscsi:")

    def target_sessions(self, address: AddressTuple) -> List[int]:
        """Numbers of the sessions that contain the device's target"""
        host_device_dir = os.path.join(self._host_dir("iscsi_host", self._host_name(address)), "device")
        sessions = []
        for entry in sorted(self.sysfs.list_dir(host_device_dir) or []):
            if not entry.startswith("session") or not entry[7:].isdigit():
                continue
            if self.sysfs.is_dir(os.path.join(host_device_dir, entry, self._target_name(address))):
                sessions.append(int(entry[7:]))
        return sessions

    def probe_device(self, address: AddressTuple, devname: str) -> Optional[TransportInfo]:
        host_device_dir = os.path.join(self._host_dir("iscsi_host", self._host_name(address)), "device")
        if not self.sysfs.is_dir(host_device_dir):
            return None

        sessions = self.target_sessions(address)
        if len(sessions) != 1:
            self.logger.debug(f"{devname}: expected one iSCSI session, found {sessions}")
            return self._info("")

        session_dir = self.sysfs.class_path("iscsi_session", f"session{sessions[0]}")
        attributes = {"session": str(sessions[0])}
        attributes.update(self._read_attributes(session_dir, ISCSI_SESSION_ATTRS))
        target_name = attributes.get("targetname")
        try:
            tpgt = int(attributes.get("tpgt", ""))
        except ValueError:
            tpgt = None
        if target_name is None or tpgt is None:
            return self._info("", attributes)
        # target port name in "<name>,t,0x<tpgt>" notation
        return self._info(f"{target_name},t,0x{tpgt:x}", attributes)
