"""Base transport probe abstraction"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional
import logging
import os

from ..models import AddressTuple, TransportInfo, TransportKind
from ..sysfs import SysfsReader


class BaseTransport(ABC):
    """Abstract base class for transport probes

    A probe inspects the sysfs subtrees that only exist for its protocol.
    Returning None means "not this transport" and lets the classifier move
    on to the next probe; a returned TransportInfo ends classification.
    """

    def __init__(self, sysfs: SysfsReader, logger: Optional[logging.Logger] = None):
        """Initialize the probe

        Args:
            sysfs: Attribute reader
            logger: Logger instance for output
        """
        self.sysfs = sysfs
        self.logger = logger or logging.getLogger(__name__)

    @property
    @abstractmethod
    def transport_kind(self) -> TransportKind:
        """Transport reported by this probe"""
        pass

    def probe_host(self, host_name: str) -> Optional[TransportInfo]:
        """Classify a SCSI host

        Args:
            host_name: Host directory name, e.g. "host2"

        Returns:
            TransportInfo if the host uses this transport, None otherwise
        """
        return None

    def probe_device(self, address: AddressTuple, devname: str) -> Optional[TransportInfo]:
        """Classify a SCSI device

        Args:
            address: Parsed address of the device
            devname: Device directory name, e.g. "2:0:1:0"

        Returns:
            TransportInfo if the device uses this transport, None otherwise
        """
        return None

    # Helper methods that can be used by all probes

    def _info(self, summary: str, attributes: Optional[Dict[str, str]] = None,
              kind: Optional[TransportKind] = None) -> TransportInfo:
        info = TransportInfo(kind=kind or self.transport_kind, summary=summary,
                             attributes=dict(attributes or {}))
        self.logger.debug(f"Transport {info.kind.value}: {summary}")
        return info

    def _host_dir(self, class_name: str, host_name: str) -> str:
        return self.sysfs.class_path(class_name, host_name)

    def _has_class_entry(self, class_name: str, name: str) -> bool:
        return self.sysfs.is_dir(self.sysfs.class_path(class_name, name))

    def _read_attributes(self, directory: str, names: Iterable[str],
                         key_prefix: str = "") -> Dict[str, str]:
        """Read the attributes present in a directory

        Args:
            directory: Directory holding the attributes
            names: Attribute names to try
            key_prefix: Prepended to each key of the returned mapping

        Returns:
            Ordered mapping of (prefixed) name to value
        """
        values = self.sysfs.read_many(directory, names)
        return {f"{key_prefix}{k}": v for k, v in values.items()}

    def _device_link_dir(self, devname: str, levels_up: int = 0) -> Optional[str]:
        """Resolve the real device directory of a SCSI device

        Args:
            devname: Device name, e.g. "0:0:1:0"
            levels_up: Number of trailing path components to drop

        Returns:
            Resolved directory, None when the device link is missing
        """
        path = self.sysfs.realpath(self.sysfs.class_path("scsi_device", devname, "device"))
        if path is None:
            return None
        for _ in range(levels_up):
            path = os.path.dirname(path)
        return path

    @staticmethod
    def _target_name(address: AddressTuple) -> str:
        return f"target{address.host}:{address.channel}:{address.target}"

    @staticmethod
    def _host_name(address: AddressTuple) -> str:
        return f"host{address.host}"
