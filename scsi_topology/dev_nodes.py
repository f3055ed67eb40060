"""Index of block and character device nodes"""

import logging
import os
import stat
from typing import Dict, List, Optional, Tuple

from .models import DeviceKind, DeviceNodeEntry
from .sysfs import SysfsReader


class DeviceNodeIndex:
    """Maps (major, minor, kind) to a device node path

    Built from a single non-recursive scan of the device directory. Symbolic
    links are not followed, only primary nodes are indexed.
    """

    def __init__(self, entries: Optional[List[DeviceNodeEntry]] = None,
                 logger: Optional[logging.Logger] = None):
        """Initialize the index

        Args:
            entries: Pre-built node entries, in scan order
            logger: Logger instance
        """
        self.logger = logger or logging.getLogger(__name__)
        self.entries: List[DeviceNodeEntry] = list(entries or [])
        self._by_number: Dict[Tuple[int, int, DeviceKind], DeviceNodeEntry] = {}
        for entry in self.entries:
            self._add(entry)

    def _add(self, entry: DeviceNodeEntry) -> None:
        key = (entry.major, entry.minor, entry.kind)
        current = self._by_number.get(key)
        # Newest node wins, equal times go to the one seen last
        if current is None or entry.modified_at >= current.modified_at:
            self._by_number[key] = entry

    @classmethod
    def build(cls, dev_dir: str = "/dev", logger: Optional[logging.Logger] = None) -> "DeviceNodeIndex":
        """Scan a device directory and index its special files

        Args:
            dev_dir: Device node directory, not descended into
            logger: Logger instance

        Returns:
            DeviceNodeIndex, empty when the directory cannot be read
        """
        logger = logger or logging.getLogger(__name__)
        entries: List[DeviceNodeEntry] = []

        try:
            with os.scandir(dev_dir) as it:
                for dir_entry in it:
                    try:
                        st = dir_entry.stat(follow_symlinks=False)
                    except OSError as e:
                        logger.debug(f"Unable to stat {dir_entry.path}: {e}")
                        continue

                    if stat.S_ISBLK(st.st_mode):
                        kind = DeviceKind.BLOCK
                    elif stat.S_ISCHR(st.st_mode):
                        kind = DeviceKind.CHAR
                    else:
                        continue

                    entries.append(DeviceNodeEntry(
                        major=os.major(st.st_rdev),
                        minor=os.minor(st.st_rdev),
                        kind=kind,
                        path=os.path.join(dev_dir, dir_entry.name),
                        modified_at=st.st_mtime
                    ))
        except OSError as e:
            logger.warning(f"Unable to scan device directory {dev_dir}: {e}")

        logger.debug(f"Indexed {len(entries)} device nodes in {dev_dir}")
        return cls(entries, logger=logger)

    def __len__(self) -> int:
        return len(self.entries)

    def resolve(self, major: int, minor: int, kind: DeviceKind) -> Optional[str]:
        """Find the most recently modified node for a device number

        Returns:
            Node path, None when no node matches
        """
        entry = self._by_number.get((major, minor, kind))
        return entry.path if entry else None

    def resolve_sysfs(self, sysfs: SysfsReader, device_dir: str, kind: DeviceKind) -> Optional[str]:
        """Resolve the node of a sysfs device directory through its 'dev' attribute

        Args:
            sysfs: Attribute reader
            device_dir: Directory containing the 'dev' attribute
            kind: Block or character device

        Returns:
            Node path, None when the attribute or the node is missing
        """
        numbers = sysfs.major_minor(device_dir)
        if numbers is None:
            return None
        node = self.resolve(numbers[0], numbers[1], kind)
        if node is None:
            self.logger.debug(f"No {kind.value} node for {numbers[0]}:{numbers[1]} ({device_dir})")
        return node
