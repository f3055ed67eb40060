"""Disk identifiers from the udev by-id symlink directory"""

import logging
import os
from typing import Dict, List, Optional, Tuple

from .sysfs import SysfsReader

# Designator type characters accepted for WWNs: NAA, EUI-64, SCSI name string
WWN_DESIGNATOR_TYPES = "328"
# Preference of "scsi-" link designator characters, best first
SCSI_ID_PRIORITY = "328S10"


class DiskIdLookup:
    """Looks up WWN and scsi_id style identifiers of disks

    Symlinks in <devroot>/disk/by-id are scanned once and cached for the
    rest of the run.
    """

    def __init__(self, sysfs: SysfsReader, dev_dir: str = "/dev", holder_depth: int = 8,
                 logger: Optional[logging.Logger] = None):
        """Initialize the lookup

        Args:
            sysfs: Attribute reader, used for block device holders
            dev_dir: Device node directory
            holder_depth: Maximum number of holder links followed
            logger: Logger instance
        """
        self.sysfs = sysfs
        self.dev_dir = dev_dir
        self.by_id_dir = os.path.join(dev_dir, "disk", "by-id")
        self.holder_depth = holder_depth
        self.logger = logger or logging.getLogger(__name__)
        self._wwn_maps: Dict[bool, Dict[str, str]] = {}

    def _by_id_entries(self) -> List[str]:
        try:
            return sorted(os.listdir(self.by_id_dir))
        except OSError as e:
            self.logger.debug(f"Unable to read {self.by_id_dir}: {e}")
            return []

    def _collect_wwns(self, wwn_twice: bool) -> Dict[str, str]:
        """Map kernel disk names to WWNs taken from by-id link names"""
        wwns: Dict[str, str] = {}
        for name in self._by_id_entries():
            if "part" in name:
                continue
            if wwn_twice:
                if not name.startswith("wwn-"):
                    continue
                wwn = name[4:]
            else:
                if not name.startswith("scsi-") or name[5:6] not in tuple(WWN_DESIGNATOR_TYPES):
                    continue
                # step over the designator type character
                wwn = "0x" + name[6:]

            link_path = os.path.join(self.by_id_dir, name)
            if not os.path.islink(link_path):
                continue
            target = self.sysfs.readlink(link_path)
            if not target:
                continue
            wwns.setdefault(os.path.basename(target), wwn)

        self.logger.debug(f"Collected {len(wwns)} disk WWNs from {self.by_id_dir}")
        return wwns

    def get_wwn(self, kernel_name: str, wwn_twice: bool = False) -> Optional[str]:
        """WWN of a disk

        Args:
            kernel_name: Disk name or path, only the basename is used
            wwn_twice: Use "wwn-" links instead of "scsi-" links

        Returns:
            WWN string, None when the disk has no matching link
        """
        if wwn_twice not in self._wwn_maps:
            self._wwn_maps[wwn_twice] = self._collect_wwns(wwn_twice)
        return self._wwn_maps[wwn_twice].get(os.path.basename(kernel_name))

    def _rdev(self, path: str) -> Optional[int]:
        """Device number of the node a path resolves to"""
        try:
            return os.stat(path).st_rdev
        except OSError as e:
            self.logger.debug(f"Unable to stat {path}: {e}")
            return None

    def lookup_dev(self, prefix: str, dev_node: str, priority: Optional[str] = None) -> Optional[str]:
        """Find the by-id link for a device node

        Args:
            prefix: Link name prefix, e.g. "scsi-"
            dev_node: Device node, e.g. "/dev/sda"
            priority: Preferred first characters of the identifier, best first

        Returns:
            Link name without the prefix, None when nothing matches
        """
        rdev = self._rdev(dev_node)
        if rdev is None:
            return None

        result = None
        for name in self._by_id_entries():
            if not name.startswith(prefix):
                continue
            if self._rdev(os.path.join(self.by_id_dir, name)) != rdev:
                continue

            ident = name[len(prefix):]
            if not priority or ident[:1] == priority[0]:
                return ident
            if result is None or _rank(priority, ident) < _rank(priority, result):
                result = ident
        return result

    def _lookup_one(self, dev_node: str, wo_prefix: bool) -> Optional[str]:
        scsi_id = self.lookup_dev("scsi-", dev_node, priority=SCSI_ID_PRIORITY)
        if scsi_id:
            return scsi_id[1:] if wo_prefix and len(scsi_id) > 1 else scsi_id
        return self.lookup_dev("dm-uuid-mpath-", dev_node) or self.lookup_dev("usb-", dev_node)

    def get_scsi_id(self, dev_node: str, wo_prefix: bool = False) -> Optional[str]:
        """scsi_id style identifier of a disk, following holders when needed

        A disk without its own link (e.g. a multipath member) inherits the
        identifier of the first holder that has one. Holders are walked depth
        first, never past holder_depth links and never twice.

        Args:
            dev_node: Device node, e.g. "/dev/sda"
            wo_prefix: Drop the leading designator type character

        Returns:
            Identifier, None when nothing was found
        """
        stack: List[Tuple[str, int]] = [(dev_node, 0)]
        visited = set()

        while stack:
            node, depth = stack.pop()
            if node in visited:
                continue
            visited.add(node)

            scsi_id = self._lookup_one(node, wo_prefix)
            if scsi_id:
                return scsi_id
            if depth >= self.holder_depth:
                self.logger.debug(f"Holder depth limit reached at {node}")
                continue

            holders_dir = self.sysfs.class_path("block", os.path.basename(node), "holders")
            holders = sorted(self.sysfs.list_dir(holders_dir) or [])
            for holder in reversed(holders):
                stack.append((os.path.join(self.dev_dir, holder), depth + 1))
        return None


def _rank(priority: str, ident: str) -> int:
    index = priority.find(ident[:1]) if ident else -1
    return index if index >= 0 else len(priority)
