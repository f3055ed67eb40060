import os
import stat
from types import SimpleNamespace
from unittest.mock import patch

from scsi_topology.dev_nodes import DeviceNodeIndex
from scsi_topology.models import DeviceKind, DeviceNodeEntry


class FakeEntry:
    """Stands in for os.DirEntry; device nodes cannot be created unprivileged"""

    def __init__(self, name, mode, major=0, minor=0, mtime=0.0):
        self.name = name
        self.path = os.path.join("/dev", name)
        self._stat = SimpleNamespace(st_mode=mode, st_rdev=os.makedev(major, minor), st_mtime=mtime)

    def stat(self, follow_symlinks=True):
        assert follow_symlinks is False
        return self._stat


class FakeScandir:

    def __init__(self, entries):
        self.entries = entries

    def __enter__(self):
        return iter(self.entries)

    def __exit__(self, *exc):
        return False


def block(name, major, minor, mtime=0.0):
    return FakeEntry(name, stat.S_IFBLK | 0o660, major, minor, mtime)


def char(name, major, minor, mtime=0.0):
    return FakeEntry(name, stat.S_IFCHR | 0o660, major, minor, mtime)


class TestDeviceNodeIndex:

    def test_build_keeps_special_files_only(self):
        entries = [
            block("sda", 8, 0),
            char("sg0", 21, 0),
            FakeEntry("disk", stat.S_IFDIR | 0o755),
            FakeEntry("cdrom", stat.S_IFLNK | 0o777),
            FakeEntry("null.txt", stat.S_IFREG | 0o644),
        ]
        with patch("scsi_topology.dev_nodes.os.scandir", return_value=FakeScandir(entries)):
            index = DeviceNodeIndex.build("/dev")
        assert len(index) == 2
        assert index.resolve(8, 0, DeviceKind.BLOCK) == "/dev/sda"
        assert index.resolve(21, 0, DeviceKind.CHAR) == "/dev/sg0"

    def test_newest_node_wins(self):
        entries = [block("sda", 8, 0, mtime=200.0), block("sda_old", 8, 0, mtime=100.0)]
        with patch("scsi_topology.dev_nodes.os.scandir", return_value=FakeScandir(entries)):
            index = DeviceNodeIndex.build("/dev")
        assert index.resolve(8, 0, DeviceKind.BLOCK) == "/dev/sda"

        entries.reverse()
        with patch("scsi_topology.dev_nodes.os.scandir", return_value=FakeScandir(entries)):
            index = DeviceNodeIndex.build("/dev")
        assert index.resolve(8, 0, DeviceKind.BLOCK) == "/dev/sda"

    def test_kind_is_part_of_key(self):
        index = DeviceNodeIndex([DeviceNodeEntry(8, 0, DeviceKind.BLOCK, "/dev/sda", 1.0)])
        assert index.resolve(8, 0, DeviceKind.CHAR) is None

    def test_unreadable_directory_gives_empty_index(self):
        with patch("scsi_topology.dev_nodes.os.scandir", side_effect=PermissionError("denied")):
            index = DeviceNodeIndex.build("/dev")
        assert len(index) == 0
        assert index.resolve(8, 0, DeviceKind.BLOCK) is None

    def test_resolve_sysfs(self, fake_sysfs):
        fake_sysfs.attr("class/block/sdb/dev", "8:16")
        index = DeviceNodeIndex([DeviceNodeEntry(8, 16, DeviceKind.BLOCK, "/dev/sdb", 1.0)])
        sysfs = fake_sysfs.reader()
        assert index.resolve_sysfs(sysfs, sysfs.class_path("block", "sdb"), DeviceKind.BLOCK) == "/dev/sdb"
        assert index.resolve_sysfs(sysfs, sysfs.class_path("block", "sdc"), DeviceKind.BLOCK) is None
