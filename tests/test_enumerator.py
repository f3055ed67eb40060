import logging
import os

import pytest

from scsi_topology.address import format_address, parse_filter
from scsi_topology.dev_nodes import DeviceNodeIndex
from scsi_topology.enumerator import (TopologyEnumerator, is_primary_node_entry,
                                      nvme_identity, select_nvme_controllers,
                                      select_nvme_namespaces, select_scsi_entries)
from scsi_topology.models import (DeviceKind, DeviceNodeEntry, IdentityKind,
                                  TopologySettings, TransportKind)
from scsi_topology.sysfs import SysfsReader
from scsi_topology.vpd import CODE_SET_BINARY, DESIG_NAA

NAA_16 = bytes.fromhex("5000c500a1b2c3d40000000000000001")


@pytest.fixture
def scsi_tree(fake_sysfs, vpd):
    fake_sysfs.add_host(0, proc_name="ahci")
    fake_sysfs.add_host(2, proc_name="mpt3sas")
    fake_sysfs.add_host(10, proc_name="virtio_scsi")

    page = vpd.page(vpd.desc(CODE_SET_BINARY, 0, DESIG_NAA, NAA_16))
    fake_sysfs.add_scsi_device("0:0:0:0", block="sda", block_dev="8:0", size="7814037168",
                               generic="sg0", generic_dev="21:0", vpd=page)
    tape_dir = fake_sysfs.add_scsi_device("2:0:1:0", type_code="1", vendor="HP", model="Ultrium 6-SCSI")
    fake_sysfs.attr(f"{tape_dir}/scsi_tape/st0/dev", "9:0")
    fake_sysfs.link(f"{tape_dir}/tape", f"{tape_dir}/scsi_tape/st0")
    fake_sysfs.add_scsi_device("2:0:0:1", block="sdb", block_dev="8:16")
    fake_sysfs.add_scsi_device("10:0:0:0", type_code="13", vendor="LSI", model="SAS2X36")

    fake_sysfs.mkdir("bus/scsi/devices/host0")
    fake_sysfs.mkdir("bus/scsi/devices/target0:0:0")
    return fake_sysfs


@pytest.fixture
def nvme_tree(fake_sysfs):
    fake_sysfs.add_nvme_controller(0, 1, model="Samsung SSD 970")
    fake_sysfs.add_nvme_namespace(0, 1, wwid="eui.0025385b71b00e0a")
    fake_sysfs.add_nvme_namespace(0, 2)
    fake_sysfs.add_nvme_controller(1, 5, transport="tcp")
    fake_sysfs.add_nvme_namespace(1, 1, wwid="nvme.1b36-3132-51454d55-00000001", dev="259:3")
    fake_sysfs.mkdir("class/nvme/nvme-fabrics")
    return fake_sysfs


def make_enumerator(fake_sysfs, **options):
    enumerator = TopologyEnumerator(fake_sysfs.reader(), dev_dir="/dev", **options)
    enumerator._device_index = DeviceNodeIndex([
        DeviceNodeEntry(8, 0, DeviceKind.BLOCK, "/dev/sda", 1.0),
        DeviceNodeEntry(8, 16, DeviceKind.BLOCK, "/dev/sdb", 1.0),
        DeviceNodeEntry(21, 0, DeviceKind.CHAR, "/dev/sg0", 1.0),
        DeviceNodeEntry(9, 0, DeviceKind.CHAR, "/dev/st0", 1.0),
        DeviceNodeEntry(259, 1, DeviceKind.BLOCK, "/dev/nvme0n1", 1.0),
        DeviceNodeEntry(242, 0, DeviceKind.CHAR, "/dev/nvme0", 1.0),
    ])
    return enumerator


class TestEntrySelection:

    def test_scsi_entries(self):
        names = ["host0", "target0:0:0", "0:0:0:0", "1:0:0:0:gen", "mt0", "0:0:1:0", "power"]
        assert select_scsi_entries(names) == ["0:0:0:0", "0:0:1:0"]

    def test_nvme_controllers(self):
        names = ["nvme0", "nvme12", "nvme-fabrics", "nvme0n1"]
        assert select_nvme_controllers(names) == [("nvme0", 0), ("nvme12", 12)]

    def test_nvme_namespaces(self):
        names = ["nvme0n1", "nvme0c0n2", "ng0n1", "device", "nvme0n1p1"]
        assert select_nvme_namespaces(names) == [("nvme0n1", 0, 1), ("nvme0c0n2", 0, 2)]

    def test_primary_node_entries(self):
        for name in ("block", "block:sda", "tape", "scsi_tape:st0", "scsi_changer", "onstream_tape:os0"):
            assert is_primary_node_entry(name)
        for name in ("scsi_tape:st0a", "scsi_generic", "generic", "scsi_disk"):
            assert not is_primary_node_entry(name)

    def test_nvme_identity(self):
        identity = nvme_identity("eui.0025385b71b00e0a", want_prefix=True)
        assert identity.kind is IdentityKind.EUI64
        assert str(identity) == "eui.0025385b71b00e0a"
        assert str(nvme_identity("eui.0025385b71b00e0a")) == "0025385b71b00e0a"
        assert nvme_identity(None) is None


class TestListScsi:

    def test_sorted_numerically(self, scsi_tree):
        records = make_enumerator(scsi_tree).list_scsi()
        assert [r.name for r in records] == ["0:0:0:0", "2:0:0:1", "2:0:1:0", "10:0:0:0"]

    def test_host_filter(self, scsi_tree):
        records = make_enumerator(scsi_tree).list_scsi(parse_filter(["2"]))
        assert [format_address(r.address) for r in records] == ["2:0:0:1", "2:0:1:0"]

    def test_full_filter(self, scsi_tree):
        records = make_enumerator(scsi_tree).list_scsi(parse_filter(["2:-:1:0"]))
        assert [r.name for r in records] == ["2:0:1:0"]

    def test_nvme_filter_excludes_scsi(self, scsi_tree):
        assert make_enumerator(scsi_tree).list_scsi(parse_filter(["N"])) == []

    def test_disk_record(self, scsi_tree):
        record = make_enumerator(scsi_tree).list_scsi(parse_filter(["0:0:0:0"]))[0]
        assert record.device_node == "/dev/sda"
        assert record.kernel_name == "/dev/sda"
        assert record.device_kind is DeviceKind.BLOCK
        assert record.major_minor == "8:0"
        assert record.generic_node == "/dev/sg0"
        assert record.device_type == "disk"
        assert record.attribute("vendor") == "ATA"
        assert record.attribute("size") == "7814037168"
        assert record.attribute("queue_depth") == "?"
        assert record.identity.kind is IdentityKind.NAA
        assert str(record.identity) == NAA_16.hex()
        assert record.transport.kind is TransportKind.SATA
        assert record.transport.summary == "sata:" + NAA_16.hex()

    def test_tape_record(self, scsi_tree):
        record = make_enumerator(scsi_tree).list_scsi(parse_filter(["2:0:1:0"]))[0]
        assert record.device_kind is DeviceKind.CHAR
        assert record.device_node == "/dev/st0"
        assert record.kernel_name == "/dev/st0"
        assert record.device_type == "tape"
        assert record.generic_node is None

    def test_no_device_node(self, scsi_tree):
        record = make_enumerator(scsi_tree).list_scsi(parse_filter(["10"]))[0]
        assert record.device_node is None
        assert record.device_type == "enclosu"
        assert record.identity is None
        assert record.transport.kind is TransportKind.UNKNOWN

    def test_malformed_entry_skipped(self, scsi_tree, caplog):
        scsi_tree.mkdir("bus/scsi/devices/x:y:z:w")
        with caplog.at_level(logging.WARNING):
            records = make_enumerator(scsi_tree).list_scsi()
        assert len(records) == 4
        assert "x:y:z:w" in caplog.text

    def test_identity_prefix(self, scsi_tree):
        record = make_enumerator(scsi_tree, want_prefix=True).list_scsi(parse_filter(["0"]))[0]
        assert str(record.identity) == "naa." + NAA_16.hex()

    def test_to_dict(self, scsi_tree):
        data = make_enumerator(scsi_tree).list_scsi(parse_filter(["0"]))[0].to_dict()
        assert data["name"] == "0:0:0:0"
        assert data["device_kind"] == "block"
        assert data["identity"]["kind"] == "naa"
        assert data["address"]["lun_bytes"] == "0000000000000000"


class TestListNvme:

    def test_namespaces_sorted(self, nvme_tree):
        records = make_enumerator(nvme_tree).list_nvme()
        assert [r.name for r in records] == ["nvme0n1", "nvme0n2", "nvme1n1"]
        assert [format_address(r.address) for r in records] == ["N:0:1:1", "N:0:1:2", "N:1:5:1"]

    def test_namespace_record(self, nvme_tree):
        record = make_enumerator(nvme_tree).list_nvme()[0]
        assert record.device_node == "/dev/nvme0n1"
        assert record.kernel_name == "/dev/nvme0n1"
        assert record.device_type == "disk"
        assert record.attribute("vendor") == "NVMe"
        assert record.attribute("model") == "Samsung SSD 970"
        assert record.attribute("rev") == "1.0"
        assert record.identity.kind is IdentityKind.EUI64
        assert record.transport.kind is TransportKind.PCIE

    def test_fabrics_namespace(self, nvme_tree):
        record = make_enumerator(nvme_tree).list_nvme()[2]
        assert record.transport.kind is TransportKind.NVME_FABRICS
        assert record.identity.kind is IdentityKind.NVME
        assert record.device_node is None

    @pytest.mark.parametrize("args, names", [
        (["N:1"], ["nvme1n1"]),
        (["N:-:5"], ["nvme1n1"]),
        (["N:0:1:2"], ["nvme0n2"]),
        (["N:0:1:0x00000002"], ["nvme0n2"]),
        (["N:0:9"], []),
        (["2"], []),
    ])
    def test_filters(self, nvme_tree, args, names):
        records = make_enumerator(nvme_tree).list_nvme(parse_filter(args))
        assert [r.name for r in records] == names

    def test_controllers(self, nvme_tree):
        records = make_enumerator(nvme_tree).list_controllers()
        assert [format_address(r.address, host_only=True) for r in records] == ["N:0", "N:1"]
        assert records[0].device_node == "/dev/nvme0"
        assert records[0].device_kind is DeviceKind.CHAR
        assert records[0].attribute("cntlid") == "1"
        assert records[1].transport.summary == "tcp:"

    def test_controller_numbers_from_uevent(self, nvme_tree):
        os.remove(nvme_tree.path("class/nvme/nvme0/dev"))
        nvme_tree.attr("class/nvme/nvme0/uevent", "MAJOR=242\nMINOR=0\nDEVNAME=nvme0")
        record = make_enumerator(nvme_tree).list_controllers()[0]
        assert record.major_minor == "242:0"
        assert record.device_node == "/dev/nvme0"


class TestListHosts:

    def test_sorted_numerically(self, scsi_tree):
        records = make_enumerator(scsi_tree).list_hosts()
        assert [r.name for r in records] == ["host0", "host2", "host10"]
        assert records[0].attribute("proc_name") == "ahci"
        assert records[0].transport.kind is TransportKind.SATA

    def test_host_filter(self, scsi_tree):
        records = make_enumerator(scsi_tree).list_hosts(parse_filter(["host2"]))
        assert [r.address.host for r in records] == [2]


class TestMissingSubsystems:

    def test_missing_root_is_empty(self, tmp_path, caplog):
        enumerator = TopologyEnumerator(SysfsReader(str(tmp_path / "absent")), dev_dir=str(tmp_path / "dev"))
        with caplog.at_level(logging.INFO):
            assert enumerator.list_scsi() == []
            assert enumerator.list_nvme() == []
            assert enumerator.list_hosts() == []
            assert enumerator.list_controllers() == []
        assert "module may not be loaded" in caplog.text

    def test_from_settings(self, tmp_path):
        settings = TopologySettings(sysfsroot=str(tmp_path), devroot=str(tmp_path / "dev"),
                                    holder_depth=3, unit=4)
        enumerator = TopologyEnumerator.from_settings(settings)
        assert enumerator.sysfs.root == str(tmp_path)
        assert enumerator.dev_dir == os.path.join(str(tmp_path), "dev")
        assert enumerator.holder_depth == 3
        assert enumerator.want_prefix
