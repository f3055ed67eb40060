"""Fixtures building fake sysfs and device directory trees under tmp_path"""

import logging
import os

import pytest

from scsi_topology.sysfs import SysfsReader


class FakeSysfs:
    """Writes attribute files, directories and symlinks below a root"""

    def __init__(self, root):
        self.root = str(root)

    def path(self, rel_path: str) -> str:
        return os.path.join(self.root, rel_path)

    def mkdir(self, rel_path: str) -> str:
        path = self.path(rel_path)
        os.makedirs(path, exist_ok=True)
        return path

    def attr(self, rel_path: str, value) -> str:
        path = self.path(rel_path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        if isinstance(value, bytes):
            with open(path, "wb") as f:
                f.write(value)
        else:
            with open(path, "w") as f:
                f.write(f"{value}\n")
        return path

    def link(self, rel_path: str, target_rel_path: str) -> str:
        path = self.path(rel_path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        os.symlink(self.path(target_rel_path), path)
        return path

    def reader(self) -> SysfsReader:
        return SysfsReader(self.root, logger=logging.getLogger("test"))

    def add_host(self, host: int, proc_name: str = "mpt3sas") -> str:
        """Create a SCSI host device and its scsi_host class entry"""
        host_dev = f"devices/pci0000:00/0000:00:01.0/host{host}"
        self.mkdir(host_dev)
        self.attr(f"class/scsi_host/host{host}/proc_name", proc_name)
        self.link(f"class/scsi_host/host{host}/device", host_dev)
        return host_dev

    def add_scsi_device(self, hctl: str, type_code: str = "0", vendor: str = "ATA",
                        model: str = "Disk", rev: str = "1.0", block: str = None,
                        block_dev: str = None, size: str = None, generic: str = None,
                        generic_dev: str = None, vpd: bytes = None) -> str:
        """Create a logical unit with its bus and class entries

        Returns:
            Relative path of the real device directory
        """
        host, channel, target, _ = hctl.split(":")
        device_dir = (f"devices/pci0000:00/0000:00:01.0/host{host}/"
                      f"target{host}:{channel}:{target}/{hctl}")
        self.attr(f"{device_dir}/type", type_code)
        self.attr(f"{device_dir}/vendor", vendor)
        self.attr(f"{device_dir}/model", model)
        self.attr(f"{device_dir}/rev", rev)
        self.attr(f"{device_dir}/state", "running")
        self.link(f"bus/scsi/devices/{hctl}", device_dir)
        self.link(f"class/scsi_device/{hctl}/device", device_dir)

        if block:
            self.attr(f"{device_dir}/block/{block}/dev", block_dev or "8:0")
            if size is not None:
                self.attr(f"{device_dir}/block/{block}/size", size)
            self.mkdir(f"class/block/{block}/holders")
        if generic:
            self.attr(f"{device_dir}/scsi_generic/{generic}/dev", generic_dev or "21:0")
            self.link(f"{device_dir}/generic", f"{device_dir}/scsi_generic/{generic}")
        if vpd is not None:
            self.attr(f"{device_dir}/vpd_pg83", vpd)
        return device_dir

    def add_nvme_controller(self, minor: int, cntlid: int, model: str = "NVMe SSD",
                            transport: str = "pcie", dev: str = None) -> str:
        ctrl = f"class/nvme/nvme{minor}"
        self.attr(f"{ctrl}/cntlid", str(cntlid))
        self.attr(f"{ctrl}/model", model)
        self.attr(f"{ctrl}/serial", f"SN{minor:04d}")
        self.attr(f"{ctrl}/firmware_rev", "1.0")
        self.attr(f"{ctrl}/transport", transport)
        self.attr(f"{ctrl}/dev", dev or f"242:{minor}")
        if transport == "pcie":
            self.attr(f"{ctrl}/device/subsystem_vendor", "0x144d")
            self.attr(f"{ctrl}/device/subsystem_device", "0xa801")
        return ctrl

    def add_nvme_namespace(self, minor: int, nsid: int, wwid: str = None,
                           size: str = "1000215216", dev: str = None) -> str:
        ns = f"class/nvme/nvme{minor}/nvme{minor}n{nsid}"
        self.attr(f"{ns}/nsid", str(nsid))
        self.attr(f"{ns}/size", size)
        self.attr(f"{ns}/dev", dev or f"259:{nsid}")
        if wwid:
            self.attr(f"{ns}/wwid", wwid)
        return ns


def vpd_page(*descriptors: bytes) -> bytes:
    """Assemble a Device Identification page from raw descriptors"""
    body = b"".join(descriptors)
    return bytes([0x00, 0x83]) + len(body).to_bytes(2, "big") + body


def designator(code_set: int, assoc: int, desig_type: int, data: bytes,
               protocol: int = 0, piv: bool = False) -> bytes:
    """Assemble one designation descriptor"""
    byte0 = (protocol << 4) | code_set
    byte1 = (0x80 if piv else 0) | (assoc << 4) | desig_type
    return bytes([byte0, byte1, 0, len(data)]) + data


@pytest.fixture
def fake_sysfs(tmp_path):
    """Empty fake sysfs tree"""
    return FakeSysfs(tmp_path / "sys")


@pytest.fixture
def vpd():
    """Page and descriptor builders for VPD 0x83 tests"""
    class Builders:
        page = staticmethod(vpd_page)
        desc = staticmethod(designator)
    return Builders
