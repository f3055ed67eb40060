"""Enumeration of SCSI devices, NVMe namespaces, hosts and controllers"""

import logging
import os
import re
from typing import Iterable, List, Optional, Tuple

from .address import make_nvme_address, make_scsi_address, parse_address
from .dev_nodes import DeviceNodeIndex
from .disk_ids import DiskIdLookup
from .errors import AddressParseError
from .models import (NVME_HOST_NUM, AddressFilter, DeviceKind, IdentityKind,
                     LogicalUnitIdentity, TopologyRecord, TopologySettings,
                     sort_records)
from .sysfs import SysfsReader
from .transports import TransportClassifier
from .vpd import VpdReader

SCSI_DEVICE_ATTRS = (
    "type", "vendor", "model", "rev", "state", "queue_depth", "scsi_level",
    "device_blocked", "timeout", "queue_type", "iocounterbits",
    "iodone_cnt", "ioerr_cnt", "iorequest_cnt",
)

BLOCK_ATTRS = ("size", "queue/logical_block_size", "integrity/format")
SCSI_DISK_ATTRS = ("protection_type", "protection_mode")

SCSI_HOST_ATTRS = (
    "proc_name", "active_mode", "can_queue", "cmd_per_lun", "host_busy",
    "nr_hw_queues", "sg_tablesize", "state", "unique_id", "use_blk_mq",
)

NVME_CTRL_ATTRS = (
    "cntlid", "model", "serial", "firmware_rev", "state", "subsysnqn",
    "transport", "address", "device/current_link_width",
    "device/current_link_speed",
)

NVME_NS_ATTRS = (
    "wwid", "size", "nsid", "capability", "ext_range", "hidden", "range",
    "removable", "queue/logical_block_size",
)

# Entry names holding these belong to legacy aliases of the same device
_SCSI_ALIAS_TAGS = ("mt", "ot", "gen")

_NVME_CTRL_RE = re.compile(r"nvme([0-9]+)")
_NVME_NS_RE = re.compile(r"nvme([0-9]+)(?:c[0-9]+)?n([0-9]+)")

# wwid prefix -> identity kind
_NVME_WWID_KINDS = (
    ("eui.", IdentityKind.EUI64),
    ("naa.", IdentityKind.NAA),
    ("uuid.", IdentityKind.UUID),
    ("nvme.", IdentityKind.NVME),
)


def select_scsi_entries(names: Iterable[str]) -> List[str]:
    """Keep the bus entries that name a logical unit (h:c:t:l)

    Host and target containers and legacy alias entries are dropped.
    """
    selected = []
    for name in names:
        if any(tag in name for tag in _SCSI_ALIAS_TAGS):
            continue
        if name.startswith(("host", "target")):
            continue
        if ":" not in name:
            continue
        selected.append(name)
    return selected


def select_nvme_controllers(names: Iterable[str]) -> List[Tuple[str, int]]:
    """Pick nvme<minor> controller entries

    Returns:
        (name, controller minor) pairs
    """
    selected = []
    for name in names:
        match = _NVME_CTRL_RE.fullmatch(name)
        if match:
            selected.append((name, int(match.group(1))))
    return selected


def select_nvme_namespaces(names: Iterable[str]) -> List[Tuple[str, int, int]]:
    """Pick nvme<minor>[c<id>]n<nsid> namespace entries

    Returns:
        (name, minor from the name, namespace id) triples
    """
    selected = []
    for name in names:
        match = _NVME_NS_RE.fullmatch(name)
        if match:
            selected.append((name, int(match.group(1)), int(match.group(2))))
    return selected


def is_primary_node_entry(name: str) -> bool:
    """True for the entry of a SCSI device that leads to its upper level driver node"""
    if name.startswith(("scsi_changer", "block", "onstream_tape:os")):
        return True
    if name == "tape":
        return True
    return name.startswith("scsi_tape:st") and name[-1:].isdigit()


def is_generic_node_entry(name: str) -> bool:
    return name == "generic" or name.startswith("scsi_generic")


def nvme_identity(wwid: Optional[str], want_prefix: bool = False) -> Optional[LogicalUnitIdentity]:
    """Build the identity of an NVMe namespace from its 'wwid' attribute"""
    if not wwid:
        return None
    wwid = wwid.strip()
    for prefix, kind in _NVME_WWID_KINDS:
        if wwid.startswith(prefix):
            return LogicalUnitIdentity(kind=kind, value=wwid[len(prefix):],
                                       prefix=prefix if want_prefix else None)
    return LogicalUnitIdentity(kind=IdentityKind.NVME, value=wwid)


class TopologyEnumerator:
    """Builds TopologyRecords from the attribute tree

    The device node index, identity reader, transport classifier and disk id
    lookup are created on first use and shared by every record of the run.
    """

    def __init__(self, sysfs: Optional[SysfsReader] = None, dev_dir: str = "/dev",
                 holder_depth: int = 8, want_prefix: bool = False, wwn_mode: int = 0,
                 scsi_id_mode: int = 0, logger: Optional[logging.Logger] = None):
        """Initialize the enumerator

        Args:
            sysfs: Attribute reader, defaults to one rooted at /sys
            dev_dir: Device node directory
            holder_depth: Maximum holder links followed by scsi_id lookup
            want_prefix: Keep "naa."/"eui."/... prefixes on identities
            wwn_mode: 0 no WWN lookup, 1 from scsi- links, 2 from wwn- links
            scsi_id_mode: 0 no lookup, 1 full identifier, 2 without its type character
            logger: Logger instance
        """
        self.logger = logger or logging.getLogger(__name__)
        self.sysfs = sysfs or SysfsReader(logger=self.logger)
        self.dev_dir = dev_dir
        self.holder_depth = holder_depth
        self.want_prefix = want_prefix
        self.wwn_mode = wwn_mode
        self.scsi_id_mode = scsi_id_mode

        self._device_index: Optional[DeviceNodeIndex] = None
        self._vpd_reader: Optional[VpdReader] = None
        self._classifier: Optional[TransportClassifier] = None
        self._disk_ids: Optional[DiskIdLookup] = None

    @classmethod
    def from_settings(cls, settings: TopologySettings, logger: Optional[logging.Logger] = None,
                      **options) -> "TopologyEnumerator":
        """Create an enumerator for the roots and limits of a settings object"""
        logger = logger or logging.getLogger(__name__)
        return cls(SysfsReader(settings.sysfsroot, logger=logger), dev_dir=settings.devroot,
                   holder_depth=settings.holder_depth, want_prefix=settings.unit >= 4,
                   logger=logger, **options)

    @property
    def device_index(self) -> DeviceNodeIndex:
        if self._device_index is None:
            self._device_index = DeviceNodeIndex.build(self.dev_dir, logger=self.logger)
        return self._device_index

    @property
    def vpd_reader(self) -> VpdReader:
        if self._vpd_reader is None:
            self._vpd_reader = VpdReader(self.sysfs, logger=self.logger)
        return self._vpd_reader

    @property
    def classifier(self) -> TransportClassifier:
        if self._classifier is None:
            self._classifier = TransportClassifier(self.sysfs, vpd_reader=self.vpd_reader,
                                                   logger=self.logger)
        return self._classifier

    @property
    def disk_ids(self) -> DiskIdLookup:
        if self._disk_ids is None:
            self._disk_ids = DiskIdLookup(self.sysfs, dev_dir=self.dev_dir,
                                          holder_depth=self.holder_depth, logger=self.logger)
        return self._disk_ids

    def _list_subsystem(self, directory: str, subsystem: str) -> List[str]:
        names = self.sysfs.list_dir(directory)
        if names is None:
            self.logger.info(f"No {subsystem} devices found at {directory}, module may not be loaded")
            return []
        return names

    # SCSI logical units

    def list_scsi(self, address_filter: Optional[AddressFilter] = None) -> List[TopologyRecord]:
        """Enumerate SCSI logical units

        Args:
            address_filter: Only keep matching addresses, None for all

        Returns:
            Records sorted by address
        """
        address_filter = address_filter or AddressFilter()
        devices_dir = self.sysfs.path("bus", "scsi", "devices")

        candidates = []
        for name in select_scsi_entries(self._list_subsystem(devices_dir, "SCSI")):
            try:
                address = parse_address(name)
            except AddressParseError as e:
                self.logger.warning(f"Skipping SCSI entry {name}: {e}")
                continue
            if address.is_nvme:
                continue
            if not address_filter.matches(address.host, address.channel, address.target, address.lun):
                continue
            candidates.append((address, name))

        candidates.sort(key=lambda item: item[0].sort_key)
        self.logger.debug(f"Selected {len(candidates)} SCSI devices in {devices_dir}")
        return [self._scsi_record(address, name, os.path.join(devices_dir, name))
                for address, name in candidates]

    def _entry_target(self, directory: str, name: str) -> Optional[str]:
        """Resolve an entry, descending one level into real directories"""
        path = os.path.join(directory, name)
        if self.sysfs.is_dir(path) and not self.sysfs.is_link(path):
            children = sorted(self.sysfs.list_dir(path) or [])
            if not children:
                return None
            path = os.path.join(path, children[0])
        return self.sysfs.realpath(path)

    def _find_entry(self, device_dir: str, predicate) -> Optional[str]:
        for name in sorted(self.sysfs.list_dir(device_dir) or []):
            if predicate(name) and self.sysfs.is_dir(os.path.join(device_dir, name)):
                return self._entry_target(device_dir, name)
        return None

    def _scsi_record(self, address, name: str, device_dir: str) -> TopologyRecord:
        record = TopologyRecord(address=address, name=name, sysfs_path=device_dir,
                                raw_attributes=self.sysfs.read_many(device_dir, SCSI_DEVICE_ATTRS))

        node_dir = self._find_entry(device_dir, lambda n: n.startswith("block"))
        kind = DeviceKind.BLOCK
        if node_dir is None:
            node_dir = self._find_entry(device_dir, is_primary_node_entry)
            kind = DeviceKind.CHAR
        if node_dir is not None:
            self._fill_node(record, node_dir, kind)

        generic_dir = self._find_entry(device_dir, is_generic_node_entry)
        if generic_dir is not None:
            record.generic_node = self.device_index.resolve_sysfs(self.sysfs, generic_dir, DeviceKind.CHAR)

        disk_dir = self._find_entry(device_dir, lambda n: n.startswith("scsi_disk"))
        if disk_dir is not None:
            record.raw_attributes.update(self.sysfs.read_many(disk_dir, SCSI_DISK_ATTRS))

        record.identity = self.vpd_reader.lu_identity(name, want_prefix=self.want_prefix)
        record.transport = self.classifier.classify_device(address, name)

        if self.wwn_mode and record.device_kind is DeviceKind.BLOCK and record.kernel_name:
            record.wwn = self.disk_ids.get_wwn(record.kernel_name, wwn_twice=self.wwn_mode > 1)
        if self.scsi_id_mode and record.device_node:
            record.scsi_id = self.disk_ids.get_scsi_id(record.device_node,
                                                       wo_prefix=self.scsi_id_mode > 1)
        return record

    def _fill_node(self, record: TopologyRecord, node_dir: str, kind: DeviceKind) -> None:
        record.device_kind = kind
        record.kernel_name = os.path.join(self.dev_dir, os.path.basename(node_dir))
        numbers = self.sysfs.major_minor(node_dir)
        if numbers is not None:
            record.major_minor = f"{numbers[0]}:{numbers[1]}"
            record.device_node = self.device_index.resolve(numbers[0], numbers[1], kind)
        if kind is DeviceKind.BLOCK:
            record.raw_attributes.update(self.sysfs.read_many(node_dir, BLOCK_ATTRS))

    # NVMe namespaces and controllers

    def _nvme_controllers(self, address_filter: AddressFilter) -> List[Tuple[str, int, str]]:
        nvme_dir = self.sysfs.class_path("nvme")
        controllers = []
        for name, minor in select_nvme_controllers(self._list_subsystem(nvme_dir, "NVMe")):
            if address_filter.matches(NVME_HOST_NUM, channel=minor):
                controllers.append((name, minor, os.path.join(nvme_dir, name)))
        controllers.sort(key=lambda item: item[1])
        return controllers

    def list_nvme(self, address_filter: Optional[AddressFilter] = None) -> List[TopologyRecord]:
        """Enumerate NVMe namespaces of every controller

        Args:
            address_filter: Only keep matching addresses, None for all

        Returns:
            Records sorted by address
        """
        address_filter = address_filter or AddressFilter()
        records = []

        for ctrl_name, minor, ctrl_dir in self._nvme_controllers(address_filter):
            cntlid = self.sysfs.read_int(ctrl_dir, "cntlid")
            if cntlid is None:
                self.logger.debug(f"{ctrl_name}: no cntlid attribute")
                cntlid = 0
            if not address_filter.matches(NVME_HOST_NUM, minor, cntlid):
                continue

            controller_attrs = self.sysfs.read_many(ctrl_dir, ("model", "serial", "firmware_rev"))
            transport = None
            for ns_name, ns_minor, nsid in select_nvme_namespaces(self.sysfs.list_dir(ctrl_dir) or []):
                if not address_filter.matches(NVME_HOST_NUM, ns_minor, cntlid, nsid):
                    continue
                if transport is None:
                    transport = self.classifier.classify_nvme(ctrl_dir)
                address = make_nvme_address(ns_minor, cntlid, nsid)
                records.append(self._nvme_record(address, ns_name, os.path.join(ctrl_dir, ns_name),
                                                 controller_attrs, transport))

        return sort_records(records)

    def _nvme_record(self, address, name: str, ns_dir: str, controller_attrs: dict,
                     transport) -> TopologyRecord:
        raw = {"type": "0", "vendor": "NVMe"}
        if "model" in controller_attrs:
            raw["model"] = controller_attrs["model"]
        if "serial" in controller_attrs:
            raw["serial"] = controller_attrs["serial"]
        if "firmware_rev" in controller_attrs:
            raw["rev"] = controller_attrs["firmware_rev"]
        raw.update(self.sysfs.read_many(ns_dir, NVME_NS_ATTRS))

        record = TopologyRecord(address=address, name=name, sysfs_path=ns_dir,
                                raw_attributes=raw, transport=transport)
        record.identity = nvme_identity(raw.get("wwid"), want_prefix=self.want_prefix)
        self._fill_node(record, ns_dir, DeviceKind.BLOCK)
        record.kernel_name = os.path.join(self.dev_dir, name)
        return record

    def list_controllers(self, address_filter: Optional[AddressFilter] = None) -> List[TopologyRecord]:
        """Enumerate NVMe controllers

        Returns:
            Records sorted by controller minor
        """
        address_filter = address_filter or AddressFilter()
        records = []

        for name, minor, ctrl_dir in self._nvme_controllers(address_filter):
            raw = self.sysfs.read_many(ctrl_dir, NVME_CTRL_ATTRS)
            try:
                cntlid = int(raw.get("cntlid", "0"))
            except ValueError:
                cntlid = 0
            record = TopologyRecord(address=make_nvme_address(minor, cntlid, 0), name=name,
                                    sysfs_path=ctrl_dir, raw_attributes=raw)
            record.device_kind = DeviceKind.CHAR
            record.kernel_name = os.path.join(self.dev_dir, name)
            numbers = self.sysfs.major_minor(ctrl_dir)
            if numbers is not None:
                record.major_minor = f"{numbers[0]}:{numbers[1]}"
                record.device_node = self.device_index.resolve(numbers[0], numbers[1], DeviceKind.CHAR)
            record.transport = self.classifier.classify_nvme(ctrl_dir)
            records.append(record)

        return records

    # SCSI hosts

    def list_hosts(self, address_filter: Optional[AddressFilter] = None) -> List[TopologyRecord]:
        """Enumerate SCSI hosts

        Only the host component of the filter is used.

        Returns:
            Records sorted by host number
        """
        address_filter = address_filter or AddressFilter()
        hosts_dir = self.sysfs.class_path("scsi_host")

        hosts = []
        for name in self._list_subsystem(hosts_dir, "SCSI host"):
            match = re.fullmatch(r"host([0-9]+)", name)
            if not match:
                continue
            host = int(match.group(1))
            if address_filter.matches(host):
                hosts.append((host, name))
        hosts.sort()

        records = []
        for host, name in hosts:
            host_dir = os.path.join(hosts_dir, name)
            record = TopologyRecord(address=make_scsi_address(host, 0, 0, 0), name=name,
                                    sysfs_path=host_dir,
                                    raw_attributes=self.sysfs.read_many(host_dir, SCSI_HOST_ATTRS))
            record.transport = self.classifier.classify_host(name)
            records.append(record)
        return records
