"""Data models for SCSI and NVMe storage topology"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

# Pseudo host number used for every NVMe address, above any real SCSI host
NVME_HOST_NUM = 0x7fff
UINT64_LAST = 0xffffffffffffffff
LUN_BYTES = 8


class AddressClass(Enum):
    SCSI = "scsi"
    NVME = "nvme"


class DeviceKind(Enum):
    BLOCK = "block"
    CHAR = "char"


class Association(Enum):
    """Association field of a designation descriptor"""

    LOGICAL_UNIT = 0
    TARGET_PORT = 1
    TARGET_DEVICE = 2
    RESERVED = 3


class IdentityKind(Enum):
    NAA = "naa"
    EUI64 = "eui"
    SCSI_NAME = "scsi_name"
    T10_VENDOR = "t10"
    UUID = "uuid"
    NVME = "nvme"
    NONE = "none"


class TransportKind(Enum):
    SPI = "spi"
    FC = "fc"
    FCOE = "fcoe"
    SAS = "sas"
    SAS_CLASS = "sas_class"
    SBP = "sbp"
    ISCSI = "iscsi"
    SRP = "srp"
    USB = "usb"
    ATA = "ata"
    SATA = "sata"
    PCIE = "pcie"
    NVME_FABRICS = "nvme_fabrics"
    UNKNOWN = "unknown"


# Peripheral device types, indexed by the 5 bit type code
DEVICE_TYPE_SHORT = [
    "disk", "tape", "printer", "process", "worm", "cd/dvd", "scanner",
    "optical", "mediumx", "comms", "(0xa)", "(0xb)", "storage", "enclosu",
    "sim dsk", "opti rd", "bridge", "osd", "adi", "sec man", "zbc",
    "(0x15)", "(0x16)", "(0x17)", "(0x18)", "(0x19)", "(0x1a)", "(0x1b)",
    "(0x1c)", "(0x1d)", "wlun", "no dev",
]

DEVICE_TYPE_LONG = [
    "Direct-Access", "Sequential-Access", "Printer", "Processor",
    "Write-once", "CD-ROM", "Scanner", "Optical memory",
    "Medium Changer", "Communications", "Unknown (0xa)", "Unknown (0xb)",
    "Storage array", "Enclosure", "Simplified direct-access",
    "Optical card read/writer", "Bridge controller", "Object based storage",
    "Automation Drive interface", "Security manager", "Zoned Block",
    "Reserved (0x15)", "Reserved (0x16)", "Reserved (0x17)",
    "Reserved (0x18)", "Reserved (0x19)", "Reserved (0x1a)",
    "Reserved (0x1b)", "Reserved (0x1c)", "Reserved (0x1d)",
    "Well known LU", "No device",
]


def device_type_name(type_code: Optional[str], long_name: bool = False) -> str:
    """Map the sysfs 'type' attribute to a peripheral device type name

    Args:
        type_code: Value of the 'type' attribute, may be None when absent
        long_name: Return the long descriptive name instead of the short one

    Returns:
        Device type name, or "-" when the code is missing or invalid
    """
    table = DEVICE_TYPE_LONG if long_name else DEVICE_TYPE_SHORT
    try:
        code = int(type_code)
    except (TypeError, ValueError):
        return "-"
    if 0 <= code < len(table):
        return table[code]
    return "-"


@dataclass(frozen=True)
class AddressTuple:
    """Canonical 4 field address of a SCSI logical unit or NVMe namespace"""

    address_class: AddressClass      # SCSI or NVMe
    host: int                        # SCSI host number, NVME_HOST_NUM for NVMe
    channel: int                     # SCSI channel, NVMe controller minor
    target: int                      # SCSI target id, NVMe controller id
    lun: int                         # Linux LUN integer, NVMe namespace id
    lun_bytes: bytes = bytes(LUN_BYTES)  # T10 8 byte LUN, NVMe nsid little-endian

    @property
    def is_nvme(self) -> bool:
        return self.address_class is AddressClass.NVME

    @property
    def sort_key(self) -> Tuple[int, int, int, int, int]:
        """Numeric ordering key, every NVMe address sorts after every SCSI one"""
        rank = 1 if self.is_nvme else 0
        return (rank, self.host, self.channel, self.target, self.lun)

    def __lt__(self, other: "AddressTuple") -> bool:
        if not isinstance(other, AddressTuple):
            return NotImplemented
        return self.sort_key < other.sort_key

    def to_dict(self) -> dict:
        """Convert address to dictionary representation"""
        return {
            "class": self.address_class.value,
            "host": self.host,
            "channel": self.channel,
            "target": self.target,
            "lun": self.lun,
            "lun_bytes": self.lun_bytes.hex()
        }


@dataclass(frozen=True)
class LunLevel:
    """One decoded level of a SAM-5 hierarchical LUN"""

    offset: int                      # Byte offset within the 8 byte LUN
    data: bytes                      # Bytes belonging to this level
    is_continuation: bool = False    # True when a separator precedes this level

    @property
    def byte_count(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class AddressFilter:
    """Component-wise address filter, None matches any value"""

    host: Optional[int] = None
    channel: Optional[int] = None
    target: Optional[int] = None
    lun: Optional[int] = None

    @property
    def is_nvme(self) -> bool:
        return self.host == NVME_HOST_NUM

    @property
    def is_empty(self) -> bool:
        return self.host is None and self.channel is None and \
            self.target is None and self.lun is None

    def matches(self, host: int, channel: Optional[int] = None,
                target: Optional[int] = None, lun: Optional[int] = None) -> bool:
        """Exact equality on every specified component

        Components passed as None by the caller are not compared, which lets
        host and controller listings reuse the same filter.
        """
        pairs = ((self.host, host), (self.channel, channel),
                 (self.target, target), (self.lun, lun))
        for wanted, actual in pairs:
            if wanted is not None and actual is not None and wanted != actual:
                return False
        return True


@dataclass(frozen=True)
class DeviceNodeEntry:
    """A block or character special file found in the device directory"""

    major: int
    minor: int
    kind: DeviceKind
    path: str
    modified_at: float               # st_mtime of the node


@dataclass(frozen=True)
class DesignationDescriptor:
    """One designation descriptor of a Device Identification VPD page"""

    offset: int                      # Offset of the descriptor header in the page body
    protocol_id: int                 # Upper nibble of byte 0
    code_set: int                    # 1 binary, 2 ASCII, 3 UTF-8
    piv: bool                        # Protocol identifier valid bit
    association: int
    designator_type: int
    designator: bytes

    @property
    def length(self) -> int:
        return len(self.designator)


@dataclass
class LogicalUnitIdentity:
    """Canonical identifier of a logical unit"""

    kind: IdentityKind
    value: str = ""
    prefix: Optional[str] = None     # e.g. "naa.", only set when requested

    def __str__(self) -> str:
        return f"{self.prefix or ''}{self.value}"

    def render(self, capacity: Optional[int] = None) -> str:
        """Render the identifier, truncated to at most capacity characters"""
        text = str(self)
        if capacity is not None and capacity >= 0:
            return text[:capacity]
        return text

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "prefix": self.prefix,
            "value": self.value
        }


@dataclass
class TransportInfo:
    """Transport classification of a host or device"""

    kind: TransportKind = TransportKind.UNKNOWN
    summary: str = ""
    attributes: Dict[str, str] = field(default_factory=dict)

    @property
    def is_known(self) -> bool:
        return self.kind is not TransportKind.UNKNOWN

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "summary": self.summary,
            "attributes": dict(self.attributes)
        }


@dataclass
class TopologyRecord:
    """One enumerated logical unit, namespace, host or controller"""

    address: AddressTuple
    name: str                        # Directory entry name, e.g. "2:0:1:0" or "host2"
    sysfs_path: str = ""             # Directory the record was built from
    device_node: Optional[str] = None    # Primary node (e.g. /dev/sda)
    kernel_name: Optional[str] = None    # /dev/<kernel name> even when no node exists
    device_kind: Optional[DeviceKind] = None
    major_minor: Optional[str] = None    # "maj:min" of the primary node
    generic_node: Optional[str] = None   # SCSI generic node (e.g. /dev/sg0)
    identity: Optional[LogicalUnitIdentity] = None
    transport: Optional[TransportInfo] = None
    wwn: Optional[str] = None
    scsi_id: Optional[str] = None
    raw_attributes: Dict[str, str] = field(default_factory=dict)

    def attribute(self, name: str, default: str = "?") -> str:
        """Get a raw attribute, substituting a placeholder when absent"""
        value = self.raw_attributes.get(name)
        return default if value is None else value

    @property
    def device_type(self) -> str:
        if self.address.is_nvme:
            return "disk"
        return device_type_name(self.raw_attributes.get("type"))

    def to_dict(self) -> dict:
        """Convert record to dictionary representation"""
        return {
            "name": self.name,
            "address": self.address.to_dict(),
            "sysfs_path": self.sysfs_path,
            "device_node": self.device_node,
            "kernel_name": self.kernel_name,
            "device_kind": self.device_kind.value if self.device_kind else None,
            "major_minor": self.major_minor,
            "generic_node": self.generic_node,
            "identity": self.identity.to_dict() if self.identity else None,
            "transport": self.transport.to_dict() if self.transport else None,
            "wwn": self.wwn,
            "scsi_id": self.scsi_id,
            "attributes": dict(self.raw_attributes)
        }


@dataclass
class TopologySettings:
    """Effective settings for one run, from configuration and command line"""

    sysfsroot: str = "/sys"
    devroot: str = "/dev"
    lunhex: int = 0                  # 0 decimal, 1 T10 hex, 2 full 16 digit hex
    no_nvme: bool = False
    holder_depth: int = 8            # Max holder links followed by scsi_id lookup
    unit: int = 0                    # Identity rendering, >= 4 keeps the prefix
    size_units: str = "decimal"

    def to_dict(self) -> dict:
        return {
            "sysfsroot": self.sysfsroot,
            "devroot": self.devroot,
            "lunhex": self.lunhex,
            "no_nvme": self.no_nvme,
            "holder_depth": self.holder_depth,
            "unit": self.unit,
            "size_units": self.size_units
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TopologySettings":
        """Create TopologySettings from dictionary"""
        return cls(
            sysfsroot=str(data.get("sysfsroot", "/sys")),
            devroot=str(data.get("devroot", "/dev")),
            lunhex=int(data.get("lunhex", 0)),
            no_nvme=bool(data.get("no_nvme", False)),
            holder_depth=int(data.get("holder_depth", 8)),
            unit=int(data.get("unit", 0)),
            size_units=str(data.get("size_units", "decimal"))
        )


def sort_records(records: List[TopologyRecord]) -> List[TopologyRecord]:
    """Sort records by numeric address"""
    return sorted(records, key=lambda r: r.address.sort_key)
