"""Device Identification VPD page (0x83) decoding"""

import logging
from enum import Enum
from typing import Iterator, Optional

from .errors import VpdPageError
from .models import (Association, DesignationDescriptor, IdentityKind,
                     LogicalUnitIdentity)
from .sysfs import SysfsReader

VPD_DEVICE_ID = 0x83
VPD_MAX_LEN = 512

# Designator types
DESIG_T10_VENDOR = 0x1
DESIG_EUI64 = 0x2
DESIG_NAA = 0x3
DESIG_SCSI_NAME = 0x8
DESIG_UUID = 0xa

# Code sets
CODE_SET_BINARY = 1
CODE_SET_ASCII = 2
CODE_SET_UTF8 = 3

PROTOCOL_ISCSI = 0x5

_module_logger = logging.getLogger(__name__)


class IterStatus(Enum):
    RUNNING = "running"
    DONE = "done"              # descriptors ended exactly at the page end
    TRUNCATED = "truncated"    # a descriptor claims bytes past the buffer


class DesignatorIterator(Iterator[DesignationDescriptor]):
    """Walks the designation descriptors of a page body

    Only descriptors matching every given filter are yielded. Once exhausted,
    status tells a clean end from a page shorter than its length fields.
    """

    def __init__(self, body: bytes, declared_len: int, association: Optional[int] = None,
                 designator_type: Optional[int] = None, code_set: Optional[int] = None):
        self._body = body
        self._declared_len = declared_len
        self._pos = 0
        self.association = association
        self.designator_type = designator_type
        self.code_set = code_set
        self.status = IterStatus.RUNNING

    @property
    def offset(self) -> int:
        """Offset of the next descriptor to examine"""
        return self._pos

    def __iter__(self) -> "DesignatorIterator":
        return self

    def __next__(self) -> DesignationDescriptor:
        while self.status is IterStatus.RUNNING:
            pos = self._pos
            if pos >= self._declared_len:
                self.status = IterStatus.DONE
                break
            if pos + 4 > len(self._body):
                self.status = IterStatus.TRUNCATED
                break
            end = pos + 4 + self._body[pos + 3]
            if end > len(self._body):
                self.status = IterStatus.TRUNCATED
                break
            self._pos = end

            descriptor = _make_descriptor(self._body, pos, end)
            if self._accepts(descriptor):
                return descriptor
        raise StopIteration

    def _accepts(self, descriptor: DesignationDescriptor) -> bool:
        if self.code_set is not None and descriptor.code_set != self.code_set:
            return False
        if self.association is not None and descriptor.association != self.association:
            return False
        if self.designator_type is not None and descriptor.designator_type != self.designator_type:
            return False
        return True


def _make_descriptor(body: bytes, pos: int, end: int) -> DesignationDescriptor:
    b0, b1 = body[pos], body[pos + 1]
    return DesignationDescriptor(
        offset=pos,
        protocol_id=b0 >> 4,
        code_set=b0 & 0xf,
        piv=bool(b1 & 0x80),
        association=(b1 >> 4) & 0x3,
        designator_type=b1 & 0xf,
        designator=bytes(body[pos + 4:end])
    )


def iterate_designators(page: bytes, association: Optional[int] = None,
                        designator_type: Optional[int] = None,
                        code_set: Optional[int] = None) -> DesignatorIterator:
    """Iterate the designation descriptors of a Device Identification page

    Args:
        page: Raw page including its 4 byte header
        association: Only yield this association (None for any)
        designator_type: Only yield this designator type (None for any)
        code_set: Only yield this code set (None for any)

    Returns:
        DesignatorIterator over the page body

    Raises:
        VpdPageError: If the header is short or not page 0x83
    """
    if len(page) < 4:
        raise VpdPageError(f"VPD page too short: {len(page)} bytes")
    if page[1] != VPD_DEVICE_ID:
        raise VpdPageError(f"Expected VPD page 0x{VPD_DEVICE_ID:02x}, got 0x{page[1]:02x}")
    declared_len = int.from_bytes(page[2:4], "big")
    return DesignatorIterator(page[4:4 + declared_len], declared_len, association,
                              designator_type, code_set)


def _first(page: bytes, logger: logging.Logger, **filters) -> Optional[DesignationDescriptor]:
    it = iterate_designators(page, **filters)
    descriptor = next(it, None)
    if descriptor is None and it.status is IterStatus.TRUNCATED:
        logger.debug(f"VPD page 0x83 descriptor list truncated at offset {it.offset}")
    return descriptor


def _text(data: bytes) -> str:
    return data.split(b"\x00", 1)[0].decode("utf-8", errors="replace")


def _identity(kind: IdentityKind, value: str, prefix: str, want_prefix: bool,
              capacity: Optional[int]) -> LogicalUnitIdentity:
    identity = LogicalUnitIdentity(kind=kind, value=value, prefix=prefix if want_prefix else None)
    if capacity is not None and len(str(identity)) > capacity:
        # keep the prefix when there is room for it
        room = max(capacity - len(identity.prefix or ""), 0)
        if identity.prefix and room == 0:
            identity.prefix = identity.prefix[:capacity]
        identity.value = identity.value[:room]
    return identity


def resolve_identity(page: bytes, want_prefix: bool = False, capacity: Optional[int] = None,
                     logger: Optional[logging.Logger] = None) -> LogicalUnitIdentity:
    """Select the canonical logical unit identifier from a page

    Priority: iSCSI SCSI name string, NAA, EUI-64, UUID, any other SCSI
    name string, then T10 vendor id. The first designator type found decides
    the result even when its length turns out to be invalid.

    Args:
        page: Raw Device Identification page
        want_prefix: Prepend "naa.", "eui.", "uuid." or "t10."
        capacity: Maximum length of the rendered identifier
        logger: Logger instance

    Returns:
        LogicalUnitIdentity, kind NONE when nothing usable was found
    """
    logger = logger or _module_logger
    none = LogicalUnitIdentity(kind=IdentityKind.NONE)
    lu = Association.LOGICAL_UNIT.value

    try:
        sns = _first(page, logger, association=lu, designator_type=DESIG_SCSI_NAME,
                     code_set=CODE_SET_UTF8)
    except VpdPageError as e:
        logger.debug(f"Ignoring Device Identification page: {e}")
        return none

    sns_text = _text(sns.designator) if sns else ""
    if sns:
        tport = _first(page, logger, association=Association.TARGET_PORT.value,
                       designator_type=DESIG_SCSI_NAME, code_set=CODE_SET_UTF8)
        if tport and tport.piv and tport.protocol_id == PROTOCOL_ISCSI:
            return _identity(IdentityKind.SCSI_NAME, sns_text, "", False, capacity)

    naa = _first(page, logger, association=lu, designator_type=DESIG_NAA, code_set=CODE_SET_BINARY)
    if naa:
        if naa.length not in (8, 16):
            return none
        return _identity(IdentityKind.NAA, naa.designator.hex(), "naa.", want_prefix, capacity)

    eui = _first(page, logger, association=lu, designator_type=DESIG_EUI64, code_set=CODE_SET_BINARY)
    if eui:
        if eui.length not in (8, 12, 16):
            return none
        return _identity(IdentityKind.EUI64, eui.designator.hex(), "eui.", want_prefix, capacity)

    uuid = _first(page, logger, association=lu, designator_type=DESIG_UUID, code_set=CODE_SET_BINARY)
    if uuid:
        if uuid.length != 18 or (uuid.designator[0] >> 4) & 0xf != 1:
            return _identity(IdentityKind.UUID, "??", "", False, capacity)
        raw = uuid.designator[2:18].hex()
        value = "-".join((raw[0:8], raw[8:12], raw[12:16], raw[16:20], raw[20:32]))
        return _identity(IdentityKind.UUID, value, "uuid.", want_prefix, capacity)

    if sns:
        return _identity(IdentityKind.SCSI_NAME, sns_text, "", False, capacity)

    t10 = _first(page, logger, association=lu, designator_type=DESIG_T10_VENDOR)
    if t10 and t10.code_set > CODE_SET_BINARY:
        if t10.length < 8:
            return none
        return _identity(IdentityKind.T10_VENDOR, _text(t10.designator), "t10.", want_prefix, capacity)

    return none


class VpdReader:
    """Reads the Device Identification page of SCSI devices from sysfs"""

    def __init__(self, sysfs: SysfsReader, logger: Optional[logging.Logger] = None):
        self.sysfs = sysfs
        self.logger = logger or logging.getLogger(__name__)

    def read_page(self, devname: str) -> Optional[bytes]:
        """Read vpd_pg83 of a device given its h:c:t:l name"""
        device_dir = self.sysfs.class_path("scsi_device", devname, "device")
        return self.sysfs.read_bytes(device_dir, "vpd_pg83", limit=VPD_MAX_LEN)

    def lu_identity(self, devname: str, want_prefix: bool = False,
                    capacity: Optional[int] = None) -> Optional[LogicalUnitIdentity]:
        """Resolve the logical unit identity of a SCSI device

        Returns:
            LogicalUnitIdentity, or None when the device has no readable page
        """
        page = self.read_page(devname)
        if page is None:
            return None
        identity = resolve_identity(page, want_prefix=want_prefix, capacity=capacity, logger=self.logger)
        self.logger.debug(f"{devname}: identity {identity.kind.value} {identity}")
        return identity
