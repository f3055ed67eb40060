"""Address tuple codec for SCSI (h:c:t:l) and NVMe addresses

Handles the textual forms of an address, the SAM-5 hierarchical 8 byte LUN
and the "Linux LUN" integer the kernel derives from it, and the grammar of
the address filter given on the command line.
"""

import re
from enum import IntEnum
from typing import List, Optional, Sequence

from .errors import AddressParseError, FilterError
from .models import (LUN_BYTES, NVME_HOST_NUM, UINT64_LAST, AddressClass,
                     AddressFilter, AddressTuple, LunLevel)

UINT32_MAX = 0xffffffff

_LUN_NOT_SPECIFIED = b"\xff\xff"
_LEADING_DIGITS = re.compile(r"\s*([0-9]+)")
_DECIMAL = re.compile(r"[0-9]+")
_HEX_DIGITS = re.compile(r"[0-9a-fA-F]+")

# decimal rendering of an invalidated LUN or nsid
_INVALID_TEXT = "-1"
_NVME_SUFFIX = re.compile(r"([cnp])([0-9]+)")


class LunFormat(IntEnum):
    """Rendering of the LUN component"""

    DECIMAL = 0
    HEX = 1          # T10 bytes, trailing zero levels elided, '_' between levels
    FULL_HEX = 2     # all 8 T10 bytes as 16 hex digits


def lun_to_int(lun_bytes: bytes) -> int:
    """Convert an 8 byte T10 LUN to the Linux LUN integer

    Each 16 bit word of the T10 LUN is placed 16 bits higher than the
    previous one, so the first level ends up in the low order bits.
    """
    if len(lun_bytes) != LUN_BYTES:
        raise ValueError(f"LUN must be {LUN_BYTES} bytes, got {len(lun_bytes)}")
    value = 0
    for k in range(0, LUN_BYTES, 2):
        value |= int.from_bytes(lun_bytes[k:k + 2], "big") << (8 * k)
    return value


def int_to_lun(value: int) -> bytes:
    """Convert a Linux LUN integer back to its 8 byte T10 form"""
    if not 0 <= value <= UINT64_LAST:
        raise ValueError(f"LUN {value} does not fit in 64 bits")
    out = bytearray()
    for _ in range(0, LUN_BYTES, 2):
        out += (value & 0xffff).to_bytes(2, "big")
        value >>= 16
    return bytes(out)


def lun_word_flip(value: int) -> int:
    """Reverse the order of the four 16 bit words of a 64 bit value"""
    result = 0
    for k in range(4):
        result |= value & 0xffff
        if k > 2:
            break
        result <<= 16
        value >>= 16
    return result


def _extended_level_size(byte0: int) -> int:
    length_field = (byte0 & 0x30) >> 4
    method = byte0 & 0xf
    if (length_field, method) == (0, 1):
        return 2
    if (length_field, method) == (1, 2):
        return 4
    if (length_field, method) == (2, 2):
        return 6
    if (length_field, method) == (3, 0xf):
        # logical unit not specified
        return 2
    if length_field < 2:
        return 4
    if length_field == 2:
        return 6
    return 8


def decode_lun_levels(lun_bytes: bytes) -> List[LunLevel]:
    """Decode the levels of a SAM-5 hierarchical LUN

    Peripheral device addressing with a nonzero bus id continues to the next
    2 byte level; every other method ends the decode. Extended logical unit
    addressing spans 2, 4, 6 or 8 bytes depending on its length field.

    Args:
        lun_bytes: The 8 byte LUN as reported by the kernel

    Returns:
        Levels in order, their data covering the decoded extent of the LUN

    Raises:
        ValueError: If lun_bytes is not 8 bytes long
    """
    if len(lun_bytes) != LUN_BYTES:
        raise ValueError(f"LUN must be {LUN_BYTES} bytes, got {len(lun_bytes)}")
    if lun_bytes[:2] == _LUN_NOT_SPECIFIED:
        return [LunLevel(offset=0, data=bytes(lun_bytes[:2]))]

    levels: List[LunLevel] = []
    for k in range(4):
        offset = 2 * k
        byte0 = lun_bytes[offset]
        method = byte0 >> 6
        next_level = False

        if method == 0:
            # peripheral device addressing, bus id in the low 6 bits
            next_level = (byte0 & 0x3f) != 0
            size = 2
        elif method == 3:
            size = _extended_level_size(byte0)
        else:
            # flat space or logical unit addressing
            size = 2

        end = min(offset + size, LUN_BYTES)
        levels.append(LunLevel(offset=offset, data=bytes(lun_bytes[offset:end]),
                               is_continuation=k > 0))
        if not next_level or end >= LUN_BYTES:
            break
    return levels


def encode_lun_levels(levels: Sequence[LunLevel]) -> bytes:
    """Rebuild an 8 byte LUN from decoded levels, zero filling the rest"""
    out = bytearray(LUN_BYTES)
    for level in levels:
        out[level.offset:level.offset + level.byte_count] = level.data
    return bytes(out)


def make_scsi_address(host: int, channel: int, target: int, lun: int) -> AddressTuple:
    return AddressTuple(AddressClass.SCSI, host, channel, target, lun, int_to_lun(lun))


def make_nvme_address(cdev_minor: int, cntlid: int, nsid: int) -> AddressTuple:
    """Build the address of an NVMe namespace

    The namespace id is also stored little-endian in the LUN bytes so both
    address classes carry an 8 byte LUN representation.
    """
    lun_bytes = (nsid & UINT32_MAX).to_bytes(4, "little") + bytes(4)
    return AddressTuple(AddressClass.NVME, NVME_HOST_NUM, cdev_minor, cntlid, nsid, lun_bytes)


def _parse_lun_text(text: str) -> int:
    """Parse the LUN component: decimal Linux LUN or 0x prefixed T10 hex

    Hex is read as T10 bytes from the left, trailing zero bytes may be
    omitted and '_' level separators are ignored.
    """
    if text[:2].lower() == "0x":
        digits = text[2:].replace("_", "")
        if not digits or len(digits) > 2 * LUN_BYTES or not _HEX_DIGITS.fullmatch(digits):
            raise AddressParseError(f"Bad hex LUN: {text!r}")
        if len(digits) % 2:
            digits = "0" + digits
        return lun_to_int(bytes.fromhex(digits).ljust(LUN_BYTES, b"\x00"))
    if text == _INVALID_TEXT:
        return UINT64_LAST
    if not _DECIMAL.fullmatch(text):
        raise AddressParseError(f"Bad LUN: {text!r}")
    value = int(text)
    if value > UINT64_LAST:
        raise AddressParseError(f"LUN out of range: {text!r}")
    return value


def _parse_nvme_name(text: str) -> AddressTuple:
    """Parse nvme<n>[c<cntlid>][n<nsid>][p<part>] kernel names"""
    match = re.match(r"nvme([0-9]+)", text, re.IGNORECASE)
    if not match:
        raise AddressParseError(f"Expected nvme<n> in {text!r}")
    cdev_minor = int(match.group(1))
    cntlid = 0
    nsid = 0
    pos = match.end()
    while pos < len(text):
        suffix = _NVME_SUFFIX.match(text, pos)
        if not suffix:
            break
        letter, number = suffix.group(1), int(suffix.group(2))
        if letter == "c":
            # controller ids start at 1
            cntlid = number + 1
        elif letter == "n":
            nsid = number
        pos = suffix.end()
    return make_nvme_address(cdev_minor, cntlid, nsid)


def _parse_nvme_tuple(fields: List[str], text: str) -> AddressTuple:
    """Parse the N:<minor>:<cntlid>:<nsid> form produced by format_address"""
    if len(fields) != 4:
        raise AddressParseError(f"Expected N:c:t:l, got {text!r}")
    if not all(_DECIMAL.fullmatch(f) for f in fields[1:3]):
        raise AddressParseError(f"Non numeric NVMe field in {text!r}")
    return make_nvme_address(int(fields[1]), int(fields[2]), _parse_nsid_text(fields[3], text))


def _parse_nsid_text(field: str, text: str) -> int:
    """Parse a namespace id: decimal, 0x prefixed hex or -1 for invalid"""
    if field == _INVALID_TEXT:
        return UINT32_MAX
    if field[:2].lower() == "0x":
        if len(field) > 10 or not _HEX_DIGITS.fullmatch(field[2:]):
            raise AddressParseError(f"Bad hex namespace id in {text!r}")
        return int(field[2:], 16)
    if not _DECIMAL.fullmatch(field) or int(field) > UINT32_MAX:
        raise AddressParseError(f"Bad namespace id in {text!r}")
    return int(field)


def parse_address(text: str) -> AddressTuple:
    """Parse an address string

    Accepts the SCSI form "h:c:t:l" (LUN decimal or 0x T10 hex), NVMe kernel
    names such as "nvme0n1" or "nvme1c2n3", and the "N:c:t:l" NVMe form.

    Args:
        text: Address text, optional surrounding brackets are ignored

    Returns:
        Parsed AddressTuple

    Raises:
        AddressParseError: If a field is missing or not numeric
    """
    stripped = text.strip().lstrip("[").rstrip("]")
    if not stripped:
        raise AddressParseError("Empty address")

    if stripped[0] in "Nn":
        if stripped[:4].lower() == "nvme":
            return _parse_nvme_name(stripped)
        return _parse_nvme_tuple(stripped.split(":"), text)

    fields = stripped.split(":")
    if len(fields) != 4:
        raise AddressParseError(f"Expected h:c:t:l, got {text!r}")
    if not all(_DECIMAL.fullmatch(f) for f in fields[:3]):
        raise AddressParseError(f"Non numeric field in {text!r}")
    host, channel, target = (int(f) for f in fields[:3])

    lun = _parse_lun_text(fields[3])
    return make_scsi_address(host, channel, target, lun)


def _format_lun(address: AddressTuple, lun_format: LunFormat) -> str:
    if address.is_nvme:
        nsid = address.lun & UINT32_MAX
        if lun_format == LunFormat.HEX:
            return f"0x{nsid:04x}"
        if lun_format >= LunFormat.FULL_HEX:
            return f"0x{nsid:08x}"
        return _INVALID_TEXT if nsid == UINT32_MAX else str(nsid)

    if lun_format == LunFormat.HEX:
        parts = ["0x"]
        for level in decode_lun_levels(address.lun_bytes):
            if level.is_continuation:
                parts.append("_")
            parts.append(level.data.hex())
        return "".join(parts)
    if lun_format >= LunFormat.FULL_HEX:
        return f"0x{lun_word_flip(address.lun):016x}"
    return _INVALID_TEXT if address.lun == UINT64_LAST else str(address.lun)


def format_address(address: AddressTuple, lun_format: LunFormat = LunFormat.DECIMAL,
                   host_only: bool = False, capacity: Optional[int] = None) -> str:
    """Render an address as text

    Args:
        address: Address to render
        lun_format: Rendering of the LUN component
        host_only: Render only the host (and NVMe controller minor)
        capacity: Maximum number of characters, output is truncated to fit

    Returns:
        "h:c:t:l", "N:c:t:nsid", or the host part only
    """
    host = "N" if address.is_nvme else str(address.host)
    if host_only:
        text = f"{host}:{address.channel}" if address.is_nvme else host
    else:
        text = f"{host}:{address.channel}:{address.target}:{_format_lun(address, LunFormat(min(lun_format, 2)))}"
    if capacity is not None and capacity >= 0:
        return text[:capacity]
    return text


def _filter_component(text: str, index: int, nvme: bool = False) -> Optional[int]:
    """Decode one filter component, None meaning unspecified

    A 0x prefixed LUN is T10 bytes for SCSI and a plain hex namespace id
    when the filter selects NVMe.
    """
    if not text or text[0] in "-*?":
        return None
    if index == 0 and text.upper() == "N":
        return NVME_HOST_NUM
    if index == 3 and text[:2].lower() == "0x":
        lun_text = text.rstrip("]")
        try:
            if nvme:
                return _parse_nsid_text(lun_text, text)
            return _parse_lun_text(lun_text)
        except AddressParseError:
            raise FilterError(f"Bad LUN in filter: {text!r}")

    match = _LEADING_DIGITS.match(text)
    if match:
        return int(match.group(1))
    if "]" in text:
        return None
    raise FilterError(f"Unable to decode {text!r} as a number",
                      hint="expected [H][:C[:T[:L]]] with '-', '*' or '?' as wildcards")


def parse_filter(args: Sequence[str]) -> AddressFilter:
    """Decode the command line address filter

    Accepts "host<n>", a single "H:C:T:L" argument (trailing components
    optional, brackets tolerated) or up to four separate components.

    Args:
        args: Positional filter arguments

    Returns:
        AddressFilter, empty when no arguments are given

    Raises:
        FilterError: If a component is not a number or there are too many
    """
    if not args:
        return AddressFilter()
    if len(args) > 4:
        raise FilterError(f"Too many filter arguments: {' '.join(args)}")

    first = args[0]
    if first[:4].lower() == "host":
        first = first[4:]
    if len(args) > 1:
        if ":" in first:
            raise FilterError("Filter given as separate arguments cannot contain ':'")
        text = ":".join([first] + list(args[1:]))
    else:
        text = first

    text = text.lstrip(" \t[")
    if not text:
        return AddressFilter()

    components = text.split(":")
    if len(components) > 4:
        raise FilterError(f"Filter has too many ':' separators: {text!r}")

    nvme = components[0].strip().upper() == "N"
    values = [_filter_component(c.strip(), k, nvme) for k, c in enumerate(components)]
    values += [None] * (4 - len(values))
    return AddressFilter(host=values[0], channel=values[1], target=values[2], lun=values[3])
