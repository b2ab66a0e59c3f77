"""
Stateless big-endian field readers for JT808 payloads
"""
import struct
from datetime import datetime
from typing import Optional

from .errors import FramingError


def _require(data: bytes, offset: int, size: int):
    if offset < 0 or offset + size > len(data):
        raise FramingError(
            f"Truncated payload: need {size} bytes at offset {offset}, have {len(data)}"
        )


def read_word(data: bytes, offset: int) -> int:
    _require(data, offset, 2)
    return struct.unpack('>H', data[offset:offset + 2])[0]


def read_dword(data: bytes, offset: int) -> int:
    _require(data, offset, 4)
    return struct.unpack('>I', data[offset:offset + 4])[0]


def read_bytes(data: bytes, offset: int, size: int) -> bytes:
    _require(data, offset, size)
    return bytes(data[offset:offset + size])


def read_bcd(data: bytes, offset: int, size: int) -> str:
    """
    Convert BCD bytes to a digit string.

    Exactly one leading zero is trimmed, so "012345" becomes "12345"
    while "0" stays "0" and "0012" becomes "012".
    """
    raw = read_bytes(data, offset, size)
    digits = ""
    for byte in raw:
        digits += f"{(byte >> 4) & 0x0F:01d}{byte & 0x0F:01d}"
    if len(digits) > 1 and digits.startswith('0'):
        digits = digits[1:]
    return digits


def read_text(data: bytes) -> str:
    """Decode text as UTF-8, falling back to Latin-1 for single-byte encodings"""
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError:
        return data.decode('latin-1')


def read_bcd_time(data: bytes, offset: int) -> Optional[datetime]:
    """Parse 6-byte BCD time YYMMDDhhmmss, None if the calendar date is invalid"""
    bcd = read_bytes(data, offset, 6)
    values = [(byte >> 4) * 10 + (byte & 0x0F) for byte in bcd]
    try:
        return datetime(2000 + values[0], values[1], values[2], values[3], values[4], values[5])
    except ValueError:
        return None


def encode_bcd(digits: str, length: int) -> bytes:
    """Convert a digit string to BCD bytes, left padded with zeros"""
    s = digits.zfill(length * 2)[-length * 2:]
    result = bytearray()
    for i in range(0, len(s), 2):
        byte = ((int(s[i]) & 0x0F) << 4) | (int(s[i + 1]) & 0x0F)
        result.append(byte)
    return bytes(result)
