"""
JT/T 808 framing codec: byte stuffing, XOR checksum and frame markers
"""
import logging

from .errors import ChecksumMismatch, FramingError

logger = logging.getLogger(__name__)

FRAME_MARKER = 0x7E
ESCAPE_BYTE = 0x7D

# Header (12 bytes) plus the trailing checksum byte
MIN_PAYLOAD_LENGTH = 13


def unescape(data: bytes) -> bytes:
    """Unescape JT808 data (0x7D 0x02 -> 0x7E, 0x7D 0x01 -> 0x7D)"""
    result = bytearray()
    i = 0
    while i < len(data):
        if data[i] == ESCAPE_BYTE and i + 1 < len(data):
            if data[i + 1] == 0x02:
                result.append(FRAME_MARKER)
                i += 2
            elif data[i + 1] == 0x01:
                result.append(ESCAPE_BYTE)
                i += 2
            else:
                result.append(data[i])
                i += 1
        else:
            result.append(data[i])
            i += 1
    return bytes(result)


def escape(data: bytes) -> bytes:
    """Escape JT808 data for transmission"""
    result = bytearray()
    for byte in data:
        if byte == FRAME_MARKER:
            result.extend([ESCAPE_BYTE, 0x02])
        elif byte == ESCAPE_BYTE:
            result.extend([ESCAPE_BYTE, 0x01])
        else:
            result.append(byte)
    return bytes(result)


def checksum(data: bytes) -> int:
    """XOR of every byte, 0 for empty input"""
    value = 0
    for byte in data:
        value ^= byte
    return value


def unwrap_frame(frame: bytes) -> bytes:
    """
    Validate a full frame and return header+body without markers or checksum.

    Raises FramingError for bad markers or a short payload and
    ChecksumMismatch when the trailing byte does not match.
    """
    if len(frame) < 2 or frame[0] != FRAME_MARKER or frame[-1] != FRAME_MARKER:
        raise FramingError("Frame must start and end with 0x7E")

    payload = unescape(frame[1:-1])
    if len(payload) < MIN_PAYLOAD_LENGTH:
        raise FramingError(
            f"Payload too short: {len(payload)} bytes, need {MIN_PAYLOAD_LENGTH}"
        )

    content, received = payload[:-1], payload[-1]
    calculated = checksum(content)
    if received != calculated:
        raise ChecksumMismatch(received, calculated)

    return content


def wrap_frame(content: bytes) -> bytes:
    """Append checksum, escape and add frame markers"""
    payload = content + bytes([checksum(content)])
    return bytes([FRAME_MARKER]) + escape(payload) + bytes([FRAME_MARKER])
