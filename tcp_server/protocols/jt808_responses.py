"""
JT/T 808 acknowledgement frames sent back to the terminal
"""
import logging
import struct
from typing import Optional, Union

from .binary_readers import encode_bcd
from .jt808_framing import wrap_frame
from .jt808_messages import (
    MSG_HEARTBEAT, MSG_LOCATION_REPORT, MSG_REGISTER_RESPONSE, MSG_SERVER_RESPONSE,
    MSG_TERMINAL_AUTH, MSG_TERMINAL_REGISTER, JT808Report,
)

logger = logging.getLogger(__name__)

RESULT_SUCCESS = 0
RESULT_FAILURE = 1

# Body of the location report acknowledgement
LOCATION_ACK_BODY = bytes([0x00, 0x02, 0x00])


def build_frame(command_id: int, device_id: Union[str, bytes], sequence: int, body: bytes = b"") -> bytes:
    """
    Create a complete JT808 frame: header, body, checksum, escaping and markers.

    ``device_id`` is either a digit string or the 6 BCD bytes of a received
    header, which are copied as they are.
    """
    props = len(body) & 0x03FF  # No encryption, no subpackage

    header = struct.pack('>H', command_id)
    header += struct.pack('>H', props)
    if isinstance(device_id, bytes):
        if len(device_id) != 6:
            raise ValueError(f"Device id needs 6 BCD bytes, got {len(device_id)}")
        header += device_id
    else:
        header += encode_bcd(device_id, 6)
    header += struct.pack('>H', sequence & 0xFFFF)

    return wrap_frame(header + body)


def registration_ack(device_id: Union[str, bytes], sequence: int, auth_code: str,
                     result: int = RESULT_SUCCESS) -> bytes:
    """Registration response (0x8100)"""
    body = struct.pack('>H', sequence)
    body += struct.pack('B', result)
    if result == RESULT_SUCCESS:
        body += auth_code.encode('ascii')
    return build_frame(MSG_REGISTER_RESPONSE, device_id, sequence, body)


def generic_ack(device_id: Union[str, bytes], sequence: int, command_id: int,
                result: int = RESULT_SUCCESS) -> bytes:
    """Platform general response (0x8001)"""
    body = struct.pack('>H', sequence)
    body += struct.pack('>H', command_id)
    body += struct.pack('B', result)
    return build_frame(MSG_SERVER_RESPONSE, device_id, sequence, body)


def heartbeat_ack(device_id: Union[str, bytes], sequence: int) -> bytes:
    return generic_ack(device_id, sequence, MSG_HEARTBEAT)


def location_ack(device_id: Union[str, bytes], sequence: int) -> bytes:
    return build_frame(MSG_SERVER_RESPONSE, device_id, sequence, LOCATION_ACK_BODY)


def acknowledgement_for(report: JT808Report, auth_code: str) -> Optional[bytes]:
    """Pick the acknowledgement for a decoded frame, None when the command needs none"""
    header = report.header
    command_id = header.command_id
    device_id = header.device_bcd or header.device_id

    if command_id == MSG_TERMINAL_REGISTER:
        return registration_ack(device_id, header.sequence, auth_code)
    elif command_id == MSG_TERMINAL_AUTH:
        return generic_ack(device_id, header.sequence, command_id)
    elif command_id == MSG_HEARTBEAT:
        return heartbeat_ack(device_id, header.sequence)
    elif command_id == MSG_LOCATION_REPORT:
        return location_ack(device_id, header.sequence)

    logger.debug(f"No acknowledgement for command {header.command_hex}")
    return None
