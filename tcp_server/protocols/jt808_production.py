"""
Production-ready JT/T 808 Protocol Handler
Implements the JT/T 808-2011/2013 terminal messages used by the gateway
"""
import logging
import string
from typing import Callable, Dict, Optional, Tuple

from config import settings
from .base import BaseProtocolHandler
from .binary_readers import (
    read_bcd, read_bcd_time, read_bytes, read_dword, read_text, read_word,
)
from .errors import FramingError, LengthMismatch
from .jt808_framing import FRAME_MARKER, unwrap_frame
from .jt808_messages import (
    MSG_HEARTBEAT, MSG_LOCATION_REPORT, MSG_TERMINAL_AUTH, MSG_TERMINAL_REGISTER,
    MSG_TERMINAL_RESPONSE, AdditionalItem, FragmentInfo, Heartbeat, JT808Report,
    LocationReport, MessageHeader, TerminalAuthentication, TerminalRegistration,
    TerminalResponse,
)
from .jt808_responses import acknowledgement_for

logger = logging.getLogger(__name__)

HEADER_LENGTH = 12
FRAGMENT_INFO_LENGTH = 4

# Status bits of a location report
STATUS_GNSS_FIXED = 0x02
STATUS_SOUTH = 0x04
STATUS_WEST = 0x08

LOCATION_BASE_LENGTH = 28


def decode_header(payload: bytes) -> Tuple[MessageHeader, int]:
    """Parse JT808 message header, returning it with the offset where the body starts"""
    if len(payload) < HEADER_LENGTH:
        raise FramingError(f"Header needs {HEADER_LENGTH} bytes, got {len(payload)}")

    command_id = read_word(payload, 0)

    props = read_word(payload, 2)
    body_length = props & 0x03FF  # Bits 0-9
    encryption = (props >> 10) & 0x07  # Bits 10-12
    is_subpackage = bool((props >> 13) & 0x01)  # Bit 13

    device_id = read_bcd(payload, 4, 6)
    device_bcd = read_bytes(payload, 4, 6)
    sequence = read_word(payload, 10)
    body_start = HEADER_LENGTH

    fragment = None
    if is_subpackage:
        fragment = FragmentInfo(
            total=read_word(payload, body_start),
            index=read_word(payload, body_start + 2),
        )
        body_start += FRAGMENT_INFO_LENGTH

    header = MessageHeader(
        command_id=command_id,
        body_properties=props,
        body_length=body_length,
        encryption=encryption,
        is_subpackage=is_subpackage,
        device_id=device_id,
        device_bcd=device_bcd,
        sequence=sequence,
        fragment=fragment,
    )
    return header, body_start


def decode_registration(body: bytes) -> TerminalRegistration:
    """Terminal registration (0x0100)"""
    plate = read_text(body[25:]).strip('\x00') if len(body) > 25 else ""
    return TerminalRegistration(
        province_id=read_word(body, 0),
        city_id=read_word(body, 2),
        manufacturer_id=read_bytes(body, 4, 5),
        terminal_model=read_bytes(body, 9, 8),
        terminal_id=read_bytes(body, 17, 7),
        plate_color=read_bytes(body, 24, 1)[0],
        plate=plate or None,
    )


def decode_authentication(body: bytes) -> TerminalAuthentication:
    """Terminal authentication (0x0102)"""
    return TerminalAuthentication(auth_code=read_text(body).strip('\x00'))


def decode_heartbeat(body: bytes) -> Heartbeat:
    return Heartbeat()


def decode_terminal_response(body: bytes) -> TerminalResponse:
    """Terminal general response (0x0001)"""
    return TerminalResponse(
        reply_sequence=read_word(body, 0),
        reply_command_id=read_word(body, 2),
        result=read_bytes(body, 4, 1)[0],
    )


def _additional_items(data: bytes):
    items = []
    offset = 0
    while offset + 2 <= len(data):
        item_id, size = data[offset], data[offset + 1]
        if offset + 2 + size > len(data):
            logger.debug(f"Truncated additional item 0x{item_id:02x} at offset {offset}")
            break
        items.append(AdditionalItem(item_id=item_id, data=data[offset + 2:offset + 2 + size]))
        offset += 2 + size
    return items


def decode_location(body: bytes) -> LocationReport:
    """Location report (0x0200)"""
    alarm = read_dword(body, 0)
    status = read_dword(body, 4)

    # Coordinates are unsigned, hemisphere comes from the status bits
    latitude = read_dword(body, 8) / 1000000.0
    longitude = read_dword(body, 12) / 1000000.0
    if status & STATUS_SOUTH:
        latitude = -latitude
    if status & STATUS_WEST:
        longitude = -longitude

    return LocationReport(
        alarm=alarm,
        status=status,
        latitude=latitude,
        longitude=longitude,
        altitude=read_word(body, 16),
        speed=read_word(body, 18) / 10.0,
        direction=read_word(body, 20),
        gnss_time=read_bcd_time(body, 22),
        gnss_fixed=bool(status & STATUS_GNSS_FIXED),
        extras=_additional_items(body[LOCATION_BASE_LENGTH:]),
    )


BODY_DECODERS: Dict[int, Callable[[bytes], object]] = {
    MSG_TERMINAL_RESPONSE: decode_terminal_response,
    MSG_HEARTBEAT: decode_heartbeat,
    MSG_TERMINAL_REGISTER: decode_registration,
    MSG_TERMINAL_AUTH: decode_authentication,
    MSG_LOCATION_REPORT: decode_location,
}


def decode_frame(frame: bytes) -> JT808Report:
    """
    Decode one complete 0x7E delimited frame.

    Unknown commands produce a header-only report. A declared body length
    that disagrees with the bytes present is logged and flagged; the
    bytes actually present are decoded.
    """
    content = unwrap_frame(frame)
    header, body_start = decode_header(content)
    body = content[body_start:]

    length_mismatch = header.body_length != len(body)
    if length_mismatch:
        mismatch = LengthMismatch(header.body_length, len(body))
        logger.warning(f"{mismatch} for command {header.command_hex} from {header.device_id}")

    decoder = BODY_DECODERS.get(header.command_id)
    if decoder is None:
        logger.debug(f"No body decoder for command {header.command_hex}, forwarding header only")
        decoded_body = None
    else:
        decoded_body = decoder(body)

    return JT808Report(
        header=header,
        body=decoded_body,
        payload=body,
        length_mismatch=length_mismatch,
        raw=bytes(frame),
    )


def _to_bytes(data) -> bytes:
    """Accept raw frames or their hex text"""
    if isinstance(data, str):
        text = data.strip()
        if text and all(c in string.hexdigits for c in text) and len(text) % 2 == 0:
            return bytes.fromhex(text)
        return text.encode('latin-1', errors='ignore')
    return bytes(data)


class JT808ProductionHandler(BaseProtocolHandler):
    """
    Production JT/T 808 protocol handler with full message parsing
    """

    def __init__(self, device_id: str = None, auth_code: str = None):
        super().__init__(device_id)
        self.auth_code = auth_code if auth_code is not None else settings.JT808_AUTH_CODE

    def get_protocol_name(self) -> str:
        return "JT808"

    def can_handle(self, data) -> bool:
        """Check if this is JT808 protocol data"""
        raw = _to_bytes(data)
        return len(raw) >= 2 and raw[0] == FRAME_MARKER

    def decode_message(self, data) -> JT808Report:
        report = decode_frame(_to_bytes(data))
        if report.body is not None:
            logger.debug(f"JT808 {report.body.kind} from {report.header.device_id}")
        return report

    def create_response(self, report: JT808Report) -> Optional[bytes]:
        """Create proper JT808 acknowledgement frame"""
        return acknowledgement_for(report, self.auth_code)
