import struct
from datetime import datetime

import pytest

from tcp_server.protocols.binary_readers import encode_bcd
from tcp_server.protocols.errors import ChecksumMismatch, FramingError
from tcp_server.protocols.jt808_framing import wrap_frame
from tcp_server.protocols.jt808_messages import (
    MSG_HEARTBEAT, MSG_LOCATION_REPORT, MSG_TERMINAL_AUTH, MSG_TERMINAL_RESPONSE,
    Heartbeat, LocationReport, TerminalRegistration,
)
from tcp_server.protocols.jt808_production import (
    JT808ProductionHandler, decode_frame, decode_header, decode_location,
)
from tcp_server.protocols.jt808_responses import build_frame

from .frames import DEVICE_ID, REGISTRATION_HEX, location_body


def _content(command_id, props, body, sequence=1):
    return struct.pack('>HH', command_id, props) + encode_bcd(DEVICE_ID, 6) + struct.pack('>H', sequence) + body


def test_registration_frame(registration_frame):
    """Captured registration decodes header and every body field"""
    report = decode_frame(registration_frame)

    assert report.header.command_id == 0x0100
    assert report.header.body_length == 45
    assert report.header.device_id == "48050022171"
    assert report.header.sequence == 0x1C7A
    assert report.header.fragment is None
    assert not report.length_mismatch

    body = report.body
    assert isinstance(body, TerminalRegistration)
    assert body.province_id == 0
    assert body.city_id == 0
    assert body.manufacturer_id == b"70112"
    assert body.terminal_model == b"SEG-9888"
    assert body.manufacturer_name == "70112"
    assert body.model_name == "SEG-9888"
    assert body.terminal_id == bytes.fromhex("47000000000000")
    assert body.plate_color == 0
    assert body.plate is not None
    assert "50022171" in body.plate


def test_registration_dump_uses_camel_case(registration_frame):
    dumped = decode_frame(registration_frame).model_dump(mode='json', by_alias=True)
    assert dumped['header']['commandId'] == 0x0100
    assert dumped['header']['deviceId'] == "48050022171"
    assert dumped['body']['kind'] == 'terminal_registration'
    assert dumped['body']['manufacturerId'] == "3730313132"
    assert dumped['body']['terminalModel'] == b"SEG-9888".hex()
    assert dumped['body']['terminalId'] == "47000000000000"
    assert 'deviceBcd' not in dumped['header']
    assert dumped['raw'] == REGISTRATION_HEX


def test_subpackage_header_reads_fragment_info():
    """Bit 13 of the properties adds total and index before the body"""
    body = b"\x01\x02\x03"
    content = _content(0x0801, 0x2000 | len(body), struct.pack('>HH', 5, 2) + body)
    header, body_start = decode_header(content)

    assert header.is_subpackage
    assert header.fragment.total == 5
    assert header.fragment.index == 2
    assert body_start == 16
    assert header.body_length == 3


def test_encryption_bits():
    header, _ = decode_header(_content(0x0200, 0x0400, b""))
    assert header.encryption == 1
    assert not header.is_subpackage


def test_short_header_raises():
    with pytest.raises(FramingError):
        decode_header(bytes(8))


def test_unknown_command_keeps_header():
    """Commands without a body decoder are forwarded header-only"""
    report = decode_frame(build_frame(0x0704, DEVICE_ID, 3, b"\xaa\xbb"))
    assert report.body is None
    assert report.header.command_id == 0x0704
    assert report.payload == b"\xaa\xbb"


def test_length_mismatch_is_flagged_not_fatal():
    """Declared length disagrees with the body, present bytes are decoded"""
    content = _content(MSG_HEARTBEAT, 10, b"")
    report = decode_frame(wrap_frame(content))
    assert report.length_mismatch
    assert report.header.body_length == 10
    assert isinstance(report.body, Heartbeat)


def test_location_report(location_frame):
    report = decode_frame(location_frame)
    body = report.body

    assert isinstance(body, LocationReport)
    assert body.latitude == pytest.approx(-22.54321)
    assert body.longitude == pytest.approx(114.012345)
    assert body.altitude == 50
    assert body.speed == pytest.approx(60.5)
    assert body.direction == 90
    assert body.gnss_time == datetime(2023, 6, 15, 10, 30, 0)
    assert body.gnss_fixed
    assert len(body.extras) == 1
    assert body.extras[0].item_id == 0x01
    assert body.extras[0].data == bytes.fromhex("00000064")


def test_location_west_and_not_fixed():
    body = decode_location(location_body(status=0x08, extras=b""))
    assert body.latitude > 0
    assert body.longitude == pytest.approx(-114.012345)
    assert not body.gnss_fixed
    assert body.extras == []


def test_location_invalid_time_is_none():
    raw = bytearray(location_body(extras=b""))
    raw[22:28] = bytes.fromhex("230230120000")
    assert decode_location(bytes(raw)).gnss_time is None


def test_truncated_location_raises():
    with pytest.raises(FramingError):
        decode_frame(build_frame(MSG_LOCATION_REPORT, DEVICE_ID, 1, bytes(10)))


def test_authentication_and_terminal_response():
    auth = decode_frame(build_frame(MSG_TERMINAL_AUTH, DEVICE_ID, 2, b"123456"))
    assert auth.body.auth_code == "123456"

    response = decode_frame(build_frame(MSG_TERMINAL_RESPONSE, DEVICE_ID, 3, bytes.fromhex("0007800100")))
    assert response.body.reply_sequence == 7
    assert response.body.reply_command_id == 0x8001
    assert response.body.result == 0


def test_handler_reports_checksum_failure(registration_frame):
    """Decode failures come back on the result instead of raising"""
    corrupted = bytearray(registration_frame)
    corrupted[30] ^= 0x01
    result = JT808ProductionHandler().decode(bytes(corrupted))
    assert not result.ok
    assert isinstance(result.error, ChecksumMismatch)
    assert result.report is None
    assert result.acknowledgement is None


def test_handler_accepts_hex_text():
    handler = JT808ProductionHandler(auth_code="654321")
    assert handler.can_handle(REGISTRATION_HEX)
    result = handler.decode(REGISTRATION_HEX)
    assert result.ok
    assert result.acknowledgement.startswith(b"\x7e\x81\x00")
    assert not handler.can_handle(b"+RESP:GTCID")
