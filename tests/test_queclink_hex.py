from datetime import datetime

import pytest

from tcp_server.protocols.errors import FramingError, UnknownCommand
from tcp_server.protocols.queclink import HexReport, QueclinkProtocolHandler, decode_report
from tcp_server.protocols.queclink_hex import decode_hex_report
from tcp_server.protocols.queclink_values import parse_protocol_version

DEVICE = "5E" "0100" "012D" "0864696050123456"
VIN = "4D5A42455538313254524E363137313830"  # MZBEU812TRN617180
SEND_TIME = "07E9030D07201E"  # 2025-03-13 07:32:30


def hex_report(header, *parts, tail="0D0A"):
    """Family header, body parts, then send time, count, checksum and tail"""
    return header + "".join(parts) + SEND_TIME + "1A2B" + "CC11" + tail


ACK = hex_report("2B41434B", "0B", "0001", "0020", DEVICE, "00AB")

RSP = hex_report(
    "2B525350", "0B", "FC17BF00", "0060", DEVICE, VIN,
    "2F44", "0834", "0037", "32", "22", "0C", "10", "01",
    "01", "002B", "005C", "FFF6", "F8C447A1", "01DC6939", "07D9020E012036",
    "01CC", "0000", "18D8", "00006141",
    "0000", "00004E20", "00003039" "0C" "22",
)


def test_command_acknowledgement():
    report = decode_report(ACK)

    assert isinstance(report, HexReport)
    assert report.family == '+ACK'
    assert report.raw == ACK
    data = report.data
    assert data.message_type == 0x0B
    assert data.report_mask == "0001"
    assert data.length == 0x20
    assert data.protocol_version.raw == "5E0100"
    assert data.protocol_version.device_type == 0x5E
    assert data.protocol_version.device_type_name == 'GV500MAP'
    assert data.protocol_version.major_version == 1
    assert data.protocol_version.minor_version == 0
    assert data.firmware_version == "1.45"
    assert data.unique_id == "0864696050123456"
    assert data.serial_number == 0xAB
    assert data.send_time == datetime(2025, 3, 13, 7, 32, 30)
    assert data.count_number == 0x1A2B
    assert data.checksum == "CC11"


def test_heartbeat():
    family, data = decode_hex_report(hex_report("2B484244", "0B", "0001", "001E", DEVICE))
    assert family == '+HBD'
    assert data.unique_id == "0864696050123456"
    assert data.count_number == 0x1A2B


def test_position_report():
    family, data = decode_hex_report(RSP)

    assert family == '+RSP'
    assert data.vin == "MZBEU812TRN617180"
    assert data.external_power_voltage == 12100
    assert data.engine_rpm == 2100
    assert data.fuel_consumption == pytest.approx(5.5)
    assert data.fuel_level_input == 50
    assert data.motion_status == "22"
    assert data.satellites_in_use == 12
    assert data.report_id_type == 0x10
    assert data.report_type == 0
    assert data.number == 1
    assert data.gnss_accuracy == 1
    assert data.speed == pytest.approx(4.3)
    assert data.azimuth == 92
    assert data.altitude == -10
    assert data.longitude == pytest.approx(-121.354335)
    assert data.latitude == pytest.approx(31.222073)
    assert data.gnss_utc_time == datetime(2009, 2, 14, 1, 32, 54)
    assert data.mcc == 460
    assert data.lac == 0x18D8
    assert data.cell_id == 0x6141
    assert data.mileage == pytest.approx(2000.0)
    assert data.hour_meter_count == "12345:12:34"


def test_truncated_body_leaves_remaining_fields_empty():
    """Fields that would run into the trailer are None, the trailer still decodes"""
    family, data = decode_hex_report(hex_report("2B525350", "0B", "FC17BF00", "0030", DEVICE))
    assert family == '+RSP'
    assert data.unique_id == "0864696050123456"
    assert data.vin is None
    assert data.latitude is None
    assert data.hour_meter_count is None
    assert data.send_time == datetime(2025, 3, 13, 7, 32, 30)
    assert data.count_number == 0x1A2B


def test_crash_data():
    _, data = decode_hex_report(hex_report(
        "2B435244", "00", "00000001", "0030", DEVICE, VIN,
        "0B", "02", "01", "FFFF00010010", "0000FF9C0064",
    ))
    assert data.crash_status.crash_detected
    assert data.crash_status.crash_severity == 5
    assert data.total_frames == 2
    assert data.frame_number == 1
    assert [(s.x, s.y, s.z) for s in data.acceleration_samples] == [(-1, 1, 16), (0, -100, 100)]


def test_obd_fields_follow_the_report_mask():
    """Only the connection (bit 1) and RPM (bit 4) fields are present"""
    _, data = decode_hex_report(hex_report(
        "2B4F4244", "00", "00300000", "0040", DEVICE, VIN,
        "00", "00000012", "01", "0454",
    ))
    assert data.obd_report_mask == "00000012"
    assert data.obd_vin is None
    assert data.obd_connection == 1
    assert data.obd_power_voltage is None
    assert data.engine_rpm == 1108
    assert data.vehicle_speed is None
    assert data.latitude is None


def test_invalid_trailer_time_is_none():
    report = ACK.replace(SEND_TIME, "07E9021E000000")
    assert decode_report(report).data.send_time is None


def test_binary_frame_is_hexlified_by_the_handler():
    result = QueclinkProtocolHandler().decode(bytes.fromhex(ACK))
    assert result.ok
    assert result.report.family == '+ACK'
    assert result.report.data.serial_number == 0xAB


def test_unknown_family():
    with pytest.raises(UnknownCommand):
        decode_hex_report(hex_report("2B585858", "0B", "0001", "001E", DEVICE))


@pytest.mark.parametrize("message", [
    ACK[:-1],
    "2B41434B0B00",
    "2B41434B" + "ZZ" * 20,
])
def test_malformed_hex_raises_framing_error(message):
    with pytest.raises(FramingError):
        decode_hex_report(message)


def test_missing_tail_raises_framing_error():
    with pytest.raises(FramingError):
        decode_hex_report(hex_report("2B41434B", "0B", "0001", "0020", DEVICE, "00AB", tail="0000"))


def test_version_triplet_matches_ascii_path():
    """Hex and ASCII reports carry the same ProtocolVersion value"""
    _, data = decode_hex_report(ACK)
    assert data.protocol_version == parse_protocol_version("5E0100")
    dumped = data.model_dump(mode='json', by_alias=True)
    assert dumped['protocolVersion']['formattedVersion'] == "1.0"
