"""
Hex encoded Queclink reports.

A hex report is the binary form of the ASCII protocol written out as hex
digits. The first four bytes name the family (``+RSP``, ``+EVT``...), then
come the message type, the family mask(s) and the length. The last 13
bytes are always send time (7), count number (2), checksum (2) and the
``0D0A`` tail.

Fields between the two are read positionally by a cursor. Their presence
depends on masks configured on the device (AT+GTHRM), so the layouts below
follow worked examples. A field that no longer fits before the trailer is
left as None together with everything after it.
"""
import binascii
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from .errors import DecodeError, FramingError, MalformedField, UnknownCommand
from .queclink_fields import ReportFields, build_schema
from .queclink_values import (
    AccelerationSample, CrashStatus, ProtocolVersion, SupportedPids, ber_to_quality,
    format_version, parse_acceleration_samples, parse_crash_status, parse_protocol_version,
    parse_report_id_type, parse_supported_pids, rssi_to_dbm, signed,
)

logger = logging.getLogger(__name__)

HEADER_LENGTH = 4
TRAILER_LENGTH = 13
MIN_REPORT_LENGTH = HEADER_LENGTH + TRAILER_LENGTH
TAIL = b'\r\n'

# name, reader, optional condition on the values read so far
HexRow = Tuple[Optional[str], Callable, Optional[Callable[[Dict], bool]]]


class CursorExhausted(DecodeError):
    """A field would extend into the trailer"""


class HexCursor:
    """Forward-only reader over the body of a hex report"""

    def __init__(self, data: bytes, start: int, end: int):
        self.data = data
        self.offset = start
        self.end = end
        self.values = {}

    def take(self, size: int) -> bytes:
        if size < 0 or self.offset + size > self.end:
            raise CursorExhausted(f"{size} bytes at offset {self.offset} cross the trailer at {self.end}")
        chunk = self.data[self.offset:self.offset + size]
        self.offset += size
        return chunk

    def rest(self) -> bytes:
        return self.take(self.end - self.offset)


# --- Readers --------------------------------------------------------------

def uint(size: int) -> Callable:
    def read(cursor: HexCursor) -> Optional[int]:
        return int.from_bytes(cursor.take(size), 'big')
    return read


def sint(size: int) -> Callable:
    def read(cursor: HexCursor) -> Optional[int]:
        return signed(int.from_bytes(cursor.take(size), 'big'), size * 8)
    return read


def scaled(size: int, divisor: float, is_signed: bool = False) -> Callable:
    """Fixed point value with implied decimals"""
    def read(cursor: HexCursor) -> Optional[float]:
        value = int.from_bytes(cursor.take(size), 'big')
        if is_signed:
            value = signed(value, size * 8)
        return value / divisor
    return read


def hex_text(size: int) -> Callable:
    def read(cursor: HexCursor) -> Optional[str]:
        return cursor.take(size).hex().upper()
    return read


def ascii_text(size: int) -> Callable:
    def read(cursor: HexCursor) -> Optional[str]:
        value = cursor.take(size).decode('ascii', errors='replace').strip('\x00 ')
        return value or None
    return read


def hex_version(size: int = 2) -> Callable:
    def read(cursor: HexCursor) -> Optional[str]:
        return format_version(cursor.take(size).hex())
    return read


def protocol_version(cursor: HexCursor) -> Optional[ProtocolVersion]:
    """Device type byte followed by major and minor version"""
    return parse_protocol_version(cursor.take(3).hex().upper())


def skip(size: int) -> Callable:
    def read(cursor: HexCursor) -> None:
        cursor.take(size)
    return read


def decode_time(chunk: bytes) -> Optional[datetime]:
    """Two byte year followed by month, day, hour, minute and second"""
    if len(chunk) != 7:
        raise MalformedField('hex_time', chunk.hex(), "expected 7 bytes")
    try:
        return datetime(int.from_bytes(chunk[0:2], 'big'), *chunk[2:7])
    except ValueError:
        return None


def hex_time(cursor: HexCursor) -> Optional[datetime]:
    return decode_time(cursor.take(7))


def report_type(cursor: HexCursor) -> Optional[int]:
    """Low nibble of the report id and type byte"""
    return parse_report_id_type(cursor.values['report_id_type']).report_type


def hour_meter(cursor: HexCursor) -> Optional[str]:
    """Hours (4 bytes), minutes and seconds rendered as HHHHH:MM:SS"""
    chunk = cursor.take(6)
    return f"{int.from_bytes(chunk[0:4], 'big'):05d}:{chunk[4]:02d}:{chunk[5]:02d}"


def rssi_band(cursor: HexCursor) -> Optional[str]:
    return rssi_to_dbm(cursor.values['csq_rssi'])


def ber_band(cursor: HexCursor) -> Optional[str]:
    return ber_to_quality(cursor.values['csq_ber'])


def supported_pids(cursor: HexCursor) -> Optional[SupportedPids]:
    return parse_supported_pids(cursor.values['supported_pids'])


def dtc_list(cursor: HexCursor) -> Optional[List[str]]:
    """Two bytes per trouble code, count taken from number_of_dtcs"""
    count = cursor.values.get('number_of_dtcs') or 0
    return [cursor.take(2).hex().upper() for _ in range(count)]


def appending_information(cursor: HexCursor) -> Optional[str]:
    return cursor.take(cursor.values.get('svr_appending_length') or 0).hex().upper() or None


def crash_status(cursor: HexCursor) -> Optional[CrashStatus]:
    return parse_crash_status(cursor.take(1)[0])


def acceleration_samples(cursor: HexCursor) -> Optional[List[AccelerationSample]]:
    """Every remaining byte before the trailer, six per XYZ sample"""
    return parse_acceleration_samples(cursor.rest().hex())


def _derived(name: str, reader: Callable) -> HexRow:
    """Value computed from an earlier field without consuming bytes"""
    return (name, reader, None)


def _rows(*rows) -> List[HexRow]:
    return [row if len(row) == 3 else (row[0], row[1], None) for row in rows]


def _masked(bit: int) -> Callable[[Dict], bool]:
    def condition(values: Dict) -> bool:
        mask = values.get('obd_report_mask')
        return mask is not None and bool((int(mask, 16) >> bit) & 1)
    return condition


def _masked_rows(bit: int, *rows) -> List[HexRow]:
    return [(name, reader, _masked(bit)) for name, reader in rows]


# --- Layouts --------------------------------------------------------------

def preamble(mask_size: int, expansion_mask: bool = False) -> List[HexRow]:
    rows = _rows(('message_type', uint(1)), ('report_mask', hex_text(mask_size)))
    if expansion_mask:
        rows += _rows(('expansion_mask', hex_text(2)))
    return rows + _rows(('length', uint(2)))


def device_block() -> List[HexRow]:
    return _rows(
        ('protocol_version', protocol_version),
        ('firmware_version', hex_version()),
        ('unique_id', hex_text(8)),
    )


def gnss_block(speed_size: int) -> List[HexRow]:
    return _rows(
        ('gnss_accuracy', uint(1)),
        ('speed', scaled(speed_size, 10)),
        ('azimuth', uint(2)),
        ('altitude', sint(2)),
        ('longitude', scaled(4, 1000000, is_signed=True)),
        ('latitude', scaled(4, 1000000, is_signed=True)),
        ('gnss_utc_time', hex_time),
    )


def cell_block() -> List[HexRow]:
    return _rows(
        ('mcc', uint(2)),
        ('mnc', uint(2)),
        ('lac', uint(2)),
        ('cell_id', uint(4)),
    )


class HexLayout:
    """Cursor driven layout of one hex family, with its generated schema"""

    def __init__(self, family: str, rows: List[HexRow]):
        self.family = family
        self.rows = rows
        named = [(name, reader) for name, reader, _ in rows if name]
        named += [('send_time', hex_time), ('count_number', uint(2)), ('checksum', hex_text(2))]
        self.schema = build_schema(f"Hex{family.strip('+').capitalize()}", named)

    def decode(self, data: bytes) -> ReportFields:
        end = len(data) - TRAILER_LENGTH
        cursor = HexCursor(data, HEADER_LENGTH, end)
        for name, reader, condition in self.rows:
            if condition is not None and not condition(cursor.values):
                continue
            try:
                value = reader(cursor)
            except CursorExhausted as e:
                logger.debug(f"{self.family}: stopped at {name}: {e}")
                break
            except (MalformedField, KeyError, TypeError) as e:
                logger.debug(f"{self.family}.{name}: {e!r}")
                value = None
            if name:
                cursor.values[name] = value

        trailer = data[end:]
        values = dict(cursor.values)
        values['send_time'] = decode_time(trailer[0:7])
        values['count_number'] = int.from_bytes(trailer[7:9], 'big')
        values['checksum'] = trailer[9:11].hex().upper()
        return self.schema(**values)

    def __repr__(self):
        return f"<HexLayout {self.family} ({len(self.rows)} rows)>"


RSP_LAYOUT = HexLayout('+RSP', [
    *preamble(4),
    *device_block(),
    *_rows(
        ('vin', ascii_text(17)),
        ('external_power_voltage', uint(2)),
        ('engine_rpm', uint(2)),
        ('fuel_consumption', scaled(2, 10)),
        ('fuel_level_input', uint(1)),
        ('motion_status', hex_text(1)),
        ('satellites_in_use', uint(1)),
        ('report_id_type', uint(1)),
    ),
    _derived('report_type', report_type),
    *_rows(('number', uint(1))),
    *gnss_block(2),
    *cell_block(),
    *_rows(
        (None, skip(2)),
        ('mileage', scaled(4, 10)),
        ('hour_meter_count', hour_meter),
    ),
])

EVT_LAYOUT = HexLayout('+EVT', [
    *preamble(4),
    *device_block(),
    *_rows(
        ('vin', ascii_text(17)),
        ('external_power_voltage', uint(2)),
        ('motion_status', hex_text(1)),
        ('satellites_in_view', uint(1)),
        ('svr_working_state', uint(1)),
        ('ghost_mac_broadcast', hex_text(6)),
        ('svr_appending_length', uint(1)),
        ('svr_appending_information', appending_information),
        (None, skip(1)),
        ('number', uint(1)),
    ),
    *gnss_block(3),
    *cell_block(),
    *_rows(
        (None, skip(1)),
        ('current_mileage', scaled(3, 10)),
        ('total_mileage', scaled(5, 10)),
        ('current_hour_meter_count', hex_text(3)),
        ('total_hour_meter_count', hex_text(6)),
    ),
])

INF_LAYOUT = HexLayout('+INF', [
    *preamble(2, expansion_mask=True),
    *_rows(
        ('unique_id', hex_text(8)),
        ('vin', ascii_text(17)),
        ('protocol_version', protocol_version),
        ('firmware_version', hex_version()),
        ('hardware_version', hex_version()),
        ('mcu_version', hex_version()),
        (None, skip(2)),
        ('motion_status', hex_text(1)),
        (None, skip(1)),
        ('satellites_in_use', uint(1)),
        ('mode_flags', uint(1)),
        ('last_fix_utc_time', hex_time),
        ('time_zone_offset', uint(2)),
        ('daylight_saving', uint(1)),
        ('csq_rssi', uint(1)),
    ),
    _derived('csq_rssi_dbm', rssi_band),
    *_rows(('csq_ber', uint(1))),
    _derived('csq_ber_description', ber_band),
    *_rows(
        ('external_power_supply', uint(1)),
        ('external_power_voltage', uint(2)),
        ('backup_battery_voltage', uint(2)),
        ('charging', uint(1)),
        ('led_on', uint(1)),
        (None, skip(5)),
        ('obd_protocol', hex_text(1)),
        ('obd_connection', uint(1)),
        ('obd_power_voltage', uint(2)),
        ('supported_pids', hex_text(4)),
    ),
    _derived('supported_pids_parsed', supported_pids),
    *_rows(
        ('engine_rpm', uint(2)),
        ('vehicle_speed', uint(1)),
        ('engine_coolant_temperature', sint(1)),
        ('fuel_consumption', scaled(2, 10)),
        ('mil_status', uint(1)),
        ('number_of_dtcs', uint(1)),
        ('diagnostic_trouble_codes', dtc_list),
    ),
])

HBD_LAYOUT = HexLayout('+HBD', [*preamble(2), *device_block()])

ACK_LAYOUT = HexLayout('+ACK', [
    *preamble(2),
    *device_block(),
    *_rows(('serial_number', uint(2))),
])

CRD_LAYOUT = HexLayout('+CRD', [
    *preamble(4),
    *device_block(),
    *_rows(
        ('vin', ascii_text(17)),
        ('crash_status', crash_status),
        ('total_frames', uint(1)),
        ('frame_number', uint(1)),
        ('acceleration_samples', acceleration_samples),
    ),
])

# OBD fields only appear when their bit is set in the OBD report mask
OBD_LAYOUT = HexLayout('+OBD', [
    *preamble(4),
    *device_block(),
    *_rows(
        ('vin', ascii_text(17)),
        ('obd_report_type', uint(1)),
        ('obd_report_mask', hex_text(4)),
    ),
    *_masked_rows(0, ('obd_vin', ascii_text(17))),
    *_masked_rows(1, ('obd_connection', uint(1))),
    *_masked_rows(2, ('obd_power_voltage', uint(2))),
    *_masked_rows(3, ('supported_pids', hex_text(4)), ('supported_pids_parsed', supported_pids)),
    *_masked_rows(4, ('engine_rpm', uint(2))),
    *_masked_rows(5, ('vehicle_speed', uint(1))),
    *_masked_rows(6, ('engine_coolant_temperature', sint(1))),
    *_masked_rows(7, ('fuel_consumption', scaled(2, 10))),
    *_masked_rows(10, ('mil_status', uint(1))),
    *_masked_rows(11, ('number_of_dtcs', uint(1))),
    *_masked_rows(8, ('dtcs_cleared_distance', uint(2))),
    *_masked_rows(9, ('mil_activated_distance', uint(2))),
    *_masked_rows(13, ('throttle_position', uint(1))),
    *_masked_rows(14, ('engine_load', uint(1))),
    *_masked_rows(15, ('fuel_level_input', uint(1))),
    *_masked_rows(16, ('obd_protocol', hex_text(1))),
    *_masked_rows(20, *[(name, reader) for name, reader, _ in gnss_block(3)]),
    *_masked_rows(21, *[(name, reader) for name, reader, _ in cell_block()], (None, skip(2))),
])

HEX_FAMILIES: Dict[str, HexLayout] = {
    '2B41434B': ACK_LAYOUT,  # +ACK
    '2B525350': RSP_LAYOUT,  # +RSP
    '2B455654': EVT_LAYOUT,  # +EVT
    '2B494E46': INF_LAYOUT,  # +INF
    '2B484244': HBD_LAYOUT,  # +HBD
    '2B435244': CRD_LAYOUT,  # +CRD
    '2B4F4244': OBD_LAYOUT,  # +OBD
}


def unhexlify_report(message: str) -> bytes:
    if len(message) % 2:
        raise FramingError(f"Odd number of hex digits ({len(message)})")
    try:
        data = binascii.unhexlify(message)
    except binascii.Error as e:
        raise FramingError(f"Invalid hex report: {e}")
    if len(data) < MIN_REPORT_LENGTH:
        raise FramingError(f"Hex report too short: {len(data)} bytes")
    return data


def decode_hex_report(message: str) -> Tuple[str, ReportFields]:
    """
    Decode a hex report string.

    Returns the family name and its fields. Raises FramingError for
    malformed framing and UnknownCommand for an unknown family header.
    """
    data = unhexlify_report(message)
    header = data[:HEADER_LENGTH].hex().upper()
    layout = HEX_FAMILIES.get(header)
    if layout is None:
        raise UnknownCommand(header)
    if data[-2:] != TAIL:
        raise FramingError(f"Missing 0D0A tail in {layout.family} report")
    return layout.family, layout.decode(data)
