"""
Field readers and layout tables for comma separated Queclink reports.

A layout is a list of rows ``(name, index, reader)``. ``index`` selects the
parameter handed to the reader; negative indexes count from the end and
``None`` hands the reader the whole parameter list (used by composite
fields such as satellite lists). Each layout builds its own pydantic
schema from the return annotations of its readers, so every field of a
report type is visible, with absent values as ``None``.
"""
import logging
import math
from datetime import datetime
from typing import (
    Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Type, Union, get_type_hints,
)

from pydantic import create_model

from .base import FrozenModel
from .errors import MalformedField
from .queclink_values import (
    DIGITS_RE, AccelerationSample, CrashStatus, ProtocolVersion, ReportIdType,
    SupportedPids, TimeZoneOffset, ber_to_quality, format_version, obd_protocol_name,
    parse_acceleration_samples, parse_bitmask, parse_crash_status, parse_datetime,
    parse_hex, parse_protocol_version, parse_report_id_type, parse_supported_pids,
    parse_time_zone, rssi_to_dbm, split_dtc_codes,
)

logger = logging.getLogger(__name__)

Row = Tuple[str, Optional[int], Callable]


class ReportFields(FrozenModel):
    """Base class of every generated report schema"""


# --- Scalar readers -------------------------------------------------------

def text(value: Optional[str]) -> Optional[str]:
    return value or None


def integer(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        raise MalformedField('integer', value)


def decimal(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        number = float(value)
    except ValueError:
        raise MalformedField('decimal', value)
    if not math.isfinite(number):
        raise MalformedField('decimal', value, "not a finite number")
    return number


def hex_int(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    return parse_hex(value, 'hex_int')


def date_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return parse_datetime(value)


def protocol_version(value: Optional[str]) -> Optional[ProtocolVersion]:
    if not value:
        return None
    return parse_protocol_version(value)


def version(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return format_version(value)


def report_id_type(value: Optional[str]) -> Optional[ReportIdType]:
    if not value:
        return None
    return parse_report_id_type(parse_hex(value, 'report_id_type'))


def rssi_dbm(value: Optional[str]) -> Optional[str]:
    code = integer(value)
    return None if code is None else rssi_to_dbm(code)


def ber_description(value: Optional[str]) -> Optional[str]:
    code = integer(value)
    return None if code is None else ber_to_quality(code)


def time_zone(value: Optional[str]) -> Optional[TimeZoneOffset]:
    if not value:
        return None
    return parse_time_zone(value)


def supported_pids(value: Optional[str]) -> Optional[SupportedPids]:
    if not value:
        return None
    return parse_supported_pids(value)


def obd_protocol(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return obd_protocol_name(value.zfill(2))


def fuel_consumption(value: Optional[str]) -> Optional[Union[float, str]]:
    """L/100km, or the literal 'inf' / 'nan' reported while idling"""
    if value in ('inf', 'nan'):
        return value
    return decimal(value)


def crash_status(value: Optional[str]) -> Optional[CrashStatus]:
    if not value:
        return None
    return parse_crash_status(parse_hex(value, 'crash_status'))


def acceleration_samples(value: Optional[str]) -> Optional[List[AccelerationSample]]:
    if not value:
        return None
    return parse_acceleration_samples(value)


def described(table: Dict) -> Callable:
    """Reader mapping an integer code to its description"""
    def read(value: Optional[str]) -> Optional[str]:
        code = integer(value)
        if code is None:
            return None
        return table.get(code, 'Unknown')
    return read


def motion_description(table: Dict[str, str]) -> Callable:
    """Motion status codes are two character strings such as '22'"""
    def read(value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        return table.get(value.upper(), f"Unknown Status ({value})")
    return read


def flags(definitions: Dict[int, str]) -> Callable:
    """Reader decoding a hex bitmask into named flags"""
    def read(value: Optional[str]) -> Optional[Dict[str, bool]]:
        if not value:
            return None
        return parse_bitmask(parse_hex(value, 'flags'), definitions)
    return read


def hour_meter(value: Optional[str]) -> Optional[str]:
    """HHHHH:MM:SS"""
    if not value:
        return None
    parts = value.split(':')
    if len(parts) != 3 or not all(DIGITS_RE.match(part) for part in parts):
        raise MalformedField('hour_meter', value, "expected HHHHH:MM:SS")
    return value


def string_list(start: int, stop: int) -> Callable:
    def read(params: Sequence[str]) -> Optional[List[str]]:
        return [value for value in params[start:stop] if value]
    return read


# --- Composite readers ----------------------------------------------------

class Satellite(FrozenModel):
    sv_id: Optional[int] = None
    sv_power: Optional[int] = None
    has_signal: bool


class CellInfo(FrozenModel):
    mcc: Optional[str] = None
    mnc: Optional[str] = None
    lac: Optional[int] = None
    cell_id: Optional[int] = None
    rx_level: Optional[int] = None


def _count(params: Sequence[str], index: int) -> int:
    """A repeat count that cannot be read makes its group empty"""
    try:
        return integer(param(params, index)) or 0
    except MalformedField:
        return 0


def _satellite_value(value: str, name: str, position: int) -> Optional[int]:
    try:
        return integer(value)
    except MalformedField as e:
        logger.debug(f"Satellite {position} {name}: {e}")
        return None


def satellites(params: Sequence[str]) -> Optional[List[Satellite]]:
    """SV id / power pairs following the count at index 4"""
    result = []
    for i in range(_count(params, 4)):
        base = 5 + i * 2
        if base + 1 >= len(params):
            break
        sv_id = _satellite_value(params[base], 'sv_id', i)
        power = _satellite_value(params[base + 1], 'sv_power', i)
        result.append(Satellite(
            sv_id=sv_id,
            sv_power=power,
            has_signal=bool(power and power > 0),
        ))
    return result


def active_satellites(params: Sequence[str]) -> Optional[int]:
    return sum(1 for satellite in satellites(params) if satellite.has_signal)


def _cell(params: Sequence[str], base: int) -> CellInfo:
    return CellInfo(
        mcc=text(param(params, base)),
        mnc=text(param(params, base + 1)),
        lac=hex_int(param(params, base + 2)),
        cell_id=hex_int(param(params, base + 3)),
        rx_level=integer(param(params, base + 4)),
    )


def neighbor_cells(params: Sequence[str]) -> Optional[List[CellInfo]]:
    """Six fixed neighbor cell blocks of six parameters each"""
    return [_cell(params, 5 + i * 6) for i in range(6)]


def serving_cell(params: Sequence[str]) -> Optional[CellInfo]:
    return _cell(params, 41)


def dtc_codes(count_index: int, codes_index: int) -> Callable:
    def read(params: Sequence[str]) -> Optional[List[str]]:
        count = _count(params, count_index)
        codes = param(params, codes_index)
        if not codes or count == 0:
            return []
        return split_dtc_codes(codes)[:count]
    return read


# --- Blocks ---------------------------------------------------------------

def param(params: Sequence[str], index: int) -> Optional[str]:
    if -len(params) <= index < len(params):
        return params[index]
    return None


def common_header() -> List[Row]:
    return [
        ('protocol_version', 0, protocol_version),
        ('unique_id', 1, text),
        ('vin', 2, text),
        ('device_name', 3, text),
    ]


def gnss_block(start: int) -> List[Row]:
    return [
        ('gnss_accuracy', start, integer),
        ('speed', start + 1, decimal),
        ('azimuth', start + 2, integer),
        ('altitude', start + 3, decimal),
        ('longitude', start + 4, decimal),
        ('latitude', start + 5, decimal),
        ('gnss_utc_time', start + 6, date_time),
    ]


def cell_block(start: int) -> List[Row]:
    return [
        ('mcc', start, text),
        ('mnc', start + 1, text),
        ('lac', start + 2, hex_int),
        ('cell_id', start + 3, hex_int),
    ]


def position_block(start: int) -> List[Row]:
    """GNSS fix followed by the serving cell and a reserved field"""
    return gnss_block(start) + cell_block(start + 7)


def trailer() -> List[Row]:
    return [
        ('send_time', -2, date_time),
        ('count_number', -1, hex_int),
    ]


# --- Layouts --------------------------------------------------------------

def build_schema(name: str, readers: Iterable[Tuple[str, Callable]]) -> Type[ReportFields]:
    """Generate a frozen schema with one optional field per reader return type"""
    definitions = {}
    for field_name, reader in readers:
        hint = get_type_hints(reader, include_extras=True).get('return', Optional[str])
        definitions[field_name] = (Optional[hint], None)
    return create_model(f"{name}Fields", __base__=ReportFields, **definitions)


class ReportLayout:
    """Positional field layout of one report type, with its generated schema"""

    def __init__(self, name: str, fields: List[Row]):
        self.name = name
        self.fields = fields
        self.schema = build_schema(name, ((field_name, reader) for field_name, _, reader in fields))

    def decode(self, params: Sequence[str]) -> ReportFields:
        """
        Read every field independently. A malformed value becomes None
        without affecting the other fields.
        """
        values = {}
        for field_name, index, reader in self.fields:
            try:
                if index is None:
                    values[field_name] = reader(params)
                else:
                    values[field_name] = reader(param(params, index))
            except MalformedField as e:
                logger.debug(f"{self.name}.{field_name}: {e}")
                values[field_name] = None
        return self.schema(**values)

    def __repr__(self):
        return f"<ReportLayout {self.name} ({len(self.fields)} fields)>"
