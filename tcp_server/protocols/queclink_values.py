"""
Semantic value mappers for Queclink reports.

Pure functions that turn raw codes into domain values: signal quality
bands, bitmask flags, protocol versions, signed integers and calendar
validated timestamps. They are shared by the ASCII and hex decoders.
"""
import re
from datetime import datetime
from typing import Dict, List, Optional

from .base import FrozenModel
from .errors import MalformedField

DIGITS_RE = re.compile(r'^[0-9]+$')
HEX_RE = re.compile(r'^[0-9A-Fa-f]+$')

DEVICE_TYPE_NAMES = {
    0x5E: 'GV500MAP',
}

NETWORK_TYPES = {
    0: 'Unregistered',
    1: 'EGPRS',
    2: 'LTE',
}

BLUETOOTH_STATES = {
    0: 'Not connected',
    1: 'Connected',
}

BLUETOOTH_ROLES = {
    0: 'Master',
    1: 'Slave',
}

REALTIME_STATES = {
    0: 'Real time data',
    1: 'Historical data',
}

MOTION_STATUSES = {
    '11': 'Ignition Off Rest',
    '12': 'Ignition Off Motion',
    '16': 'Tow',
    '21': 'Ignition On Rest',
    '22': 'Ignition On Motion',
    '41': 'Sensor Rest',
    '42': 'Sensor Motion',
}

GHOST_STATUS_BITS = {
    1: 'gnssFixFailure',
    2: 'detectedFakeCell',
    3: 'batteryLowWarning',
    4: 'rtcTimeFailure',
    5: 'simCardError',
    6: 'gsmUnavailable',
    7: 'gprsUnavailable',
    8: 'serverConnectionFailure',
    15: 'mcuBbCommunicationError',
}

OBD_REPORT_MASK_BITS = {
    0: 'VIN',
    1: 'OBDConnection',
    2: 'OBDPowerVoltage',
    3: 'SupportedPIDs',
    4: 'EngineRPM',
    5: 'VehicleSpeed',
    6: 'EngineCoolantTemperature',
    7: 'FuelConsumption',
    8: 'DTCsClearedDistance',
    9: 'MILActivatedDistance',
    10: 'MILStatus',
    11: 'NumberOfDTCs',
    12: 'DiagnosticTroubleCodes',
    13: 'ThrottlePosition',
    14: 'EngineLoad',
    15: 'FuelLevelInput',
    16: 'OBDProtocol',
    17: 'OBDMileage',
    20: 'GNSSInformation',
    21: 'GSMInformation',
}

OSM_REPORT_MASK_BITS = {
    **{bit: name for bit, name in OBD_REPORT_MASK_BITS.items() if bit != 17},
    22: 'Mileage',
}

# Reserved bits are not reported
SUPPORTED_PID_BITS = {
    31: 'milStatus',
    28: 'engineLoad',
    27: 'engineCoolantTemperature',
    26: 'totalMileage',
    21: 'intakeManifoldPressure',
    20: 'engineRpm',
    19: 'vehicleSpeed',
    17: 'intakeAirTemperature',
    15: 'throttlePosition',
    8: 'vin',
    7: 'dtcsClearedDistance',
    6: 'milActivatedDistance',
    5: 'fuelLevelInput',
}

OBD_PROTOCOLS = {
    '00': 'Unknown/Searching',
    '33': 'ISO 15765, ID 11bits 500kb',
    '34': 'ISO 15765, ID 29bits 500kb',
    '35': 'ISO 15765, ID 11bits 250kb',
    '36': 'ISO 15765, ID 29bits 250kb',
    '53': 'ISO 15765, ID 11bits 125kbps',
    '54': 'ISO 15765, ID 29bits 25kbps',
    '63': 'ISO 15765, ID 11bits 33.3kbps',
    '64': 'ISO 15765, ID 29bits 33.3kbps',
}


class ProtocolVersion(FrozenModel):
    raw: str
    device_type: int
    device_type_name: str
    major_version: int
    minor_version: int
    formatted_version: str


class TimeZoneOffset(FrozenModel):
    sign: str
    hours: int
    minutes: int
    total_minutes: int


class SupportedPids(FrozenModel):
    raw: str
    value: int
    supported: Dict[str, bool]
    supported_count: int


class CrashStatus(FrozenModel):
    crash_detected: bool
    crash_severity: int
    x_axis_detected: bool
    x_axis_direction: str
    y_axis_detected: bool
    y_axis_direction: str
    z_axis_detected: bool
    z_axis_direction: str


class AccelerationSample(FrozenModel):
    x: int
    y: int
    z: int


class ReportIdType(FrozenModel):
    report_id: int
    report_type: int


def rssi_to_dbm(code: int) -> str:
    """Map a CSQ RSSI code (0-31, 99) to a signal strength band"""
    if code == 0:
        return '<-113 dBm'
    if code == 1:
        return '-111 dBm'
    if 2 <= code <= 30:
        # 2 maps to -109 dBm and 30 to -53 dBm
        dbm = -109 + (code - 2) * 56 / 28
        return f"{round(dbm)} dBm"
    if code == 31:
        return '>-51 dBm'
    if code == 99:
        return 'Unknown'
    return 'Invalid RSSI'


def ber_to_quality(code: int) -> str:
    """Map a CSQ bit error rate code (0-7, 99) to a description"""
    if 0 <= code <= 7:
        return f"BER {code}/7"
    if code == 99:
        return 'Unknown signal strength'
    return 'Invalid BER'


def parse_hex(value: str, field: str = 'hex') -> int:
    if not value or not HEX_RE.match(value):
        raise MalformedField(field, value, "not a hex string")
    return int(value, 16)


def parse_bitmask(value: int, definitions: Dict[int, str]) -> Dict[str, bool]:
    """Decode an integer mask into named flags using a bit -> name table"""
    return {name: bool((value >> bit) & 1) for bit, name in definitions.items()}


def signed(value: int, bit_length: int) -> int:
    """Interpret an unsigned value as two's complement"""
    if value >= 1 << (bit_length - 1):
        return value - (1 << bit_length)
    return value


def parse_datetime(value: str) -> Optional[datetime]:
    """
    Parse YYYYMMDDHHMMSS.

    Impossible calendar dates such as Feb 30 give None instead of
    rolling over into the next month.
    """
    if len(value) != 14 or not DIGITS_RE.match(value):
        raise MalformedField('datetime', value, "expected 14 digits")
    try:
        return datetime(
            int(value[0:4]), int(value[4:6]), int(value[6:8]),
            int(value[8:10]), int(value[10:12]), int(value[12:14]),
        )
    except ValueError:
        return None


def parse_protocol_version(value: str) -> ProtocolVersion:
    """Split a 6 hex digit code into device type, major and minor version"""
    if len(value) != 6 or not HEX_RE.match(value):
        raise MalformedField('protocol_version', value, "expected 6 hex digits")
    device_type = int(value[0:2], 16)
    major = int(value[2:4], 16)
    minor = int(value[4:6], 16)
    return ProtocolVersion(
        raw=value,
        device_type=device_type,
        device_type_name=DEVICE_TYPE_NAMES.get(device_type, f"Unknown (0x{value[0:2].upper()})"),
        major_version=major,
        minor_version=minor,
        formatted_version=f"{major}.{minor}",
    )


def format_version(value: str) -> str:
    """Format hex version digits as dotted decimals, "012D" -> "1.45", "04010A" -> "4.1.10" """
    if len(value) not in (4, 6) or not HEX_RE.match(value):
        raise MalformedField('version', value, "expected 4 or 6 hex digits")
    return '.'.join(str(int(value[i:i + 2], 16)) for i in range(0, len(value), 2))


def parse_time_zone(value: str) -> TimeZoneOffset:
    """Parse "+0800" style offsets"""
    if len(value) != 5 or value[0] not in '+-' or not DIGITS_RE.match(value[1:]):
        raise MalformedField('time_zone', value, "expected +HHMM")
    hours = int(value[1:3])
    minutes = int(value[3:5])
    total = hours * 60 + minutes
    return TimeZoneOffset(
        sign=value[0],
        hours=hours,
        minutes=minutes,
        total_minutes=total if value[0] == '+' else -total,
    )


def parse_supported_pids(value: str) -> SupportedPids:
    if len(value) != 8:
        raise MalformedField('supported_pids', value, "expected 8 hex digits")
    mask = parse_hex(value, 'supported_pids')
    supported = parse_bitmask(mask, SUPPORTED_PID_BITS)
    return SupportedPids(
        raw=value,
        value=mask,
        supported=supported,
        supported_count=sum(supported.values()),
    )


def obd_protocol_name(code: str) -> str:
    return OBD_PROTOCOLS.get(code.upper(), f"Unknown ({code})")


def parse_crash_status(value: int) -> CrashStatus:
    def direction(bit):
        return 'negative' if (value >> bit) & 1 else 'positive'

    return CrashStatus(
        crash_detected=bool(value & 1),
        crash_severity=(value >> 1) & 0x7,
        x_axis_detected=bool((value >> 3) & 1),
        x_axis_direction=direction(4),
        y_axis_detected=bool((value >> 5) & 1),
        y_axis_direction=direction(6),
        z_axis_detected=bool((value >> 7) & 1),
        z_axis_direction=direction(8),
    )


def parse_acceleration_samples(value: str) -> List[AccelerationSample]:
    """Split hex data into XYZ groups of three signed 16-bit values"""
    if len(value) % 12 != 0 or not HEX_RE.match(value):
        raise MalformedField('acceleration_samples', value, "expected groups of 12 hex digits")
    samples = []
    for i in range(0, len(value), 12):
        x, y, z = (signed(int(value[j:j + 4], 16), 16) for j in range(i, i + 12, 4))
        samples.append(AccelerationSample(x=x, y=y, z=z))
    return samples


def parse_report_id_type(value: int) -> ReportIdType:
    """High nibble is the report id, low nibble the report type"""
    return ReportIdType(report_id=(value >> 4) & 0xF, report_type=value & 0xF)


def split_dtc_codes(value: str) -> List[str]:
    """Diagnostic trouble codes arrive as consecutive 4 character chunks"""
    return [value[i:i + 4] for i in range(0, len(value), 4) if value[i:i + 4]]
