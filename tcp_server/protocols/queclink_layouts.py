"""
Static mnemonic registries for the comma separated Queclink protocol.

Every report starts with the common header (protocol version, unique id,
VIN, device name) and ends with send time and count number. The rows in
between are positional and specific to each mnemonic.
"""
from typing import Dict, List

from .queclink_config import CONFIG_COMMANDS, configurations
from .queclink_fields import (
    ReportLayout, Row, acceleration_samples, active_satellites, ber_description,
    common_header, crash_status, date_time, decimal, described, dtc_codes, flags,
    fuel_consumption, hex_int, hour_meter, integer, motion_description,
    neighbor_cells, obd_protocol, position_block, protocol_version, report_id_type,
    rssi_dbm, satellites, serving_cell, supported_pids, text, time_zone, trailer,
    version,
)
from .queclink_values import (
    BLUETOOTH_ROLES, BLUETOOTH_STATES, GHOST_STATUS_BITS, MOTION_STATUSES,
    NETWORK_TYPES, OBD_REPORT_MASK_BITS, OSM_REPORT_MASK_BITS, REALTIME_STATES,
)


def _layout(name: str, rows: List[Row]) -> ReportLayout:
    return ReportLayout(name, common_header() + rows + trailer())


def _motion(index: int) -> List[Row]:
    return [
        ('motion_status', index, text),
        ('motion_status_description', index, motion_description(MOTION_STATUSES)),
    ]


def _csq(rssi: int, ber: int) -> List[Row]:
    return [
        ('csq_rssi', rssi, integer),
        ('csq_rssi_dbm', rssi, rssi_dbm),
        ('csq_ber', ber, integer),
        ('csq_ber_description', ber, ber_description),
    ]


def _versioned(name: str, index: int) -> List[Row]:
    return [(name, index, text), (f'{name}_formatted', index, version)]


def _obd_values(start: int, mask_bits: Dict[int, str]) -> List[Row]:
    """OBD value block shared by GTOBD and GTOSM, starting at the report mask"""
    return [
        ('report_mask', start, flags(mask_bits)),
        ('obd_vin', start + 1, text),
        ('obd_connection', start + 2, integer),
        ('obd_power_voltage', start + 3, integer),
        ('supported_pids', start + 4, text),
        ('supported_pids_parsed', start + 4, supported_pids),
        ('engine_rpm', start + 5, integer),
        ('vehicle_speed', start + 6, integer),
        ('engine_coolant_temperature', start + 7, integer),
        ('fuel_consumption', start + 8, fuel_consumption),
        ('dtcs_cleared_distance', start + 9, integer),
        ('mil_activated_distance', start + 10, integer),
        ('mil_status', start + 11, integer),
        ('number_of_dtcs', start + 12, integer),
        ('diagnostic_trouble_codes', None, dtc_codes(start + 12, start + 13)),
        ('throttle_position', start + 14, integer),
        ('engine_load', start + 15, integer),
        ('fuel_level_input', start + 16, integer),
        ('obd_protocol', start + 17, text),
        ('obd_protocol_description', start + 17, obd_protocol),
    ]


POSITION_REPORT = [
    ('report_id_type', 5, report_id_type),
    ('number', 6, integer),
    *position_block(7),
    ('mileage', 19, decimal),
]

EPS_REPORT = [('external_power_voltage', 4, integer)] + POSITION_REPORT

FRI_REPORT = EPS_REPORT + [
    ('hour_meter_count', 20, hour_meter),
    ('device_status', 24, hex_int),
    ('engine_rpm', 25, integer),
    ('fuel_consumption', 26, fuel_consumption),
    ('fuel_level_input', 27, integer),
]

STOP_REPORT = position_block(6) + [('mileage', 18, decimal)]

VIRTUAL_IGNITION_REPORT = [
    ('report_type', 5, integer),
    ('duration_of_ignition', 6, integer),
    *position_block(7),
    ('hour_meter_count', 19, hour_meter),
    ('mileage', 20, decimal),
]

UPC_REPORT = [
    ('command_id', 4, integer),
    ('result', 5, integer),
    ('download_url', 6, text),
]

_ROWS: Dict[str, List[Row]] = {
    'GTFRI': FRI_REPORT,
    'GTEPS': EPS_REPORT,
    'GTINF': [
        *_motion(4),
        ('icc_id', 5, text),
        *_csq(6, 7),
        ('external_power_supply', 8, integer),
        ('external_power_voltage', 9, integer),
        ('backup_battery_voltage', 11, decimal),
        ('charging', 12, integer),
        ('led_on', 13, integer),
        ('last_fix_utc_time', 16, date_time),
        ('time_zone_offset', 22, text),
        ('daylight_saving', 23, integer),
    ],
    'GTGPS': [
        ('report_composition_mask', 7, hex_int),
        ('current_gnss_antenna', 8, integer),
        ('last_fix_utc_time', 10, date_time),
    ],
    'GTALS': [
        ('sub_at_command', 4, text),
        ('mode', 5, integer),
        ('discard_no_fix', 6, integer),
        ('period_enable', 8, integer),
        ('start_time', 9, text),
        ('end_time', 10, text),
        ('send_interval', 12, integer),
        ('distance', 13, integer),
        ('mileage', 14, integer),
        ('corner_report', 16, integer),
        ('igf_report_interval', 17, integer),
    ],
    'GTALM': [('configurations', None, configurations)],
    'GTCID': [('icc_id', 4, text)],
    'GTCSQ': _csq(4, 5),
    'GTVER': [
        ('device_type', 4, text),
        *_versioned('firmware_version', 5),
        *_versioned('hardware_version', 6),
    ],
    'GTBAT': [
        ('external_power_supply', 4, integer),
        ('external_power_voltage', 5, integer),
        ('backup_battery_voltage', 7, decimal),
        ('charging', 8, integer),
        ('led_on', 9, integer),
    ],
    'GTTMZ': [
        ('time_zone_offset', 4, text),
        ('time_zone_offset_parsed', 4, time_zone),
        ('daylight_saving', 5, integer),
    ],
    'GTGSV': [
        ('sv_count', 4, integer),
        ('satellites', None, satellites),
        ('active_satellites', None, active_satellites),
    ],
    'GTATI': [
        ('device_type', 4, text),
        ('ati_mask', 5, text),
        *_versioned('firmware_version', 6),
        *_versioned('mcu_firmware_version', 7),
        *_versioned('obd_firmware_version', 8),
        *_versioned('ble_firmware_version', 9),
        *_versioned('modem_firmware_version', 10),
        *_versioned('hardware_version', 11),
        *_versioned('modem_hardware_version', 12),
        ('sensor_id', 13, text),
    ],
    'GTAIF': [
        ('apn', 4, text),
        ('apn_user_name', 5, text),
        ('apn_password', 6, text),
        ('icc_id', 7, text),
        *_csq(8, 9),
        ('cell_id', 10, text),
        ('ip_address', 11, text),
        ('main_dns', 12, text),
        ('backup_dns', 13, text),
        ('network_type', 17, integer),
        ('network_type_description', 17, described(NETWORK_TYPES)),
    ],
    'GTBTI': [
        ('bluetooth_name', 4, text),
        ('bluetooth_mac_address', 5, text),
        ('bluetooth_state', 6, integer),
        ('bluetooth_state_description', 6, described(BLUETOOTH_STATES)),
        ('connected_device_number', 7, integer),
        ('connected_device_mac', 9, text),
        ('role', 10, integer),
        ('role_description', 10, described(BLUETOOTH_ROLES)),
        ('real_time_state', 11, integer),
        ('real_time_state_description', 11, described(REALTIME_STATES)),
        ('ghost_battery_percentage', 12, integer),
        ('ghost_status', 13, text),
        ('ghost_status_details', 13, flags(GHOST_STATUS_BITS)),
    ],
    'GTSTC': position_block(5),
    'GTRMD': [('roaming_state', 4, integer), *position_block(5)],
    'GTIGF': [
        ('duration_of_ignition_on', 4, integer),
        *position_block(5),
        ('hour_meter_count', 17, hour_meter),
        ('mileage', 18, decimal),
    ],
    'GTIGN': [
        ('duration_of_ignition_off', 4, integer),
        *position_block(5),
        ('hour_meter_count', 17, hour_meter),
        ('mileage', 18, decimal),
    ],
    'GTBPL': [('backup_battery_voltage', 4, decimal), *position_block(5)],
    'GTGES': [
        ('report_id_type', 5, report_id_type),
        ('trigger_mode', 6, integer),
        ('radius', 7, integer),
        ('check_interval', 8, integer),
        ('number', 9, integer),
        *position_block(10),
        ('mileage', 22, decimal),
    ],
    'GTSTT': [*_motion(4), *position_block(5)],
    'GTCRA': [('crash_counter', 4, hex_int), *position_block(5)],
    'GTASC': [
        ('x_forward', 4, decimal),
        ('y_forward', 5, decimal),
        ('z_forward', 6, decimal),
        ('x_side', 7, decimal),
        ('y_side', 8, decimal),
        ('z_side', 9, decimal),
        ('x_vertical', 10, decimal),
        ('y_vertical', 11, decimal),
        ('z_vertical', 12, decimal),
        *position_block(13),
    ],
    'GTUPC': UPC_REPORT,
    'GTEUC': UPC_REPORT + [('identifier_number', 7, text)],
    'GTBSF': [
        ('number', 5, integer),
        ('accessory_mac', 6, text),
        ('uuid', 7, text),
        ('major', 8, hex_int),
        ('minor', 9, hex_int),
        *position_block(10),
    ],
    'GTSVR': [
        ('svr_working_state', 4, integer),
        ('ghost_mac_broadcast', 5, text),
        ('svr_appending_information', 6, text),
        *position_block(8),
    ],
    'GTOBD': [
        ('report_type', 4, integer),
        *_obd_values(5, OBD_REPORT_MASK_BITS),
        ('obd_mileage', 23, decimal),
        *position_block(24),
        ('mileage', 36, decimal),
    ],
    'GTOSM': [
        ('record_id', 4, integer),
        ('report_type', 5, integer),
        *_obd_values(6, OSM_REPORT_MASK_BITS),
        *position_block(24),
        ('mileage', 36, decimal),
    ],
    'GTOER': [
        ('code', 4, text),
        ('obd_protocol', 5, text),
        ('obd_protocol_description', 5, obd_protocol),
        *position_block(7),
    ],
    'GTJES': [
        ('jes_mask', 4, text),
        ('journey_fuel_consumption', 5, integer),
        ('max_rpm', 6, integer),
        ('average_rpm', 7, integer),
        ('max_throttle_position', 8, integer),
        ('average_throttle_position', 9, integer),
        ('max_engine_load', 10, integer),
        ('average_engine_load', 11, integer),
        ('trip_mileage', 12, decimal),
        *position_block(13),
        ('mileage', 25, decimal),
    ],
    'GTBAA': [
        ('index', 4, hex_int),
        ('accessory_type', 5, integer),
        ('accessory_model', 6, integer),
        ('alarm_type', 7, hex_int),
        ('append_mask', 8, text),
        ('accessory_name', 9, text),
        ('accessory_mac', 10, text),
        ('relay_config_result', 11, integer),
        ('relay_state', 12, integer),
        *position_block(13),
    ],
    'GTIDF': [
        *_motion(4),
        ('duration_of_idling_status', 5, integer),
        *position_block(6),
        ('mileage', 18, decimal),
    ],
    'GTGSM': [
        ('fix_type', 4, text),
        ('neighbor_cells', None, neighbor_cells),
        ('serving_cell', None, serving_cell),
    ],
    'GTGSS': [
        ('gnss_signal_status', 4, integer),
        ('satellites_in_use', 5, integer),
        *_motion(6),
        *position_block(8),
    ],
    'GTCRD': [
        ('crash_status', 4, crash_status),
        ('total_frames', 5, integer),
        ('frame_number', 6, integer),
        ('acceleration_samples', 7, acceleration_samples),
    ],
}

# Mnemonics sharing one layout
_SHARED = {
    'position': (('GTTOW', 'GTGEO', 'GTSPD', 'GTRTL', 'GTDOG', 'GTIGL', 'GTVGL', 'GTHBM'),
                 POSITION_REPORT),
    'simple': (('GTPNA', 'GTPFA', 'GTPDP'), []),
    'common': (('GTMPN', 'GTMPF', 'GTBTC', 'GTOPN', 'GTOPF'), position_block(4)),
    'stop': (('GTIDN', 'GTSTR', 'GTSTP', 'GTLSP'), STOP_REPORT),
    'virtual_ignition': (('GTVGN', 'GTVGF'), VIRTUAL_IGNITION_REPORT),
}

TEXT_REPORTS: Dict[str, ReportLayout] = {
    mnemonic: _layout(mnemonic[2:].capitalize(), rows) for mnemonic, rows in _ROWS.items()
}
for _group, (_mnemonics, _rows) in _SHARED.items():
    _shared_layout = _layout(''.join(part.capitalize() for part in _group.split('_')), _rows)
    for _mnemonic in _mnemonics:
        TEXT_REPORTS[_mnemonic] = _shared_layout


COMMAND_ACK = ReportLayout('CommandAck', [
    ('protocol_version', 0, protocol_version),
    ('unique_id', 1, text),
    ('device_name', 2, text),
    ('serial_number', 3, hex_int),
    *trailer(),
])

HEARTBEAT_ACK = ReportLayout('HeartbeatAck', [
    ('protocol_version', 0, protocol_version),
    ('unique_id', 1, text),
    ('device_name', 2, text),
    *trailer(),
])

ACK_REPORTS: Dict[str, ReportLayout] = {f'GT{tag}': COMMAND_ACK for tag in CONFIG_COMMANDS}
ACK_REPORTS['GTRTO'] = COMMAND_ACK
ACK_REPORTS['GTHBD'] = HEARTBEAT_ACK
