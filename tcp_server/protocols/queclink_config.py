"""
Configuration sections of the GTALM (all configurations) report.

The report body is a ``;`` separated list of sections. Each section starts
with its command tag (``BSI``, ``SRI``, ``FRI``...) followed by that command's
comma separated parameters. Indexes below are relative to the first
parameter after the tag. Reserved parameters are skipped.
"""
import logging
from typing import Dict, Optional, Sequence

from pydantic import SerializeAsAny

from .queclink_fields import (
    ReportFields, ReportLayout, decimal, integer, string_list, text,
)

logger = logging.getLogger(__name__)


class UnknownSection(ReportFields):
    """Section with a tag that has no layout, kept verbatim"""
    raw_content: Optional[str] = None


def _rows(integers=(), texts=(), decimals=()):
    rows = [(name, index, integer) for name, index in integers]
    rows += [(name, index, text) for name, index in texts]
    rows += [(name, index, decimal) for name, index in decimals]
    return sorted(rows, key=lambda row: row[1])


SECTION_ROWS = {
    'BSI': _rows(
        texts=[('apn', 0), ('apn_user', 1), ('apn_password', 2)],
        integers=[('network_mode', 6), ('lte_mode', 7)],
    ),
    'SRI': _rows(
        integers=[
            ('report_mode', 0), ('buffer_mode', 2), ('main_server_port', 4),
            ('backup_server_port', 6), ('heartbeat_interval', 8), ('sack_enable', 9),
            ('protocol_format', 10), ('enable_sms_ack', 11), ('encryption_mode', 14),
        ],
        texts=[
            ('main_server', 3), ('backup_server', 5), ('sms_gateway', 7),
            ('high_priority_mask', 12),
        ],
    ),
    'CFG': _rows(
        texts=[('password', 0), ('device_name', 1), ('report_mask', 6), ('event_mask', 9)],
        integers=[
            ('odo_enable', 2), ('odo_mileage_mode', 4), ('power_saving_mode', 7),
            ('sleep_mode', 8), ('info_report_enable', 11), ('info_report_interval', 12),
            ('backup_battery_on', 13), ('backup_battery_charge', 14), ('agps_mode', 15),
            ('cell_info_report', 16), ('gnss_lost_time', 17), ('tow_mode', 18),
            ('gnss_antenna_mode', 19), ('gnss_antenna_timeout', 20),
        ],
        decimals=[('odo_initial_mileage', 3)],
    ),
    'TOW': _rows(integers=[
        ('tow_enable', 0), ('engine_off_to_tow', 1), ('fake_tow_delay', 2),
        ('tow_interval', 3), ('rest_duration', 8), ('motion_duration', 9),
        ('motion_threshold', 10),
    ]),
    'EPS': _rows(integers=[
        ('eps_mode', 0), ('min_voltage', 1), ('max_voltage', 2), ('sample_period', 3),
        ('debounce_time', 4), ('sync_with_fri', 5), ('voltage_margin_error', 6),
        ('debounce_voltage_threshold', 7), ('mpn_mpf_validity_time', 8),
    ]),
    'TMA': _rows(
        texts=[('sign', 0)],
        integers=[('hour_offset', 1), ('minute_offset', 2), ('daylight_saving', 3)],
    ),
    'OWH': _rows(
        integers=[('owh_mode', 0)],
        texts=[
            ('day_of_work', 1), ('working_hours_start1', 2), ('working_hours_end1', 3),
            ('working_hours_start2', 4), ('working_hours_end2', 5),
        ],
    ),
    'FRI': _rows(
        integers=[
            ('mode', 0), ('discard_no_fix', 1), ('period_enable', 2), ('send_interval', 5),
            ('distance', 6), ('corner_report', 7), ('igf_report_interval', 8),
        ],
        texts=[('begin_time', 3), ('end_time', 4)],
    ),
    'GEO': _rows(
        integers=[
            ('geo_id', 0), ('mode', 1), ('radius', 4), ('check_interval', 5),
            ('trigger_mode', 10), ('trigger_report', 11), ('state_mode', 12),
        ],
        decimals=[('longitude', 2), ('latitude', 3)],
    ),
    'SPD': _rows(integers=[
        ('mode', 0), ('min_speed', 1), ('max_speed', 2), ('validity', 3), ('send_interval', 4),
    ]),
    'DOG': _rows(
        integers=[
            ('mode', 0), ('ignition_frequency', 1), ('interval', 2),
            ('report_before_reboot', 4), ('no_network_interval', 8),
            ('no_activation_interval', 9), ('send_failure_timeout', 10),
        ],
        texts=[('time', 3)],
    ),
    'IDL': _rows(integers=[('mode', 0), ('time_to_idling', 1), ('time_to_movement', 2)]),
    'HMC': _rows(integers=[('enable', 0)], texts=[('init_hour_meter', 1)]),
    'HBM': _rows(integers=[
        ('hbm_enable', 0), ('discard_unknown_event', 2), ('high_speed', 3),
        ('delta_vhb', 4), ('delta_vha', 5), ('medium_speed', 7), ('delta_vmb', 8),
        ('delta_vma', 9), ('delta_vlb', 12), ('delta_vla', 13),
        ('cornering_braking_threshold', 18), ('acceleration_threshold', 19),
        ('acceleration_duration', 20),
    ]),
    'SSR': _rows(integers=[
        ('mode', 0), ('time_to_stop', 1), ('time_to_start', 2), ('start_speed', 3),
        ('long_stop', 4), ('time_unit', 5),
    ]),
    'OBD': _rows(
        integers=[
            ('mode', 0), ('check_interval', 1), ('report_interval', 2),
            ('report_interval_igf', 3), ('fuel_oil_type', 7), ('igf_debounce_time', 12),
        ],
        texts=[('report_mask', 4), ('event_mask', 5), ('journey_summary_mask', 10)],
        decimals=[('displacement', 6), ('custom_fuel_ratio', 8), ('custom_fuel_density', 9)],
    ),
    'OSM': _rows(
        integers=[
            ('osm_id', 0), ('mode', 1), ('min_threshold', 3), ('max_threshold', 4),
            ('send_interval', 5),
        ],
        texts=[('report_mask', 2)],
    ),
    'EMG': _rows(integers=[
        ('mode', 0), ('emergency_period', 1), ('emergency_report_interval', 2),
    ]),
    'RMD': _rows(
        integers=[('mode', 0)],
        texts=[
            ('home_operator_list', 5), ('roaming_operator_list', 8),
            ('blocked_operator_list', 11), ('known_roaming_event_mask', 13),
            ('unknown_roaming_event_mask', 16),
        ],
    ),
    'CMD': _rows(
        integers=[('mode', 0), ('stored_cmd_id', 1)],
        texts=[('command_string', 2)],
    ),
    'UDF': _rows(
        integers=[('mode', 0), ('group_id', 1), ('debounce_time', 3), ('stocmd_ack', 7)],
        texts=[('input_id_mask', 2), ('stocmd_id_mask', 6)],
    ),
    'UPC': _rows(
        integers=[
            ('max_download_retry', 0), ('download_timeout', 1), ('download_protocol', 2),
            ('enable_report', 3), ('update_interval', 4), ('mode', 6),
            ('extended_status_report', 8),
        ],
        texts=[('download_url', 5), ('identifier_number', 9), ('update_status_mask', 11)],
    ),
    'GAM': _rows(integers=[
        ('mode', 0), ('speed_mode', 1), ('motion_speed_threshold', 2),
        ('motion_cumulative_time', 3), ('motionless_cumulative_time', 4),
        ('gnss_fix_failure_timeout', 5),
    ]),
    'VVS': _rows(integers=[
        ('ignition_on_voltage', 0), ('voltage_offset', 1), ('ignition_on_debounce', 2),
        ('smart_voltage_adjustment', 3), ('ignition_off_debounce', 4),
    ]),
    'AVS': _rows(integers=[('rest_validity', 0), ('movement_validity', 1)]),
    'VMS': _rows(
        integers=[('virtual_ignition_mode', 0), ('on_logic', 3)],
        texts=[('on_mask', 1), ('off_mask', 2)],
    ),
    'ASC': _rows(integers=[
        ('brake_speed_threshold', 0), ('delta_speed_threshold', 1),
        ('delta_heading_threshold', 2),
    ]),
    'BAS': _rows(
        integers=[('index', 0), ('accessory_type', 1), ('accessory_model', 2)],
        texts=[('accessory_name', 3), ('accessory_mac', 4), ('accessory_append_mask', 5)],
    ),
    'FVR': _rows(texts=[
        ('config_name', 0), ('config_version', 1), ('command_mask', 2), ('geo_id_mask', 3),
        ('digital_signature', 6), ('generation_time', 11),
    ]),
    'BTS': _rows(integers=[('mode', 0)], texts=[('bluetooth_name', 2)]),
    'SVR': _rows(
        integers=[
            ('mode', 0), ('connect_interval', 2), ('connect_fail_count', 3),
            ('match_connected_imei', 4), ('bti_report_interval', 5),
        ],
        texts=[('ghost_mac_address', 1)],
    ),
    'BSF': _rows(
        integers=[('mode', 0), ('scan_data_type', 1), ('scan_interval', 4), ('lost_count', 5)],
        texts=[('uuid', 2)],
    ),
    'WLT': _rows(integers=[('number_filter', 0)]) + [
        ('phone_number_list', None, string_list(1, 11)),
    ],
    'HRM': _rows(texts=[
        ('ack_mask', 2), ('rsp_mask', 3), ('evt_mask', 4), ('inf_mask', 5), ('hbd_mask', 6),
        ('crd_mask', 7), ('obd_mask', 10),
    ]),
    'CRA': _rows(integers=[
        ('mode', 0), ('threshold_x', 1), ('threshold_y', 2), ('threshold_z', 3),
        ('sampling_start', 4), ('samples_before_crash', 5), ('samples_after_crash', 6),
    ]),
    'PDS': _rows(integers=[('mode', 0)], texts=[('mask', 1)]),
}

# Additional geofence slots share the GEO layout
for _tag in ('GEOID2', 'GEOID3', 'GEOID4'):
    SECTION_ROWS[_tag] = SECTION_ROWS['GEO']

SECTION_LAYOUTS = {
    tag: ReportLayout(f"Config{tag.capitalize()}", rows)
    for tag, rows in SECTION_ROWS.items()
}

# Configuration commands acknowledged with +ACK:GT<tag>
CONFIG_COMMANDS = tuple(tag for tag in SECTION_ROWS if not tag.startswith('GEOID'))


def decode_section(section: str) -> tuple:
    """Split one ``TAG,p0,p1,...`` section into its tag and decoded fields"""
    parts = section.split(',')
    tag = parts[0].strip()
    layout = SECTION_LAYOUTS.get(tag)
    if layout is None:
        logger.debug(f"No layout for configuration section {tag}, keeping raw content")
        return tag, UnknownSection(raw_content=','.join(parts[1:]) or None)
    return tag, layout.decode(parts[1:])


def configurations(params: Sequence[str]) -> Optional[Dict[str, SerializeAsAny[ReportFields]]]:
    """Decode every section between the report header and the trailer"""
    content = ','.join(params[4:-2])
    result = {}
    for section in content.split(';'):
        if not section.strip(', '):
            continue
        tag, fields = decode_section(section.strip(', '))
        if tag:
            result[tag] = fields
    return result
