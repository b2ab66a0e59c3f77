from datetime import datetime

import pytest

from tcp_server.protocols.errors import FramingError, UnknownCommand
from tcp_server.protocols.queclink import (
    QueclinkProtocolHandler, TextReport, clean_message, decode_report,
)
from tcp_server.protocols.queclink_config import UnknownSection

CID = "+RESP:GTCID,5E0100,135790246811220,,GV500MAP,89440000000000000000,20090214093254,11F0$"

FRI_PARAMS = (
    "5E0100,135790246811220,,GV500MAP,12100,10,1,1,4.3,92,70.0,121.354335,31.222073,"
    "20090214013254,0460,0000,18d8,6141,00,2000.0,12345:12:34,,,,220100,2100,5.5,50,"
    "20090214093254,11F0$"
)

OSM = (
    "+RESP:GTOSM,5E0500,861971050198167,MZBEU812TRN617180,GV500MAP,6,1,71FFFF,"
    "MZBEU812TRN617180,1,13553,903A81C0,1108,44,,4.7,10758,0,0,0,,17,17,,33,0,18.4,117,"
    "538.9,78.409098,17.403438,20250619151140,0404,0049,4F29,9813,00,7.5,20250619204140,0C0A$"
)


def test_clean_message():
    assert clean_message(" +RESP:GTCID,1,2$\r\n") == "+RESP:GTCID,1,2"
    assert clean_message("+RESP:GTCID,1,2,$") == "+RESP:GTCID,1,2"


def test_cid_report():
    """ICCID is the fifth field, count number is hex"""
    report = decode_report(CID)

    assert isinstance(report, TextReport)
    assert report.message_class == 'RESP'
    assert report.command == 'GTCID'
    assert report.data.icc_id == "89440000000000000000"
    assert report.data.count_number == 0x11F0
    assert report.data.send_time == datetime(2009, 2, 14, 9, 32, 54)
    assert report.data.unique_id == "135790246811220"
    assert report.data.vin is None
    assert report.data.device_name == "GV500MAP"
    assert report.data.protocol_version.device_type_name == 'GV500MAP'


def test_report_dump_is_camel_case():
    dumped = decode_report(CID).model_dump(mode='json', by_alias=True)
    assert dumped['protocol'] == 'QUECLINK'
    assert dumped['messageClass'] == 'RESP'
    assert dumped['data']['iccId'] == "89440000000000000000"
    assert dumped['data']['countNumber'] == 4592
    assert dumped['data']['sendTime'] == "2009-02-14T09:32:54"
    assert dumped['data']['protocolVersion']['formattedVersion'] == "1.0"


def test_schema_lists_only_its_fields():
    """Absent fields are None, fields of other report types do not exist"""
    data = decode_report(CID).data
    assert set(type(data).model_fields) == {
        'protocol_version', 'unique_id', 'vin', 'device_name', 'icc_id', 'send_time', 'count_number',
    }


def test_fri_report():
    data = decode_report("+RESP:GTFRI," + FRI_PARAMS).data

    assert data.external_power_voltage == 12100
    assert data.report_id_type.report_id == 1
    assert data.report_id_type.report_type == 0
    assert data.number == 1
    assert data.gnss_accuracy == 1
    assert data.speed == pytest.approx(4.3)
    assert data.azimuth == 92
    assert data.altitude == pytest.approx(70.0)
    assert data.longitude == pytest.approx(121.354335)
    assert data.latitude == pytest.approx(31.222073)
    assert data.gnss_utc_time == datetime(2009, 2, 14, 1, 32, 54)
    assert data.mcc == "0460"
    assert data.mnc == "0000"
    assert data.lac == 0x18D8
    assert data.cell_id == 0x6141
    assert data.mileage == pytest.approx(2000.0)
    assert data.hour_meter_count == "12345:12:34"
    assert data.device_status == 0x220100
    assert data.engine_rpm == 2100
    assert data.fuel_consumption == pytest.approx(5.5)
    assert data.fuel_level_input == 50


def test_malformed_field_does_not_spoil_the_report():
    """A bad value becomes None, the other fields still decode"""
    params = FRI_PARAMS.replace(",4.3,", ",abc,")
    data = decode_report("+RESP:GTFRI," + params).data
    assert data.speed is None
    assert data.azimuth == 92
    assert data.count_number == 0x11F0

    cid = decode_report(CID.replace("20090214093254", "2009021409325X")).data
    assert cid.send_time is None
    assert cid.count_number == 0x11F0


def test_buffered_report_uses_mnemonic_layout():
    live = decode_report("+RESP:GTFRI," + FRI_PARAMS).data
    buffered = decode_report("+BUFF:GTFRI," + FRI_PARAMS)
    assert buffered.message_class == 'BUFF'
    assert buffered.command == 'GTFRI'
    assert buffered.data == live


def test_buffered_report_with_repeated_mnemonic():
    live = decode_report("+RESP:GTFRI," + FRI_PARAMS).data
    assert decode_report("+BUFF:GTFRI,GTFRI," + FRI_PARAMS).data == live


def test_osm_report():
    data = decode_report(OSM).data

    assert data.protocol_version.device_type_name == 'GV500MAP'
    assert data.vin == "MZBEU812TRN617180"
    assert data.record_id == 6
    assert data.report_type == 1
    assert data.report_mask['VIN'] is True
    assert data.report_mask['Mileage'] is True
    assert data.obd_vin == "MZBEU812TRN617180"
    assert data.obd_connection == 1
    assert data.obd_power_voltage == 13553
    assert data.supported_pids == "903A81C0"
    assert data.supported_pids_parsed.supported['engineRpm'] is True
    assert data.engine_rpm == 1108
    assert data.vehicle_speed == 44
    assert data.engine_coolant_temperature is None
    assert data.fuel_consumption == pytest.approx(4.7)
    assert data.dtcs_cleared_distance == 10758
    assert data.number_of_dtcs == 0
    assert data.diagnostic_trouble_codes == []
    assert data.throttle_position == 17
    assert data.engine_load == 17
    assert data.fuel_level_input is None
    assert data.obd_protocol == "33"
    assert data.obd_protocol_description == 'ISO 15765, ID 11bits 500kb'
    assert data.gnss_accuracy == 0
    assert data.speed == pytest.approx(18.4)
    assert data.azimuth == 117
    assert data.altitude == pytest.approx(538.9)
    assert data.longitude == pytest.approx(78.409098)
    assert data.latitude == pytest.approx(17.403438)
    assert data.mcc == "0404"
    assert data.lac == 0x4F29
    assert data.cell_id == 0x9813
    assert data.mileage == pytest.approx(7.5)
    assert data.count_number == 0x0C0A


def test_fuel_consumption_while_idling():
    data = decode_report(OSM.replace(",44,,4.7,", ",44,,inf,")).data
    assert data.fuel_consumption == 'inf'


def test_gsv_satellites():
    report = decode_report("+RESP:GTGSV,5E0100,135790246811220,,,3,3,42,4,0,14,39,20160405133851,000B$")
    data = report.data
    assert data.sv_count == 3
    assert [(s.sv_id, s.sv_power) for s in data.satellites] == [(3, 42), (4, 0), (14, 39)]
    assert data.active_satellites == 2
    assert data.count_number == 11


def test_tmz_report():
    data = decode_report("+RESP:GTTMZ,5E0100,135790246811220,,GV500MAP,+0800,0,20090214093254,11F0$").data
    assert data.time_zone_offset == "+0800"
    assert data.time_zone_offset_parsed.total_minutes == 480
    assert data.daylight_saving == 0


def test_crd_report():
    data = decode_report(
        "+RESP:GTCRD,5E0100,135790246811220,,GV500MAP,0B,2,1,FFFF000100100000FF9C0064,20090214093254,11F0$"
    ).data
    assert data.crash_status.crash_detected
    assert data.crash_status.crash_severity == 5
    assert data.total_frames == 2
    assert data.frame_number == 1
    assert [(s.x, s.y, s.z) for s in data.acceleration_samples] == [(-1, 1, 16), (0, -100, 100)]


def test_all_configurations_report():
    report = decode_report(
        "+RESP:GTALM,5E0100,135790246811220,,GV500MAP,BSI,cmnet,,,,,,1,0;"
        "SRI,3,,1,192.168.1.1,9001,,0,,30,1,0,0,,,0;XYZ,a,b,20090214093254,11F0$"
    )
    sections = report.data.configurations

    assert list(sections) == ['BSI', 'SRI', 'XYZ']
    assert sections['BSI'].apn == 'cmnet'
    assert sections['BSI'].apn_user is None
    assert sections['BSI'].network_mode == 1
    assert sections['BSI'].lte_mode == 0
    assert sections['SRI'].report_mode == 3
    assert sections['SRI'].buffer_mode == 1
    assert sections['SRI'].main_server == '192.168.1.1'
    assert sections['SRI'].main_server_port == 9001
    assert sections['SRI'].heartbeat_interval == 30
    assert sections['SRI'].encryption_mode == 0
    assert isinstance(sections['XYZ'], UnknownSection)
    assert sections['XYZ'].raw_content == 'a,b'
    assert report.data.count_number == 0x11F0

    dumped = report.model_dump(mode='json', by_alias=True)
    assert dumped['data']['configurations']['BSI']['apn'] == 'cmnet'
    assert dumped['data']['configurations']['SRI']['mainServerPort'] == 9001
    assert dumped['data']['configurations']['XYZ']['rawContent'] == 'a,b'


def test_command_acknowledgement():
    report = decode_report("+ACK:GTBSI,5E0100,135790246811220,,0000,20090214093254,11F0$")
    assert report.message_class == 'ACK'
    assert report.command == 'GTBSI'
    assert report.data.serial_number == 0
    assert report.data.unique_id == "135790246811220"
    assert report.data.count_number == 0x11F0


def test_heartbeat_acknowledgement():
    data = decode_report("+ACK:GTHBD,5E0100,135790246811220,GV500MAP,20090214093254,11F0$").data
    assert data.device_name == "GV500MAP"
    assert data.send_time == datetime(2009, 2, 14, 9, 32, 54)


def test_unknown_mnemonic_raises():
    with pytest.raises(UnknownCommand) as excinfo:
        decode_report("+RESP:GTXYZ,5E0100,135790246811220,,GV500MAP,20090214093254,11F0$")
    assert excinfo.value.command == 'RESP:GTXYZ'


def test_ack_only_mnemonics_are_not_reports():
    with pytest.raises(UnknownCommand):
        decode_report("+RESP:GTBSI,5E0100,135790246811220,,0000,20090214093254,11F0$")


@pytest.mark.parametrize("message", [
    "+RESP:gtcid,5E0100$",
    "+RESP,GTCID,5E0100$",
    "hello world",
    "",
])
def test_malformed_messages_raise_framing_error(message):
    with pytest.raises(FramingError):
        decode_report(message)


def test_unknown_mnemonic_does_not_stop_the_handler():
    """The failing message yields an error result, the next one decodes"""
    handler = QueclinkProtocolHandler()
    failed = handler.decode(b"+RESP:GTXYZ,5E0100,135790246811220,,GV500MAP,20090214093254,11F0$")
    assert not failed.ok
    assert isinstance(failed.error, UnknownCommand)

    result = handler.decode(CID.encode())
    assert result.ok
    assert result.report.data.icc_id == "89440000000000000000"
    assert result.acknowledgement is None


def test_handler_detection():
    handler = QueclinkProtocolHandler()
    assert handler.can_handle(CID)
    assert handler.can_handle(b"+ACK:GTHBD,5E0100$")
    assert not handler.can_handle(b"\x7e\x01\x00")
    assert not handler.can_handle("GTFRI")


def _gsm_message():
    neighbors = []
    for i in range(6):
        neighbors += ["0460", "0000", f"{0x1800 + i:04X}", f"{0xA000 + i:04X}", str(10 + i), "00"]
    serving = ["0460", "0001", "18D8", "6141", "33", "00"]
    fields = ["5E0100", "135790246811220", "", "GV500MAP", "FRI", *neighbors, *serving,
              "20090214093254", "11F0"]
    return "+RESP:GTGSM," + ",".join(fields) + "$"


def test_gsm_report_reads_six_neighbor_cells_and_serving_cell():
    data = decode_report(_gsm_message()).data

    assert data.fix_type == "FRI"
    assert len(data.neighbor_cells) == 6
    for i, cell in enumerate(data.neighbor_cells):
        assert cell.mcc == "0460"
        assert cell.mnc == "0000"
        assert cell.lac == 0x1800 + i
        assert cell.cell_id == 0xA000 + i
        assert cell.rx_level == 10 + i

    serving = data.serving_cell
    assert (serving.mcc, serving.mnc) == ("0460", "0001")
    assert serving.lac == 0x18D8
    assert serving.cell_id == 0x6141
    assert serving.rx_level == 33
    assert data.send_time == datetime(2009, 2, 14, 9, 32, 54)
    assert data.count_number == 0x11F0


def test_malformed_satellite_pair_only_affects_that_satellite():
    report = decode_report("+RESP:GTGSV,5E0100,135790246811220,,,3,3,42,x4,oops,14,39,20160405133851,000B$")
    data = report.data
    assert [(s.sv_id, s.sv_power) for s in data.satellites] == [(3, 42), (None, None), (14, 39)]
    assert data.active_satellites == 2
