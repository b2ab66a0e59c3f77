import pytest

from tcp_server.protocols.jt808_messages import MSG_LOCATION_REPORT
from tcp_server.protocols.jt808_responses import build_frame

from .frames import DEVICE_ID, REGISTRATION_HEX, location_body


@pytest.fixture
def registration_frame():
    return bytes.fromhex(REGISTRATION_HEX)


@pytest.fixture
def location_frame():
    return build_frame(MSG_LOCATION_REPORT, DEVICE_ID, 7, location_body())
