"""
Typed JT/T 808 report values
"""
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import Field, field_serializer

from .base import FrozenModel
from .binary_readers import read_text

# Terminal message IDs
MSG_TERMINAL_RESPONSE = 0x0001
MSG_HEARTBEAT = 0x0002
MSG_TERMINAL_REGISTER = 0x0100
MSG_TERMINAL_AUTH = 0x0102
MSG_LOCATION_REPORT = 0x0200

# Platform message IDs
MSG_SERVER_RESPONSE = 0x8001
MSG_REGISTER_RESPONSE = 0x8100


class FragmentInfo(FrozenModel):
    total: int
    index: int


class MessageHeader(FrozenModel):
    command_id: int
    body_properties: int
    body_length: int
    encryption: int
    is_subpackage: bool
    device_id: str
    # BCD bytes as received, echoed back unchanged in acknowledgements
    device_bcd: bytes = Field(default=b"", exclude=True)
    sequence: int
    fragment: Optional[FragmentInfo] = None

    @property
    def command_hex(self) -> str:
        return f'0x{self.command_id:04x}'


class TerminalRegistration(FrozenModel):
    kind: Literal['terminal_registration'] = 'terminal_registration'
    province_id: int
    city_id: int
    manufacturer_id: bytes
    terminal_model: bytes
    terminal_id: bytes
    plate_color: int
    plate: Optional[str] = None

    @property
    def manufacturer_name(self) -> str:
        return read_text(self.manufacturer_id).strip('\x00 ')

    @property
    def model_name(self) -> str:
        return read_text(self.terminal_model).strip('\x00 ')

    @field_serializer('manufacturer_id', 'terminal_model', 'terminal_id', when_used='json')
    def _raw_id_hex(self, value: bytes) -> str:
        return value.hex()


class TerminalAuthentication(FrozenModel):
    kind: Literal['terminal_authentication'] = 'terminal_authentication'
    auth_code: str


class Heartbeat(FrozenModel):
    kind: Literal['heartbeat'] = 'heartbeat'


class TerminalResponse(FrozenModel):
    kind: Literal['terminal_response'] = 'terminal_response'
    reply_sequence: int
    reply_command_id: int
    result: int


class AdditionalItem(FrozenModel):
    item_id: int
    data: bytes

    @field_serializer('data', when_used='json')
    def _data_hex(self, value: bytes) -> str:
        return value.hex()


class LocationReport(FrozenModel):
    kind: Literal['location_report'] = 'location_report'
    alarm: int
    status: int
    latitude: float
    longitude: float
    altitude: int
    speed: float
    direction: int
    gnss_time: Optional[datetime] = None
    gnss_fixed: bool
    extras: List[AdditionalItem] = []


MessageBody = Annotated[
    Union[
        TerminalRegistration,
        TerminalAuthentication,
        Heartbeat,
        TerminalResponse,
        LocationReport,
    ],
    Field(discriminator='kind'),
]


class JT808Report(FrozenModel):
    """A decoded frame. body is None for commands without a registered decoder"""

    protocol: Literal['JT808'] = 'JT808'
    header: MessageHeader
    body: Optional[MessageBody] = None
    payload: bytes
    length_mismatch: bool = False
    raw: bytes

    @field_serializer('payload', 'raw', when_used='json')
    def _bytes_hex(self, value: bytes) -> str:
        return value.hex()
