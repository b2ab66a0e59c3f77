"""
Queclink @Track Protocol Handler
ASCII reports (+RESP, +ACK, +BUFF) and their hex encoded form
"""
import logging
import re
from typing import Literal, Optional, Union

from pydantic import SerializeAsAny

from .base import BaseProtocolHandler, FrozenModel
from .errors import FramingError, UnknownCommand
from .queclink_fields import ReportFields
from .queclink_hex import HEX_FAMILIES, decode_hex_report
from .queclink_layouts import ACK_REPORTS, TEXT_REPORTS

logger = logging.getLogger(__name__)

TEXT_PREFIXES = ('+RESP:', '+ACK:', '+BUFF:')
HEADER_PATTERN = re.compile(r'^\+(RESP|ACK|BUFF):([A-Z0-9]+)$')
HEX_PATTERN = re.compile(r'^[0-9A-Fa-f]+$')
MIN_HEX_DIGITS = 10

# Binary frames start with the ASCII family name, e.g. b'+RSP'
BINARY_HEADERS = frozenset(bytes.fromhex(header) for header in HEX_FAMILIES)


class TextReport(FrozenModel):
    """Comma separated report. BUFF reports carry the layout of their mnemonic"""

    protocol: Literal['QUECLINK'] = 'QUECLINK'
    message_class: Literal['RESP', 'ACK', 'BUFF']
    command: str
    data: SerializeAsAny[ReportFields]
    raw: str


class HexReport(FrozenModel):
    protocol: Literal['QUECLINK'] = 'QUECLINK'
    message_class: Literal['HEX'] = 'HEX'
    family: str
    data: SerializeAsAny[ReportFields]
    raw: str


QueclinkReport = Union[TextReport, HexReport]


def clean_message(message: str) -> str:
    """Strip whitespace, the '$' terminator and one trailing separator"""
    text = message.strip()
    if text.endswith('$'):
        text = text[:-1]
    if text.endswith(','):
        text = text[:-1]
    return text


def decode_text_report(message: str) -> TextReport:
    parts = message.split(',')
    match = HEADER_PATTERN.match(parts[0])
    if not match:
        raise FramingError(f"Malformed report header: {parts[0][:32]!r}")

    message_class, command = match.groups()
    params = parts[1:]

    if message_class == 'ACK':
        layout = ACK_REPORTS.get(command)
    else:
        layout = TEXT_REPORTS.get(command)
    if layout is None:
        raise UnknownCommand(f"{message_class}:{command}")

    # Some firmware repeats the mnemonic as the first buffered parameter
    if message_class == 'BUFF' and params and params[0] == command:
        params = params[1:]

    return TextReport(
        message_class=message_class,
        command=command,
        data=layout.decode(params),
        raw=message,
    )


def decode_report(message: str) -> QueclinkReport:
    """
    Decode one Queclink message, ASCII or hex encoded.

    Raises FramingError when the message is neither, UnknownCommand for an
    unregistered mnemonic or hex family.
    """
    text = clean_message(message)
    if text.startswith(TEXT_PREFIXES):
        return decode_text_report(text)

    if len(text) > MIN_HEX_DIGITS and HEX_PATTERN.match(text):
        family, fields = decode_hex_report(text)
        return HexReport(family=family, data=fields, raw=text.upper())

    raise FramingError(f"Not a Queclink report: {text[:32]!r}")


def _to_text(data) -> str:
    """Binary hex frames are hexlified, everything else is read as ASCII"""
    if isinstance(data, str):
        return data
    raw = bytes(data)
    if raw[:4] in BINARY_HEADERS and raw[4:5] != b':':
        return raw.hex().upper()
    return raw.decode('ascii', errors='replace')


class QueclinkProtocolHandler(BaseProtocolHandler):
    """Handler for Queclink GV series trackers"""

    def get_protocol_name(self) -> str:
        return "QUECLINK"

    def can_handle(self, data) -> bool:
        """Check if this is a Queclink ASCII report or a hex/binary frame"""
        text = _to_text(data).strip()
        if text.startswith(TEXT_PREFIXES):
            return True
        return (
            len(text) > MIN_HEX_DIGITS
            and HEX_PATTERN.match(text) is not None
            and text[:8].upper() in HEX_FAMILIES
        )

    def decode_message(self, data) -> QueclinkReport:
        report = decode_report(_to_text(data))
        if isinstance(report, TextReport):
            logger.debug(f"Queclink {report.message_class}:{report.command} decoded")
        else:
            logger.debug(f"Queclink hex {report.family} decoded")
        return report

    def create_response(self, report: QueclinkReport) -> Optional[bytes]:
        """Queclink devices do not expect an acknowledgement from the gateway"""
        return None
