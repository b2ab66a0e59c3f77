"""
GPS Tracker Protocol Handlers
"""
from typing import Dict, Any, Optional, Type, List
import logging
from .base import BaseProtocolHandler, DecodeResult
from .errors import (
    ChecksumMismatch, DecodeError, FramingError, LengthMismatch, MalformedField,
    UnknownCommand,
)
from .jt808_production import JT808ProductionHandler
from .queclink import QueclinkProtocolHandler

logger = logging.getLogger(__name__)


class ProtocolFactory:
    """Factory for detecting the protocol of a frame and decoding it"""

    # Register available protocol handlers, checked in order
    HANDLERS: List[Type[BaseProtocolHandler]] = [
        JT808ProductionHandler,
        QueclinkProtocolHandler,
    ]

    def __init__(self):
        self.handlers: Dict[str, BaseProtocolHandler] = {}
        for handler_class in self.HANDLERS:
            handler = handler_class()
            self.handlers[handler.get_protocol_name()] = handler

    def detect_protocol(self, data) -> Optional[BaseProtocolHandler]:
        """
        Detect and return the appropriate protocol handler for the message.
        Detection is by inspecting the bytes of the frame only.
        """
        for handler in self.handlers.values():
            if handler.can_handle(data):
                logger.debug(f"Detected {handler.get_protocol_name()} protocol")
                return handler

        logger.warning(f"No handler found for message: {data[:100]!r}")
        return None

    def get_handler(self, protocol_name: str) -> Optional[BaseProtocolHandler]:
        return self.handlers.get(protocol_name.upper())

    def decode(self, data) -> DecodeResult:
        """Decode one complete frame; failures are returned, never raised"""
        handler = self.detect_protocol(data)
        if handler is None:
            return DecodeResult(
                protocol="UNKNOWN",
                error=FramingError("Frame does not match any supported protocol"),
            )
        return handler.decode(data)

    def parse_message(self, data) -> Optional[Dict[str, Any]]:
        """
        Parse a message using the appropriate protocol handler
        Returns parsed data or None if parsing fails
        """
        result = self.decode(data)
        if not result.ok:
            return None
        return result.report.model_dump(mode='json', by_alias=True)

    def create_response(self, report) -> Optional[bytes]:
        """Create the acknowledgement for a decoded report, None when none is due"""
        handler = self.get_handler(getattr(report, 'protocol', ''))
        if handler is None:
            return None
        return handler.create_response(report)

    def get_supported_protocols(self) -> List[str]:
        """Get list of supported protocol names"""
        return list(self.handlers)


# Global factory instance
protocol_factory = ProtocolFactory()

# Export main functions
def decode(data) -> DecodeResult:
    """Decode a GPS tracker frame"""
    return protocol_factory.decode(data)

def parse_message(data) -> Optional[Dict[str, Any]]:
    """Parse a GPS tracker message"""
    return protocol_factory.parse_message(data)

def create_response(report) -> Optional[bytes]:
    """Create response for a decoded report"""
    return protocol_factory.create_response(report)

def get_supported_protocols() -> List[str]:
    """Get list of supported protocols"""
    return protocol_factory.get_supported_protocols()


__all__ = [
    'BaseProtocolHandler',
    'DecodeResult',
    'DecodeError',
    'FramingError',
    'ChecksumMismatch',
    'UnknownCommand',
    'MalformedField',
    'LengthMismatch',
    'JT808ProductionHandler',
    'QueclinkProtocolHandler',
    'ProtocolFactory',
    'protocol_factory',
    'decode',
    'parse_message',
    'create_response',
    'get_supported_protocols'
]
