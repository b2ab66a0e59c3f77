"""
Base protocol handler for GPS trackers
"""
from abc import ABC, abstractmethod
from typing import Any, Optional
import logging

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from .errors import DecodeError

logger = logging.getLogger(__name__)


class FrozenModel(BaseModel):
    """Immutable report value, dumped with camelCase aliases"""

    model_config = {
        "frozen": True,
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


class DecodeResult(BaseModel):
    """Outcome of decoding one message: a report or the error that stopped it"""

    protocol: str
    report: Optional[Any] = None
    error: Optional[DecodeError] = None
    acknowledgement: Optional[bytes] = None

    model_config = {
        "frozen": True,
        "arbitrary_types_allowed": True,
    }

    @property
    def ok(self) -> bool:
        return self.error is None and self.report is not None


class BaseProtocolHandler(ABC):
    """Base class for GPS tracker protocol handlers"""

    def __init__(self, device_id: str = None):
        self.device_id = device_id
        self.message_count = 0

    @abstractmethod
    def decode_message(self, data: bytes) -> Any:
        """Decode one complete frame into a report, raising DecodeError on failure"""
        pass

    @abstractmethod
    def create_response(self, report: Any) -> Optional[bytes]:
        """Create the acknowledgement to write back, or None"""
        pass

    @abstractmethod
    def get_protocol_name(self) -> str:
        """Get the name of this protocol"""
        pass

    @abstractmethod
    def can_handle(self, data: bytes) -> bool:
        """Check if this handler can process the given message"""
        pass

    def decode(self, data: bytes) -> DecodeResult:
        """
        Decode a frame and build its acknowledgement.
        Failures are confined to this message and returned on the result.
        """
        self.message_count += 1
        try:
            report = self.decode_message(data)
        except DecodeError as e:
            logger.warning(f"{self.get_protocol_name()} decode failed: {e}")
            return DecodeResult(protocol=self.get_protocol_name(), error=e)

        return DecodeResult(
            protocol=self.get_protocol_name(),
            report=report,
            acknowledgement=self.create_response(report),
        )

    def parse_message(self, data: bytes) -> Optional[dict]:
        """Decode a frame into a plain dict keyed by field alias, None on failure"""
        result = self.decode(data)
        if not result.ok:
            return None
        return result.report.model_dump(mode='json', by_alias=True)
