"""
Decode error taxonomy shared by the JT808 and Queclink decoders
"""


class DecodeError(Exception):
    """Base class for every failure raised while decoding a single message"""


class FramingError(DecodeError):
    """Missing or misplaced frame markers, truncated payload or bad encoding"""


class ChecksumMismatch(DecodeError):
    """XOR checksum carried by the frame does not match the computed one"""

    def __init__(self, received: int, calculated: int):
        self.received = received
        self.calculated = calculated
        super().__init__(
            f"Checksum mismatch: received 0x{received:02x}, calculated 0x{calculated:02x}"
        )


class UnknownCommand(DecodeError):
    """No decoder is registered for a mnemonic or hex family"""

    def __init__(self, command: str):
        self.command = command
        super().__init__(f"Unknown command: {command}")


class MalformedField(DecodeError, ValueError):
    """A field value could not be parsed as its declared type"""

    def __init__(self, field: str, value, reason: str = ""):
        self.field = field
        self.value = value
        message = f"Malformed field {field!r}: {value!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class LengthMismatch(DecodeError):
    """Declared body length differs from the bytes actually present.

    Never raised: the decoder logs it and flags the report.
    """

    def __init__(self, declared: int, actual: int):
        self.declared = declared
        self.actual = actual
        super().__init__(f"Body length mismatch: declared {declared}, actual {actual}")
