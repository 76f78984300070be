"""Exception types for CDP Logger protocol errors.

``CDPLoggerError`` is the root of every exception raised by this package, so
callers can catch all client failures with a single clause.
"""

from __future__ import annotations


class CDPLoggerError(Exception):
    """Base exception for all CDP Logger client errors."""


class MessageDecodeError(CDPLoggerError):
    """Frame cannot be decoded into an envelope.

    Raised when a frame is truncated, uses an unsupported wire type, carries an
    unknown message type, or contains invalid UTF-8.

    Attributes:
        reason: Specific failure reason (e.g., "truncated_varint", "unknown_message_type")
        data_preview: First 16 bytes of the offending frame

    """

    def __init__(self, reason: str, data: bytes = b""):
        self.reason = reason
        self.data_preview = data[:16] if data else b""
        super().__init__(f"Message decode failed: {reason}")


class MessageEncodeError(CDPLoggerError):
    """Envelope cannot be encoded.

    Attributes:
        reason: Specific failure reason (e.g., "body_type_mismatch")

    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Message encode failed: {reason}")
