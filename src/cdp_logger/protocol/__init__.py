"""CDP Logger protocol package: message kinds, body types and the envelope codec.

Public API:
- Message kinds and value types (MessageKind, CDPValueType)
- Envelope and body dataclasses
- Envelope encoder/decoder (EnvelopeCodec)
"""

from cdp_logger.protocol.codec import Codec, EnvelopeCodec
from cdp_logger.protocol.exceptions import CDPLoggerError, MessageDecodeError, MessageEncodeError
from cdp_logger.protocol.messages import BODY_TYPES, CDPValueType, Envelope, MessageKind

__all__ = [
    "BODY_TYPES",
    "CDPLoggerError",
    "CDPValueType",
    "Codec",
    "Envelope",
    "EnvelopeCodec",
    "MessageDecodeError",
    "MessageEncodeError",
    "MessageKind",
]
