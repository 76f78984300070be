"""Envelope encoder/decoder.

The envelope is a protobuf message whose field 1 holds the message kind and
whose body lives in field ``kind + 1``. Bodies are encoded from the field
metadata declared in ``cdp_logger.protocol.messages``.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Protocol, TypeVar

from cdp_logger.protocol.exceptions import MessageDecodeError, MessageEncodeError
from cdp_logger.protocol.messages import (
    BODY_TYPES,
    BOOL,
    DOUBLE,
    FLOAT,
    INT64,
    STRING,
    UINT64,
    Envelope,
    MessageKind,
)
from cdp_logger.protocol.wire import (
    WIRE_FIXED32,
    WIRE_FIXED64,
    WIRE_LENGTH_DELIMITED,
    WIRE_VARINT,
    decode_double,
    decode_float,
    encode_double,
    encode_float,
    encode_key,
    encode_length_delimited,
    encode_varint,
    iter_fields,
    iter_packed_fixed,
    iter_packed_varints,
    to_signed64,
)

ENVELOPE_KIND_FIELD = 1

logger = logging.getLogger(__name__)

M = TypeVar("M")

_VARINT_TYPES = (UINT64, INT64, BOOL)


class Codec(Protocol):
    """Envelope codec contract used by the client."""

    def encode(self, envelope: Envelope) -> bytes: ...

    def decode(self, data: bytes) -> Envelope: ...


def body_field(kind: MessageKind) -> int:
    """Envelope field number holding the body of ``kind``."""
    return int(kind) + 1


class EnvelopeCodec:
    """Protobuf wire-format codec for CDP Logger envelopes.

    Stateless; one instance can be shared by any number of clients.
    """

    def encode(self, envelope: Envelope) -> bytes:
        """Serialize an envelope.

        Raises:
            MessageEncodeError: If the body type does not belong to the envelope kind

        """
        expected = BODY_TYPES.get(envelope.kind)
        if expected is None or not isinstance(envelope.body, expected):
            raise MessageEncodeError("body_type_mismatch")
        kind_field = encode_key(ENVELOPE_KIND_FIELD, WIRE_VARINT) + encode_varint(int(envelope.kind))
        return kind_field + encode_length_delimited(body_field(envelope.kind), self.encode_message(envelope.body))

    def decode(self, data: bytes) -> Envelope:
        """Parse an envelope.

        Raises:
            MessageDecodeError: On malformed frames or unknown message kinds

        """
        kind_value: int | None = None
        bodies: dict[int, bytes] = {}
        for tag, wire_type, value in iter_fields(data):
            if tag == ENVELOPE_KIND_FIELD and wire_type == WIRE_VARINT:
                kind_value = int(value)  # type: ignore[arg-type]
            elif wire_type == WIRE_LENGTH_DELIMITED:
                bodies[tag] = value  # type: ignore[assignment]

        if kind_value is None:
            raise MessageDecodeError("missing_message_type", data)
        try:
            kind = MessageKind(kind_value)
        except ValueError:
            raise MessageDecodeError("unknown_message_type", data) from None

        try:
            body = self.decode_message(BODY_TYPES[kind], bodies.get(body_field(kind), b""))
        except MessageDecodeError as e:
            raise MessageDecodeError(e.reason, data) from e
        logger.debug("Decoded %s frame: request_id=%d, size=%d", kind.name, body.request_id, len(data))
        return Envelope(kind=kind, body=body)

    def encode_message(self, message: Any) -> bytes:
        out = bytearray()
        for field_info in dataclasses.fields(message):
            value = getattr(message, field_info.name)
            tag = field_info.metadata["tag"]
            proto_type = field_info.metadata["proto_type"]
            if field_info.metadata["repeated"]:
                out += self._encode_repeated(tag, proto_type, value)
            elif value is not None:
                out += self._encode_single(tag, proto_type, value, skip_default=True)
        return bytes(out)

    def decode_message(self, message_type: type[M], data: bytes) -> M:
        fields_by_tag = {f.metadata["tag"]: f for f in dataclasses.fields(message_type)}  # type: ignore[arg-type]
        values: dict[str, Any] = {}
        for tag, wire_type, raw in iter_fields(data):
            field_info = fields_by_tag.get(tag)
            if field_info is None:
                continue  # unknown fields are skipped, as protobuf does
            proto_type = field_info.metadata["proto_type"]
            if field_info.metadata["repeated"]:
                values.setdefault(field_info.name, []).extend(self._decode_repeated(proto_type, wire_type, raw, data))
            else:
                values[field_info.name] = self._decode_single(proto_type, wire_type, raw, data)
        return message_type(**values)

    def _encode_single(self, tag: int, proto_type: str | type, value: Any, *, skip_default: bool) -> bytes:
        if not isinstance(proto_type, str):
            return encode_length_delimited(tag, self.encode_message(value))
        if skip_default and not value:
            return b""
        if proto_type in _VARINT_TYPES:
            return encode_key(tag, WIRE_VARINT) + encode_varint(int(value))
        if proto_type == DOUBLE:
            return encode_key(tag, WIRE_FIXED64) + encode_double(float(value))
        if proto_type == FLOAT:
            return encode_key(tag, WIRE_FIXED32) + encode_float(float(value))
        if proto_type == STRING:
            return encode_length_delimited(tag, str(value).encode("utf-8"))
        raise MessageEncodeError(f"unsupported_type_{proto_type}")

    def _encode_repeated(self, tag: int, proto_type: str | type, values: list[Any]) -> bytes:
        if not values:
            return b""
        if proto_type in _VARINT_TYPES:
            packed = b"".join(encode_varint(int(v)) for v in values)
            return encode_length_delimited(tag, packed)
        if proto_type == DOUBLE:
            return encode_length_delimited(tag, b"".join(encode_double(float(v)) for v in values))
        if proto_type == FLOAT:
            return encode_length_delimited(tag, b"".join(encode_float(float(v)) for v in values))
        return b"".join(self._encode_single(tag, proto_type, v, skip_default=False) for v in values)

    def _decode_single(self, proto_type: str | type, wire_type: int, raw: int | bytes, frame: bytes) -> Any:
        if not isinstance(proto_type, str):
            self._expect(wire_type, WIRE_LENGTH_DELIMITED, frame)
            return self.decode_message(proto_type, raw)  # type: ignore[arg-type]
        if proto_type in _VARINT_TYPES:
            self._expect(wire_type, WIRE_VARINT, frame)
            if proto_type == BOOL:
                return bool(raw)
            if proto_type == INT64:
                return to_signed64(raw)  # type: ignore[arg-type]
            return raw
        if proto_type == DOUBLE:
            self._expect(wire_type, WIRE_FIXED64, frame)
            return decode_double(raw)  # type: ignore[arg-type]
        if proto_type == FLOAT:
            self._expect(wire_type, WIRE_FIXED32, frame)
            return decode_float(raw)  # type: ignore[arg-type]
        self._expect(wire_type, WIRE_LENGTH_DELIMITED, frame)
        try:
            return raw.decode("utf-8")  # type: ignore[union-attr]
        except UnicodeDecodeError:
            raise MessageDecodeError("invalid_utf8", frame) from None

    def _decode_repeated(self, proto_type: str | type, wire_type: int, raw: int | bytes, frame: bytes) -> list[Any]:
        # Packed numeric fields arrive length-delimited; unpacked ones one element at a time.
        if wire_type == WIRE_LENGTH_DELIMITED and proto_type in _VARINT_TYPES:
            values = list(iter_packed_varints(raw))  # type: ignore[arg-type]
            if proto_type == INT64:
                return [to_signed64(v) for v in values]
            if proto_type == BOOL:
                return [bool(v) for v in values]
            return values
        if wire_type == WIRE_LENGTH_DELIMITED and proto_type == DOUBLE:
            return [decode_double(chunk) for chunk in iter_packed_fixed(raw, 8)]  # type: ignore[arg-type]
        if wire_type == WIRE_LENGTH_DELIMITED and proto_type == FLOAT:
            return [decode_float(chunk) for chunk in iter_packed_fixed(raw, 4)]  # type: ignore[arg-type]
        return [self._decode_single(proto_type, wire_type, raw, frame)]

    @staticmethod
    def _expect(actual: int, expected: int, frame: bytes) -> None:
        if actual != expected:
            raise MessageDecodeError(f"wire_type_mismatch_{actual}_expected_{expected}", frame)
