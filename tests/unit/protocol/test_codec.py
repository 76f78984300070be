"""Unit tests for the envelope codec."""

from __future__ import annotations

import pytest

from cdp_logger.protocol.codec import EnvelopeCodec, body_field
from cdp_logger.protocol.exceptions import MessageDecodeError, MessageEncodeError
from cdp_logger.protocol.messages import (
    CriterionLimitsResponse,
    Envelope,
    EventQuery,
    EventsRequest,
    MessageKind,
    SignalDataResponse,
    SignalDataRow,
    SignalInfoResponse,
    TimeRequest,
    VariantValue,
    VersionRequest,
    VersionResponse,
)
from tests.helpers.expectations import expect_exception


@pytest.fixture
def codec() -> EnvelopeCodec:
    return EnvelopeCodec()


class TestEnvelope:
    """Tests for the outer envelope layout."""

    def test_body_lives_in_kind_plus_one(self):
        assert body_field(MessageKind.SIGNAL_INFO_REQUEST) == 2
        assert body_field(MessageKind.EVENTS_RESPONSE) == 18

    def test_version_request_bytes(self, codec):
        """Kind in field 1, body in field 8, request id in the body's field 1."""
        data = codec.encode(Envelope.wrap(VersionRequest(request_id=5)))

        assert data == b"\x08\x07\x42\x02\x08\x05"

    def test_default_values_are_omitted(self, codec):
        """A zero request id leaves the body empty."""
        data = codec.encode(Envelope.wrap(VersionRequest(request_id=0)))

        assert data == b"\x08\x07\x42\x00"

    def test_decode_version_response(self, codec):
        data = b"\x08\x08\x4a\x07\x08\x03\x12\x033.0"

        envelope = codec.decode(data)

        assert envelope.kind is MessageKind.VERSION_RESPONSE
        assert envelope.body == VersionResponse(request_id=3, version="3.0")
        assert envelope.request_id == 3

    def test_missing_body_decodes_to_defaults(self, codec):
        """An envelope with only a kind carries a default body."""
        envelope = codec.decode(b"\x08\x0a")

        assert envelope.body == TimeRequest(request_id=0)

    def test_body_must_match_kind(self, codec):
        """Encoding a body under the wrong kind is refused."""
        envelope = Envelope(kind=MessageKind.VERSION_REQUEST, body=TimeRequest(request_id=1))

        error = expect_exception(codec.encode, MessageEncodeError, envelope)

        assert error.reason == "body_type_mismatch"

    @pytest.mark.parametrize(
        ("data", "reason"),
        [
            (b"", "missing_message_type"),
            (b"\x08\x63", "unknown_message_type"),
            (b"\x08", "truncated_varint"),
            (b"\x08\x08\x4a\x03\x12\x01\xff", "invalid_utf8"),
            (b"\x08\x08\x4a\x02\x10\x01", "wire_type_mismatch_0_expected_2"),
        ],
    )
    def test_decode_errors(self, codec, data, reason):
        """Failures inside a body still preview the received frame."""
        error = expect_exception(codec.decode, MessageDecodeError, data)

        assert error.reason == reason
        assert error.data_preview == data[:16]


class TestBodies:
    """Tests for body field encoding."""

    def test_unknown_fields_are_skipped(self, codec):
        """Fields this client does not know about are ignored."""
        body = b"\x08\x03\x48\x01\x12\x033.0"

        assert codec.decode_message(VersionResponse, body) == VersionResponse(request_id=3, version="3.0")

    def test_wire_type_mismatch(self, codec):
        """A string field sent as a varint is rejected."""
        error = expect_exception(codec.decode_message, MessageDecodeError, VersionResponse, b"\x10\x01")

        assert error.reason.startswith("wire_type_mismatch")

    def test_repeated_numbers_accept_packed_and_unpacked(self, codec):
        """Both encodings of a repeated uint64 decode to the same list."""
        packed = b"\x1a\x04\x01\x02\x96\x01"
        unpacked = b"\x18\x01\x18\x02\x18\x96\x01"

        assert codec.decode_message(SignalInfoResponse, packed).ids == [1, 2, 150]
        assert codec.decode_message(SignalInfoResponse, unpacked).ids == [1, 2, 150]

    def test_repeated_numbers_encoded_packed(self, codec):
        assert codec.encode_message(SignalInfoResponse(ids=[1, 2, 150])) == b"\x1a\x04\x01\x02\x96\x01"

    def test_limits_response(self, codec):
        """Doubles survive encode and decode exactly."""
        original = CriterionLimitsResponse(request_id=2, criterion_min=1529497537.61, criterion_max=1531389483.02)

        decoded = codec.decode(codec.encode(Envelope.wrap(original)))

        assert decoded.body == original

    def test_nested_variants(self, codec):
        """Rows of variants keep every slot, including negative integers."""
        original = SignalDataResponse(
            request_id=9,
            criteria=[1531313250.0, 1531313251.0],
            rows=[
                SignalDataRow(
                    signal_ids=[0, 4],
                    min_values=[VariantValue(d_value=0.25), VariantValue(i_value=-40)],
                    max_values=[VariantValue(d_value=0.75), VariantValue(i_value=12)],
                    last_values=[VariantValue(d_value=0.5), VariantValue(str_value="ok", b_value=True)],
                ),
            ],
        )

        decoded = codec.decode(codec.encode(Envelope.wrap(original))).body

        assert decoded == original
        assert decoded.rows[0].min_values[1].i_value == -40

    def test_events_request_query(self, codec):
        """An embedded query is carried as a sub-message."""
        query = EventQuery(time_range_begin=10.0, time_range_end=20.0, code_mask=0xFFFFFFFF, limit=50)
        original = EventsRequest(request_id=4, query=query)

        decoded = codec.decode(codec.encode(Envelope.wrap(original))).body

        assert decoded.query == query
