"""Unit tests for the event query model."""

from __future__ import annotations

import pytest

from cdp_logger.const import DEFAULT_CODE_MASK, DEFAULT_EVENT_LIMIT
from cdp_logger.exceptions import InvalidRequestError, QueryValidationError
from cdp_logger.query import Condition, EventQuery, EventQueryFlags, MatchType
from tests.helpers.expectations import expect_exception


class TestParse:
    """Tests for validating caller input."""

    def test_defaults(self):
        """An empty query matches everything up to now."""
        query = EventQuery.parse(None)

        assert query.time_range_begin == 0.0
        assert query.time_range_end is None
        assert query.code_mask == DEFAULT_CODE_MASK
        assert query.limit == DEFAULT_EVENT_LIMIT
        assert query.offset == 0
        assert query.senders == []
        assert query.data_conditions == {}

    def test_camel_case_and_snake_case_accepted(self):
        """Both naming styles map to the same fields."""
        camel = EventQuery.parse({"timeRangeBegin": 10.0, "timeRangeEnd": 20.0, "codeMask": 3})
        snake = EventQuery.parse({"time_range_begin": 10.0, "time_range_end": 20.0, "code_mask": 3})

        assert camel == snake

    def test_senders_shorthand(self):
        """A bare string or list of strings becomes exact sender conditions."""
        query = EventQuery.parse({"senders": "App.CPU"})
        assert query.senders == [Condition(value="App.CPU")]

        query = EventQuery.parse({"senderConditions": ["App.*", {"value": "B?", "matchType": "wildcard"}]})
        assert query.senders[0].match_type is MatchType.EXACT
        assert query.senders[1].match_type is MatchType.WILDCARD

    def test_data_conditions_shorthand(self):
        """A single value per key is wrapped in a list."""
        query = EventQuery.parse({"dataConditions": {"Text": "Overheat", "Level": ["High", "Critical"]}})

        assert query.data_conditions["Text"] == [Condition(value="Overheat")]
        assert [c.value for c in query.data_conditions["Level"]] == ["High", "Critical"]

    def test_existing_query_passed_through(self):
        """An EventQuery instance is used as is."""
        query = EventQuery(limit=5)

        assert EventQuery.parse(query) is query

    @pytest.mark.parametrize(
        "raw",
        [
            {"sender": "App"},
            {"limit": -1},
            {"limit": "many"},
            {"flags": 0x10},
            {"codeMask": 1 << 32},
            {"senders": [{"value": "A", "matchType": "regex"}]},
            {"timeRangeBegin": 20.0, "timeRangeEnd": 10.0},
        ],
    )
    def test_invalid_queries_rejected(self, raw):
        """Unknown fields and malformed values raise QueryValidationError."""
        error = expect_exception(EventQuery.parse, QueryValidationError, raw)

        assert isinstance(error, InvalidRequestError)
        assert str(error).startswith("Invalid request:")

    def test_non_mapping_rejected(self):
        """Only mappings and EventQuery instances are accepted."""
        error = expect_exception(EventQuery.parse, QueryValidationError, ["limit", 5])

        assert "list" in str(error)


class TestToMessage:
    """Tests for the wire form."""

    def test_times_translated(self):
        """The translation callback is applied to both bounds."""
        query = EventQuery.parse({"timeRangeBegin": 100.0, "timeRangeEnd": 200.0, "limit": 7})

        message = query.to_message(lambda t: t - 10.0)

        assert message.time_range_begin == 90.0
        assert message.time_range_end == 190.0
        assert message.limit == 7

    def test_open_end_defaults_to_now(self, monkeypatch):
        """A missing end is filled in with the current time when sending."""
        monkeypatch.setattr("cdp_logger.query.time.time", lambda: 5000.0)

        message = EventQuery.parse({}).to_message()

        assert message.time_range_end == 5000.0

    def test_open_end_uses_supplied_clock(self):
        """A caller-provided clock wins over the wall clock for the open end."""
        message = EventQuery.parse({}).to_message(lambda t: t - 10.0, lambda: 3000.0)

        assert message.time_range_end == 2990.0

    def test_conditions_encoded(self):
        """Sender and data conditions carry their match types."""
        query = EventQuery.parse(
            {
                "senders": [{"value": "App.*", "match_type": MatchType.WILDCARD}],
                "dataConditions": {"Text": "Overheat"},
                "flags": EventQueryFlags.NEWEST_FIRST | EventQueryFlags.USE_LOGSTAMP_FOR_TIME_RANGE,
            },
        )

        message = query.to_message()

        assert message.sender_conditions.conditions[0].value == "App.*"
        assert message.sender_conditions.conditions[0].match_type == int(MatchType.WILDCARD)
        assert message.data_conditions[0].key == "Text"
        assert message.data_conditions[0].conditions.conditions[0].value == "Overheat"
        assert message.flags == 0x9

    def test_no_sender_conditions_when_empty(self):
        """An empty sender list leaves the sub-message out."""
        assert EventQuery.parse({}).to_message().sender_conditions is None
