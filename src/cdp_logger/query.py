"""Event query model.

Queries are validated eagerly: unknown fields and values of the wrong shape
raise ``QueryValidationError`` from the request method, before anything is
queued or sent. Both snake_case and the server's camelCase field names are
accepted.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from enum import IntEnum, IntFlag
from typing import Any, Self

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from cdp_logger.const import DEFAULT_CODE_MASK, DEFAULT_EVENT_LIMIT
from cdp_logger.exceptions import QueryValidationError
from cdp_logger.protocol import messages


class MatchType(IntEnum):
    EXACT = 0
    WILDCARD = 1


class EventQueryFlags(IntFlag):
    NONE = 0
    NEWEST_FIRST = 1
    TIME_RANGE_BEGIN_EXCLUSIVE = 2
    TIME_RANGE_END_EXCLUSIVE = 4
    USE_LOGSTAMP_FOR_TIME_RANGE = 8


def _coerce_condition(value: Any) -> Any:
    if isinstance(value, str | int | float) and not isinstance(value, bool):
        return {"value": str(value)}
    return value


class Condition(BaseModel):
    """One sender or data match; wildcard values may use ``*`` and ``?``."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    value: str
    match_type: MatchType = Field(
        default=MatchType.EXACT,
        validation_alias=AliasChoices("match_type", "matchType"),
    )

    @field_validator("match_type", mode="before")
    @classmethod
    def _parse_match_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return MatchType[value.strip().upper()]
            except KeyError:
                msg = f"unknown match type {value!r}"
                raise ValueError(msg) from None
        return value

    def to_message(self) -> messages.Condition:
        return messages.Condition(value=self.value, match_type=int(self.match_type))


class EventQuery(BaseModel):
    """Filter for ``request_events`` and ``count_events``.

    Times are client-side epoch seconds; the client translates them to server
    time when sending. ``time_range_end`` defaults to now.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    time_range_begin: float = Field(
        default=0.0,
        ge=0,
        validation_alias=AliasChoices("time_range_begin", "timeRangeBegin"),
    )
    time_range_end: float | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("time_range_end", "timeRangeEnd"),
    )
    code_mask: int = Field(
        default=DEFAULT_CODE_MASK,
        ge=0,
        le=0xFFFFFFFF,
        validation_alias=AliasChoices("code_mask", "codeMask"),
    )
    limit: int = Field(default=DEFAULT_EVENT_LIMIT, ge=0)
    offset: int = Field(default=0, ge=0)
    flags: int = Field(default=0, ge=0, le=0xF)
    senders: list[Condition] = Field(
        default_factory=list,
        validation_alias=AliasChoices("senders", "sender_conditions", "senderConditions"),
    )
    data_conditions: dict[str, list[Condition]] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("data_conditions", "dataConditions"),
    )

    @field_validator("senders", mode="before")
    @classmethod
    def _normalize_senders(cls, value: Any) -> Any:
        if isinstance(value, str | Mapping):
            value = [value]
        if isinstance(value, list | tuple):
            return [_coerce_condition(item) for item in value]
        return value

    @field_validator("data_conditions", mode="before")
    @classmethod
    def _normalize_data_conditions(cls, value: Any) -> Any:
        if not isinstance(value, Mapping):
            return value
        normalized: dict[Any, Any] = {}
        for key, conditions in value.items():
            if isinstance(conditions, list | tuple):
                normalized[key] = [_coerce_condition(item) for item in conditions]
            else:
                normalized[key] = [_coerce_condition(conditions)]
        return normalized

    @model_validator(mode="after")
    def _check_time_range(self) -> Self:
        if self.time_range_end is not None and self.time_range_end < self.time_range_begin:
            msg = "timeRangeEnd cannot be smaller than timeRangeBegin"
            raise ValueError(msg)
        return self

    @classmethod
    def parse(cls, query: EventQuery | Mapping[str, Any] | None) -> EventQuery:
        """Validate caller input.

        Raises:
            QueryValidationError: On unknown fields or values of the wrong shape

        """
        if isinstance(query, EventQuery):
            return query
        if query is not None and not isinstance(query, Mapping):
            msg = f"query must be a mapping or EventQuery, not {type(query).__name__}"
            raise QueryValidationError(msg)
        try:
            return cls.model_validate(dict(query or {}))
        except ValidationError as e:
            raise QueryValidationError(_summarize(e)) from e

    def to_message(
        self,
        to_server: Callable[[float], float] | None = None,
        now: Callable[[], float] | None = None,
    ) -> messages.EventQuery:
        """Wire form of the query.

        ``to_server`` translates client timestamps. An open end becomes ``now()``
        in client time, wall clock by default.
        """
        translate = to_server or float
        end = self.time_range_end
        if end is None:
            end = now() if now is not None else time.time()
        sender_conditions = None
        if self.senders:
            sender_conditions = messages.ConditionList(conditions=[c.to_message() for c in self.senders])
        return messages.EventQuery(
            time_range_begin=translate(self.time_range_begin),
            time_range_end=translate(end),
            code_mask=self.code_mask,
            limit=self.limit,
            offset=self.offset,
            flags=self.flags,
            sender_conditions=sender_conditions,
            data_conditions=[
                messages.DataConditionEntry(
                    key=key,
                    conditions=messages.ConditionList(conditions=[c.to_message() for c in conditions]),
                )
                for key, conditions in self.data_conditions.items()
            ],
        )


def _summarize(error: ValidationError) -> str:
    parts = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"]) or "query"
        parts.append(f"{location}: {detail['msg']}")
    return "; ".join(parts)
