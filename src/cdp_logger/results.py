"""Result types returned by the public request methods."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from cdp_logger.events import describe_event_code
from cdp_logger.protocol.messages import CDPValueType, TagInfo, VariantValue

_VARIANT_SLOTS: dict[CDPValueType, str] = {
    CDPValueType.DOUBLE: "d_value",
    CDPValueType.FLOAT: "f_value",
    CDPValueType.UINT64: "ui64_value",
    CDPValueType.INT64: "i64_value",
    CDPValueType.UINT: "ui_value",
    CDPValueType.INT: "i_value",
    CDPValueType.USHORT: "us_value",
    CDPValueType.SHORT: "s_value",
    CDPValueType.UCHAR: "uc_value",
    CDPValueType.CHAR: "c_value",
    CDPValueType.BOOL: "b_value",
    CDPValueType.STRING: "str_value",
}


def value_from_variant(variant: VariantValue, value_type: CDPValueType | int) -> Any:
    """Pick the variant slot matching ``value_type``; unknown types read as double."""
    try:
        slot = _VARIANT_SLOTS[CDPValueType(value_type)]
    except (KeyError, ValueError):
        slot = "d_value"
    return getattr(variant, slot)


@dataclass(frozen=True)
class TimeRange:
    start: float
    end: float


@dataclass(frozen=True)
class LoggedNode:
    name: str
    routing: str
    id: int
    value_type: CDPValueType = CDPValueType.DOUBLE
    tags: dict[str, TagInfo] = field(default_factory=dict)


@dataclass(frozen=True)
class SignalValue:
    min: Any
    max: Any
    last: Any


@dataclass(frozen=True)
class DataPoint:
    """Values of every requested signal at one timestamp (client time)."""

    timestamp: float
    value: dict[str, SignalValue]


@dataclass(frozen=True)
class Event:
    id: int
    sender: str
    code: int
    status: int
    timestamp: float
    logstamp: float
    data: dict[str, str]
    tags: dict[str, TagInfo] = field(default_factory=dict)

    @property
    def code_description(self) -> str:
        return describe_event_code(self.code)
