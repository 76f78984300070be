"""Message kinds and body dataclasses of the CDP Logger envelope.

Every body field carries its protobuf field number and scalar type in the
dataclass field metadata; ``EnvelopeCodec`` walks that metadata to encode and
decode frames. Map fields of the server schema are expressed as repeated entry
messages (``TagEntry``, ``DataEntry``, ...).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, ClassVar


class MessageKind(IntEnum):
    """Envelope message types; values are fixed by the server schema."""

    SIGNAL_INFO_REQUEST = 1
    SIGNAL_INFO_RESPONSE = 2
    SIGNAL_DATA_REQUEST = 3
    SIGNAL_DATA_RESPONSE = 4
    CRITERION_LIMITS_REQUEST = 5
    CRITERION_LIMITS_RESPONSE = 6
    VERSION_REQUEST = 7
    VERSION_RESPONSE = 8
    ERROR = 9
    TIME_REQUEST = 10
    TIME_RESPONSE = 11
    EVENT_SENDER_TAGS_REQUEST = 12
    EVENT_SENDER_TAGS_RESPONSE = 13
    COUNT_EVENTS_REQUEST = 14
    COUNT_EVENTS_RESPONSE = 15
    EVENTS_REQUEST = 16
    EVENTS_RESPONSE = 17


class CDPValueType(IntEnum):
    """Value type of a logged signal; selects which variant slot holds the value."""

    UNDEFINED = 0
    DOUBLE = 1
    UINT64 = 2
    INT64 = 3
    FLOAT = 4
    UINT = 5
    INT = 6
    USHORT = 7
    SHORT = 8
    UCHAR = 9
    CHAR = 10
    BOOL = 11
    STRING = 12


# Scalar wire types understood by the codec
UINT64 = "uint64"
INT64 = "int64"
BOOL = "bool"
DOUBLE = "double"
FLOAT = "float"
STRING = "string"

_SCALAR_DEFAULTS: dict[str, Any] = {
    UINT64: 0,
    INT64: 0,
    BOOL: False,
    DOUBLE: 0.0,
    FLOAT: 0.0,
    STRING: "",
}


def proto_field(tag: int, proto_type: str | type, *, repeated: bool = False) -> Any:
    """Declare a dataclass field bound to a protobuf field number.

    ``proto_type`` is one of the scalar type names above or a nested message
    class.
    """
    metadata = {"tag": tag, "proto_type": proto_type, "repeated": repeated}
    if repeated:
        return field(default_factory=list, metadata=metadata)
    if isinstance(proto_type, str):
        return field(default=_SCALAR_DEFAULTS[proto_type], metadata=metadata)
    return field(default=None, metadata=metadata)


@dataclass
class TagInfo:
    value: str = proto_field(1, STRING)
    source: str = proto_field(2, STRING)


@dataclass
class TagEntry:
    key: str = proto_field(1, STRING)
    info: TagInfo | None = proto_field(2, TagInfo)


@dataclass
class TagMap:
    tags: list[TagEntry] = proto_field(1, TagEntry, repeated=True)

    def as_dict(self) -> dict[str, TagInfo]:
        return {entry.key: entry.info or TagInfo() for entry in self.tags}

    @classmethod
    def from_dict(cls, tags: dict[str, TagInfo]) -> TagMap:
        return cls(tags=[TagEntry(key=key, info=info) for key, info in tags.items()])


@dataclass
class VariantValue:
    """Tagged value slot; exactly one member is meaningful for a given value type."""

    d_value: float = proto_field(1, DOUBLE)
    f_value: float = proto_field(2, FLOAT)
    ui64_value: int = proto_field(3, UINT64)
    i64_value: int = proto_field(4, INT64)
    ui_value: int = proto_field(5, UINT64)
    i_value: int = proto_field(6, INT64)
    us_value: int = proto_field(7, UINT64)
    s_value: int = proto_field(8, INT64)
    uc_value: int = proto_field(9, UINT64)
    c_value: int = proto_field(10, INT64)
    b_value: bool = proto_field(11, BOOL)
    str_value: str = proto_field(12, STRING)


@dataclass
class Condition:
    value: str = proto_field(1, STRING)
    match_type: int = proto_field(2, UINT64)


@dataclass
class ConditionList:
    conditions: list[Condition] = proto_field(1, Condition, repeated=True)


@dataclass
class DataConditionEntry:
    key: str = proto_field(1, STRING)
    conditions: ConditionList | None = proto_field(2, ConditionList)


@dataclass
class EventQuery:
    time_range_begin: float = proto_field(1, DOUBLE)
    time_range_end: float = proto_field(2, DOUBLE)
    code_mask: int = proto_field(3, UINT64)
    limit: int = proto_field(4, UINT64)
    offset: int = proto_field(5, UINT64)
    flags: int = proto_field(6, UINT64)
    sender_conditions: ConditionList | None = proto_field(7, ConditionList)
    data_conditions: list[DataConditionEntry] = proto_field(8, DataConditionEntry, repeated=True)


@dataclass
class DataEntry:
    key: str = proto_field(1, STRING)
    value: str = proto_field(2, STRING)


@dataclass
class EventInfo:
    sender: str = proto_field(1, STRING)
    data: list[DataEntry] = proto_field(2, DataEntry, repeated=True)
    timestamp_sec: float = proto_field(3, DOUBLE)
    id: int = proto_field(4, UINT64)
    code: int = proto_field(5, UINT64)
    status: int = proto_field(6, UINT64)
    logstamp_sec: float = proto_field(7, DOUBLE)


@dataclass
class SignalDataRow:
    signal_ids: list[int] = proto_field(1, UINT64, repeated=True)
    min_values: list[VariantValue] = proto_field(2, VariantValue, repeated=True)
    max_values: list[VariantValue] = proto_field(3, VariantValue, repeated=True)
    last_values: list[VariantValue] = proto_field(4, VariantValue, repeated=True)


@dataclass
class SenderTagsEntry:
    sender: str = proto_field(1, STRING)
    tags: TagMap | None = proto_field(2, TagMap)


# Envelope bodies. Every body starts with the request id (field 1).


@dataclass
class Body:
    kind: ClassVar[MessageKind]

    request_id: int = proto_field(1, UINT64)


@dataclass
class SignalInfoRequest(Body):
    kind: ClassVar[MessageKind] = MessageKind.SIGNAL_INFO_REQUEST


@dataclass
class SignalInfoResponse(Body):
    kind: ClassVar[MessageKind] = MessageKind.SIGNAL_INFO_RESPONSE

    names: list[str] = proto_field(2, STRING, repeated=True)
    ids: list[int] = proto_field(3, UINT64, repeated=True)
    types: list[int] = proto_field(4, UINT64, repeated=True)
    paths: list[str] = proto_field(5, STRING, repeated=True)
    tag_maps: list[TagMap] = proto_field(6, TagMap, repeated=True)


@dataclass
class SignalDataRequest(Body):
    kind: ClassVar[MessageKind] = MessageKind.SIGNAL_DATA_REQUEST

    signal_ids: list[int] = proto_field(2, UINT64, repeated=True)
    num_of_datapoints: int = proto_field(3, UINT64)
    criterion_min: float = proto_field(4, DOUBLE)
    criterion_max: float = proto_field(5, DOUBLE)


@dataclass
class SignalDataResponse(Body):
    kind: ClassVar[MessageKind] = MessageKind.SIGNAL_DATA_RESPONSE

    rows: list[SignalDataRow] = proto_field(2, SignalDataRow, repeated=True)
    criteria: list[float] = proto_field(3, DOUBLE, repeated=True)


@dataclass
class CriterionLimitsRequest(Body):
    kind: ClassVar[MessageKind] = MessageKind.CRITERION_LIMITS_REQUEST


@dataclass
class CriterionLimitsResponse(Body):
    kind: ClassVar[MessageKind] = MessageKind.CRITERION_LIMITS_RESPONSE

    criterion_min: float = proto_field(2, DOUBLE)
    criterion_max: float = proto_field(3, DOUBLE)


@dataclass
class VersionRequest(Body):
    kind: ClassVar[MessageKind] = MessageKind.VERSION_REQUEST


@dataclass
class VersionResponse(Body):
    kind: ClassVar[MessageKind] = MessageKind.VERSION_RESPONSE

    version: str = proto_field(2, STRING)


@dataclass
class ErrorResponse(Body):
    kind: ClassVar[MessageKind] = MessageKind.ERROR

    error_message: str = proto_field(2, STRING)
    code: int = proto_field(3, UINT64)


@dataclass
class TimeRequest(Body):
    kind: ClassVar[MessageKind] = MessageKind.TIME_REQUEST


@dataclass
class TimeResponse(Body):
    kind: ClassVar[MessageKind] = MessageKind.TIME_RESPONSE

    timestamp_ns: int = proto_field(2, UINT64)


@dataclass
class EventSenderTagsRequest(Body):
    kind: ClassVar[MessageKind] = MessageKind.EVENT_SENDER_TAGS_REQUEST

    senders: list[str] = proto_field(2, STRING, repeated=True)


@dataclass
class EventSenderTagsResponse(Body):
    kind: ClassVar[MessageKind] = MessageKind.EVENT_SENDER_TAGS_RESPONSE

    sender_tags: list[SenderTagsEntry] = proto_field(2, SenderTagsEntry, repeated=True)


@dataclass
class CountEventsRequest(Body):
    kind: ClassVar[MessageKind] = MessageKind.COUNT_EVENTS_REQUEST

    query: EventQuery | None = proto_field(2, EventQuery)


@dataclass
class CountEventsResponse(Body):
    kind: ClassVar[MessageKind] = MessageKind.COUNT_EVENTS_RESPONSE

    count: int = proto_field(2, UINT64)


@dataclass
class EventsRequest(Body):
    kind: ClassVar[MessageKind] = MessageKind.EVENTS_REQUEST

    query: EventQuery | None = proto_field(2, EventQuery)


@dataclass
class EventsResponse(Body):
    kind: ClassVar[MessageKind] = MessageKind.EVENTS_RESPONSE

    events: list[EventInfo] = proto_field(2, EventInfo, repeated=True)


BODY_TYPES: dict[MessageKind, type[Body]] = {
    body_type.kind: body_type
    for body_type in (
        SignalInfoRequest,
        SignalInfoResponse,
        SignalDataRequest,
        SignalDataResponse,
        CriterionLimitsRequest,
        CriterionLimitsResponse,
        VersionRequest,
        VersionResponse,
        ErrorResponse,
        TimeRequest,
        TimeResponse,
        EventSenderTagsRequest,
        EventSenderTagsResponse,
        CountEventsRequest,
        CountEventsResponse,
        EventsRequest,
        EventsResponse,
    )
}


@dataclass
class Envelope:
    """Outer container of every frame: a message kind plus its body."""

    kind: MessageKind
    body: Body

    @classmethod
    def wrap(cls, body: Body) -> Envelope:
        return cls(kind=body.kind, body=body)

    @property
    def request_id(self) -> int:
        return self.body.request_id
