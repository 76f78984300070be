"""Event code bit flags."""

from __future__ import annotations

from enum import IntFlag


class EventCode(IntFlag):
    ALARM_SET = 0x1
    ALARM_CLR = 0x2
    ALARM_ACK = 0x4
    ALARM_REPRISE = 0x40
    SOURCE_OBJECT_UNAVAILABLE = 0x100
    NODE_BOOT = 0x40000000


_DESCRIPTIONS: dict[EventCode, str] = {
    EventCode.ALARM_SET: "AlarmSet",
    EventCode.ALARM_CLR: "AlarmClr",
    EventCode.ALARM_ACK: "AlarmAck",
    EventCode.ALARM_REPRISE: "AlarmReprise",
    EventCode.SOURCE_OBJECT_UNAVAILABLE: "SourceObjectUnavailable",
    EventCode.NODE_BOOT: "NodeBoot",
}


def describe_event_code(code: int) -> str:
    """Names of the known flags set in ``code``, joined with " + ".

    Unknown bits are ignored; "None" when no known flag is set.

    Example:
        >>> describe_event_code(0x1 | 0x4)
        'AlarmSet + AlarmAck'
        >>> describe_event_code(0)
        'None'

    """
    names = [name for flag, name in _DESCRIPTIONS.items() if code & flag]
    return " + ".join(names) if names else "None"
