"""Asyncio client for the CDP Logger / LogServer historian API."""

__version__ = "0.3.0"

from cdp_logger.client import Client  # noqa: E402
from cdp_logger.events import describe_event_code  # noqa: E402
from cdp_logger.exceptions import (  # noqa: E402
    InvalidRequestError,
    QueryValidationError,
    RequestError,
    TimeSyncDisabledError,
    TooManyPendingRequestsError,
    UnknownNodeError,
    VersionIncompatibleError,
)
from cdp_logger.protocol.exceptions import CDPLoggerError  # noqa: E402
from cdp_logger.query import Condition, EventQuery, EventQueryFlags, MatchType  # noqa: E402
from cdp_logger.transport.exceptions import CDPConnectionError  # noqa: E402

__all__ = [
    "CDPConnectionError",
    "CDPLoggerError",
    "Client",
    "Condition",
    "EventQuery",
    "EventQueryFlags",
    "InvalidRequestError",
    "MatchType",
    "QueryValidationError",
    "RequestError",
    "TimeSyncDisabledError",
    "TooManyPendingRequestsError",
    "UnknownNodeError",
    "VersionIncompatibleError",
    "__version__",
    "describe_event_code",
]
