"""Request-level exceptions.

Each of these fails exactly one pending request (or is raised synchronously by
the request method), unlike ``CDPConnectionError`` which sweeps every
outstanding request at once.
"""

from __future__ import annotations

from cdp_logger.protocol.exceptions import CDPLoggerError


class RequestError(CDPLoggerError):
    """The server answered a request with an error frame.

    The message is the server's error text verbatim.

    Attributes:
        request_id: Id of the failed request
        code: Server error code (0 when the server sends none)

    """

    def __init__(self, message: str, request_id: int = -1, code: int = 0) -> None:
        self.request_id = request_id
        self.code = code
        super().__init__(message)


class VersionIncompatibleError(CDPLoggerError):
    """Server API version is older than the supported minimum or unparseable.

    Attributes:
        version: Version string reported by the server
        minimum: Minimum supported API version

    """

    def __init__(self, version: str, minimum: float) -> None:
        self.version = version
        self.minimum = minimum
        super().__init__(f"Server API version {version!r} is not supported; version {minimum} or newer is required")


class UnknownNodeError(CDPLoggerError):
    """A requested node name is missing from the node directory after a refresh."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Node with name {name} does not exist")


class InvalidRequestError(CDPLoggerError):
    """Request arguments were rejected before anything was sent.

    Attributes:
        reason: Why the request is invalid

    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid request: {reason}")


class QueryValidationError(InvalidRequestError):
    """An event query has an unknown field or a value of the wrong shape."""


class TimeSyncDisabledError(CDPLoggerError):
    """Time sync was disabled while a clock probe was in flight."""

    def __init__(self) -> None:
        super().__init__("Time sync disabled")


class TooManyPendingRequestsError(CDPLoggerError):
    """The client already has ``limit`` outstanding requests.

    Attributes:
        limit: Configured outstanding-request cap

    """

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"Too many pending requests (limit: {limit})")
