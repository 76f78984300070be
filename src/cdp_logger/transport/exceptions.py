"""Custom exception types for transport layer errors."""

from __future__ import annotations

from cdp_logger.protocol.exceptions import CDPLoggerError


class CDPConnectionError(CDPLoggerError):
    """Connection state error (closed, failed, or not yet open).

    Raised when:
    - The connection errors or closes while requests are outstanding
    - The client is disconnected explicitly
    - Reconnection attempts are exhausted
    - Sending while the connection is not open

    Every outstanding request is failed with the same instance.

    Attributes:
        reason: Specific failure reason
        state: Connection state when error occurred

    """

    def __init__(self, reason: str, state: str = "unknown") -> None:
        self.reason: str = reason
        self.state: str = state
        super().__init__(reason)

    def __repr__(self) -> str:
        return f"CDPConnectionError(reason={self.reason!r}, state={self.state!r})"
