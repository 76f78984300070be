"""Connection lifecycle management: open/close tracking and automatic reconnect."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from enum import Enum
from typing import Protocol

from cdp_logger.const import CONNECTION_CLOSED_MSG
from cdp_logger.metrics import registry
from cdp_logger.transport.exceptions import CDPConnectionError
from cdp_logger.transport.retry_policy import RetryPolicy
from cdp_logger.transport.websocket import Transport, TransportHandler, WebSocketTransport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str, TransportHandler], Transport]


class ConnectionState(Enum):
    """Connection state machine states."""

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class ConnectionListener(Protocol):
    """Receiver of connection-level events (implemented by the client)."""

    def connection_opened(self) -> None: ...

    def frame_received(self, data: bytes) -> None: ...

    def connection_failed(self, error: CDPConnectionError) -> None:
        """Every outstanding request must fail with ``error``."""
        ...

    def connection_interrupted(self) -> None:
        """Connection closed cleanly and a reconnect is scheduled."""
        ...


class ConnectionManager:
    """Owns the transport for one endpoint and drives reconnects.

    States move ``connecting -> open -> closed``; ``closed`` returns to
    ``connecting`` only when auto-reconnect is enabled and the close was not
    requested through ``disconnect()``.

    Failure semantics:
    - transport error: the listener fails everything with the error; the
      reconnect policy is unchanged and the following close decides.
    - close with auto-reconnect: the listener is told the connection was
      interrupted and a reconnect is scheduled after the retry policy's delay.
    - close without auto-reconnect (or attempts exhausted): the listener fails
      everything with "Connection was closed".
    """

    def __init__(
        self,
        url: str,
        listener: ConnectionListener,
        auto_reconnect: bool = True,
        transport_factory: TransportFactory | None = None,
        retry_policy: RetryPolicy | None = None,
        max_reconnect_attempts: int | None = None,
    ) -> None:
        """Initialize connection manager.

        Args:
            url: Server URL
            listener: Receiver of connection events
            auto_reconnect: Reconnect after the connection closes
            transport_factory: Builds a transport for ``(url, handler)`` (defaults to WebSocketTransport)
            retry_policy: Delay between reconnect attempts (defaults to a fixed 1 second)
            max_reconnect_attempts: Give up after this many consecutive failed attempts (None = unlimited)

        """
        self.url: str = url
        self.listener: ConnectionListener = listener
        self.auto_reconnect: bool = auto_reconnect
        self.transport_factory: TransportFactory = transport_factory or WebSocketTransport
        self.retry_policy: RetryPolicy = retry_policy or RetryPolicy.fixed()
        self.max_reconnect_attempts: int | None = max_reconnect_attempts
        self.state: ConnectionState = ConnectionState.CLOSED
        self.transport: Transport | None = None
        self.reconnect_task: asyncio.Task[None] | None = None
        self._attempt: int = 0

    def connect(self) -> None:
        """Open a new transport to the endpoint."""
        if self.transport is not None:
            logger.debug("Connect ignored: transport already active", extra={"url": self.url})
            return
        self._set_state(ConnectionState.CONNECTING)
        logger.info("→ Opening connection", extra={"url": self.url, "attempt": self._attempt})
        self.transport = self.transport_factory(self.url, self)
        self.transport.open()

    def send(self, data: bytes) -> None:
        """Write one frame.

        Raises:
            CDPConnectionError: If the connection is not open

        """
        if self.state is not ConnectionState.OPEN or self.transport is None:
            msg = "Cannot send: connection not open"
            raise CDPConnectionError(msg, self.state.value)
        self.transport.send(data)

    def disconnect(self) -> None:
        """Close for good: disable auto-reconnect, fail outstanding work, close the transport.

        Idempotent; repeated calls do not raise and schedule nothing.
        """
        self.auto_reconnect = False
        if self.reconnect_task is not None and not self.reconnect_task.done():
            _ = self.reconnect_task.cancel()
        self.reconnect_task = None

        transport, self.transport = self.transport, None
        already_closed = transport is None and self.state is ConnectionState.CLOSED
        self._set_state(ConnectionState.CLOSED)
        self.listener.connection_failed(CDPConnectionError(CONNECTION_CLOSED_MSG, ConnectionState.CLOSED.value))

        if transport is not None:
            transport.close()
        if not already_closed:
            logger.info("Disconnect complete", extra={"url": self.url})

    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    # TransportHandler callbacks

    def on_open(self, transport: Transport) -> None:
        if transport is not self.transport:
            return
        self._attempt = 0
        self._set_state(ConnectionState.OPEN)
        logger.info("✓ Connection open", extra={"url": self.url})
        self.listener.connection_opened()

    def on_message(self, transport: Transport, data: bytes) -> None:
        if transport is not self.transport:
            return
        self.listener.frame_received(data)

    def on_error(self, transport: Transport, error: BaseException) -> None:
        if transport is not self.transport:
            return
        logger.warning("✗ Connection error: %s", error, extra={"url": self.url, "state": self.state.value})
        if isinstance(error, CDPConnectionError):
            failure = error
        else:
            failure = CDPConnectionError(str(error) or type(error).__name__, self.state.value)
        self.listener.connection_failed(failure)

    def on_close(self, transport: Transport) -> None:
        if transport is not self.transport:
            return
        was_open = self.state is ConnectionState.OPEN
        self.transport = None
        self._set_state(ConnectionState.CLOSED)

        if not self.auto_reconnect:
            logger.info("Connection closed", extra={"url": self.url})
            self.listener.connection_failed(CDPConnectionError(CONNECTION_CLOSED_MSG, ConnectionState.CLOSED.value))
            return

        if not was_open:
            self._attempt += 1
        if self.max_reconnect_attempts is not None and self._attempt > self.max_reconnect_attempts:
            logger.error(
                "✗ Reconnection failed",
                extra={"url": self.url, "attempts": self._attempt, "max_attempts": self.max_reconnect_attempts},
            )
            self.auto_reconnect = False
            self.listener.connection_failed(
                CDPConnectionError("reconnect attempts exhausted", ConnectionState.CLOSED.value),
            )
            return

        self.listener.connection_interrupted()
        self._trigger_reconnect()

    def _trigger_reconnect(self) -> None:
        if self.reconnect_task is None or self.reconnect_task.done():
            delay = self.retry_policy.get_delay(max(self._attempt - 1, 0))
            logger.info("Triggering reconnection", extra={"url": self.url, "delay": round(delay, 3)})
            self.reconnect_task = asyncio.create_task(self._reconnect(delay))
        else:
            logger.debug("Reconnection already scheduled", extra={"url": self.url})

    async def _reconnect(self, delay: float) -> None:
        with contextlib.suppress(asyncio.CancelledError):
            await asyncio.sleep(delay)
            if not self.auto_reconnect:
                return
            logger.info("→ Starting reconnection", extra={"url": self.url, "attempt": self._attempt})
            registry.record_reconnection(self.url)
            self.connect()

    def _set_state(self, state: ConnectionState) -> None:
        if state is not self.state:
            logger.debug("Connection state %s → %s", self.state.value, state.value, extra={"url": self.url})
        self.state = state
        registry.record_connection_state(self.url, state.value)
