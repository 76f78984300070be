"""Asyncio WebSocket transport built on aiohttp.

The transport owns one WebSocket connection and reports lifecycle events to a
handler. It never reconnects on its own; ``ConnectionManager`` creates a fresh
transport for each attempt.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Protocol

import aiohttp

from cdp_logger.const import CDP_CONNECT_TIMEOUT
from cdp_logger.transport.exceptions import CDPConnectionError

logger = logging.getLogger(__name__)


class TransportHandler(Protocol):
    """Receiver of transport lifecycle events.

    Every callback names the transport that raised it so stale transports
    from earlier connection attempts can be ignored.
    """

    def on_open(self, transport: Transport) -> None: ...

    def on_message(self, transport: Transport, data: bytes) -> None: ...

    def on_error(self, transport: Transport, error: BaseException) -> None: ...

    def on_close(self, transport: Transport) -> None: ...


class Transport(Protocol):
    """Minimal duplex transport contract used by ``ConnectionManager``."""

    url: str

    def open(self) -> None: ...

    def send(self, data: bytes) -> None: ...

    def close(self) -> None: ...


class WebSocketTransport:
    """Binary WebSocket connection with an ordered outbound queue.

    ``send`` never blocks: frames are queued and written by a single writer
    task, so they reach the socket in call order.
    """

    def __init__(
        self,
        url: str,
        handler: TransportHandler,
        session: aiohttp.ClientSession | None = None,
        connect_timeout: float = CDP_CONNECT_TIMEOUT,
        heartbeat: float | None = None,
    ):
        """
        Initialize WebSocket transport.

        Args:
            url: ws:// or wss:// URL of the server
            handler: Receiver of lifecycle events
            session: Shared aiohttp session (a private one is created and closed otherwise)
            connect_timeout: Handshake timeout in seconds
            heartbeat: Optional WebSocket ping interval in seconds
        """
        self.url = url
        self.handler = handler
        self.connect_timeout = connect_timeout
        self.heartbeat = heartbeat
        self._session = session
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._outbox: asyncio.Queue[bytes] = asyncio.Queue()
        self._run_task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None

    def open(self) -> None:
        """Start connecting in the background; the handler is told the outcome."""
        if self._run_task is not None:
            return
        self._run_task = asyncio.create_task(self._run(), name=f"cdp-websocket-{self.url}")

    def send(self, data: bytes) -> None:
        self._outbox.put_nowait(data)

    def close(self) -> None:
        """Stop the connection; ``on_close`` fires once teardown finishes."""
        if self._run_task is not None and not self._run_task.done():
            _ = self._run_task.cancel()

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def _run(self) -> None:
        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession()
        try:
            if not await self._connect(session):
                return
            self._writer_task = asyncio.create_task(self._writer(), name=f"cdp-websocket-writer-{self.url}")
            self.handler.on_open(self)
            await self._reader()
        finally:
            await self._teardown(session, owns_session)
            self.handler.on_close(self)

    async def _connect(self, session: aiohttp.ClientSession) -> bool:
        start_time = time.perf_counter()
        logger.info(
            "Connecting to %s (timeout: %.1fs)",
            self.url,
            self.connect_timeout,
            extra={"url": self.url, "timeout": self.connect_timeout},
        )
        try:
            self._ws = await asyncio.wait_for(
                session.ws_connect(self.url, heartbeat=self.heartbeat),
                timeout=self.connect_timeout,
            )
        except TimeoutError as e:
            logger.warning("Connection to %s timed out", self.url, extra={"url": self.url, "error": "timeout"})
            self.handler.on_error(self, CDPConnectionError(f"connect timed out: {e}", "connecting"))
            return False
        except (aiohttp.ClientError, OSError) as e:
            logger.warning(
                "Connection to %s failed: %s", self.url, e, extra={"url": self.url, "error": str(e)},
            )
            self.handler.on_error(self, e)
            return False

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Connected to %s in %.1fms", self.url, elapsed_ms, extra={"url": self.url, "elapsed_ms": elapsed_ms},
        )
        return True

    async def _reader(self) -> None:
        assert self._ws is not None
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.BINARY:
                self.handler.on_message(self, msg.data)
            elif msg.type == aiohttp.WSMsgType.TEXT:
                logger.warning(
                    "Ignoring text frame from %s", self.url, extra={"url": self.url, "size": len(msg.data)},
                )
            elif msg.type == aiohttp.WSMsgType.ERROR:
                error = self._ws.exception() or CDPConnectionError("websocket error", "open")
                logger.warning("WebSocket error on %s: %s", self.url, error, extra={"url": self.url})
                self.handler.on_error(self, error)
                break

    async def _writer(self) -> None:
        assert self._ws is not None
        while True:
            data = await self._outbox.get()
            try:
                await self._ws.send_bytes(data)
            except (aiohttp.ClientError, ConnectionError) as e:
                logger.warning("Send to %s failed: %s", self.url, e, extra={"url": self.url, "bytes": len(data)})
                self.handler.on_error(self, e)
                await self._ws.close()
                return
            logger.debug("Sent %d bytes to %s", len(data), self.url)

    async def _teardown(self, session: aiohttp.ClientSession, owns_session: bool) -> None:
        if self._writer_task is not None and not self._writer_task.done():
            _ = self._writer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._writer_task
        self._writer_task = None
        if self._ws is not None:
            await self._ws.close()
        if owns_session:
            await session.close()
        logger.info("Connection to %s closed", self.url, extra={"url": self.url})
