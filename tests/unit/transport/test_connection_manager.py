"""Unit tests for ConnectionManager state handling and reconnects."""

from __future__ import annotations

import pytest

from cdp_logger.const import CONNECTION_CLOSED_MSG
from cdp_logger.transport.connection_manager import ConnectionManager, ConnectionState
from cdp_logger.transport.exceptions import CDPConnectionError
from cdp_logger.transport.retry_policy import RetryPolicy
from tests.helpers.expectations import expect_exception
from tests.helpers.fakes import settle_tasks

TEST_URL = "ws://127.0.0.1:17000"


class RecordingListener:
    """ConnectionListener that records every callback."""

    def __init__(self) -> None:
        self.events: list[str] = []
        self.frames: list[bytes] = []
        self.failures: list[CDPConnectionError] = []

    def connection_opened(self) -> None:
        self.events.append("opened")

    def frame_received(self, data: bytes) -> None:
        self.frames.append(data)

    def connection_failed(self, error: CDPConnectionError) -> None:
        self.events.append("failed")
        self.failures.append(error)

    def connection_interrupted(self) -> None:
        self.events.append("interrupted")


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


def make_manager(listener, transports, **kwargs) -> ConnectionManager:
    kwargs.setdefault("retry_policy", RetryPolicy.fixed(0.0))
    return ConnectionManager(TEST_URL, listener, transport_factory=transports, **kwargs)


class TestLifecycle:
    """Tests for connect, open and send."""

    @pytest.mark.asyncio
    async def test_connect_opens_transport(self, listener, transports):
        """connect() builds one transport and moves to connecting."""
        manager = make_manager(listener, transports)

        manager.connect()
        manager.connect()

        assert len(transports.instances) == 1
        assert transports.current.opened
        assert transports.current.url == TEST_URL
        assert manager.state is ConnectionState.CONNECTING

    @pytest.mark.asyncio
    async def test_open_notifies_listener(self, listener, transports):
        manager = make_manager(listener, transports)
        manager.connect()

        transports.current.fire_open()

        assert manager.is_open()
        assert listener.events == ["opened"]

    @pytest.mark.asyncio
    async def test_frames_forwarded(self, listener, transports):
        manager = make_manager(listener, transports)
        manager.connect()
        transports.current.fire_open()

        transports.current.handler.on_message(transports.current, b"\x08\x08")

        assert listener.frames == [b"\x08\x08"]

    @pytest.mark.asyncio
    async def test_send_requires_open_connection(self, listener, transports):
        """Sending before open raises instead of buffering."""
        manager = make_manager(listener, transports)
        manager.connect()

        error = expect_exception(manager.send, CDPConnectionError, b"\x00")

        assert error.state == "connecting"
        transports.current.fire_open()
        manager.send(b"\x01")
        assert transports.current.sent == [b"\x01"]


class TestFailures:
    """Tests for transport errors and closes."""

    @pytest.mark.asyncio
    async def test_error_reports_failure_with_reason(self, listener, transports):
        manager = make_manager(listener, transports)
        manager.connect()
        transports.current.fire_open()

        transports.current.fire_error(ConnectionResetError("connection reset by peer"))

        assert listener.events == ["opened", "failed"]
        assert listener.failures[0].reason == "connection reset by peer"
        assert listener.failures[0].state == "open"

    @pytest.mark.asyncio
    async def test_close_without_reconnect(self, listener, transports):
        """Without auto-reconnect a close is a final failure."""
        manager = make_manager(listener, transports, auto_reconnect=False)
        manager.connect()
        transports.current.fire_open()

        transports.current.fire_close()
        await settle_tasks()

        assert listener.events == ["opened", "failed"]
        assert str(listener.failures[0]) == CONNECTION_CLOSED_MSG
        assert manager.state is ConnectionState.CLOSED
        assert len(transports.instances) == 1

    @pytest.mark.asyncio
    async def test_close_with_reconnect_opens_new_transport(self, listener, transports):
        """A clean close interrupts and reconnects after the policy delay."""
        manager = make_manager(listener, transports)
        manager.connect()
        transports.current.fire_open()

        transports.current.fire_close()
        assert listener.events == ["opened", "interrupted"]
        await settle_tasks()

        assert len(transports.instances) == 2
        assert manager.state is ConnectionState.CONNECTING
        transports.current.fire_open()
        assert listener.events == ["opened", "interrupted", "opened"]

    @pytest.mark.asyncio
    async def test_stale_transport_events_ignored(self, listener, transports):
        """Callbacks from a replaced transport do nothing."""
        manager = make_manager(listener, transports)
        manager.connect()
        old = transports.current
        old.fire_open()
        old.fire_close()
        await settle_tasks()

        old.fire_open()
        old.fire_error()
        old.fire_close()
        old.handler.on_message(old, b"late")

        assert listener.events == ["opened", "interrupted"]
        assert listener.frames == []
        assert len(transports.instances) == 2

    @pytest.mark.asyncio
    async def test_attempts_reset_after_successful_open(self, listener, transports):
        """Only consecutive failed attempts count toward the cap."""
        manager = make_manager(listener, transports, max_reconnect_attempts=1)
        manager.connect()
        transports.current.fire_close()
        await settle_tasks()

        transports.current.fire_open()
        transports.current.fire_close()
        await settle_tasks()

        assert len(transports.instances) == 3
        assert "failed" not in listener.events


class TestDisconnect:
    """Tests for explicit disconnects."""

    @pytest.mark.asyncio
    async def test_disconnect_closes_and_fails(self, listener, transports):
        manager = make_manager(listener, transports)
        manager.connect()
        transports.current.fire_open()

        manager.disconnect()

        assert transports.current.closed
        assert not manager.auto_reconnect
        assert listener.events == ["opened", "failed"]
        assert str(listener.failures[0]) == CONNECTION_CLOSED_MSG

    @pytest.mark.asyncio
    async def test_disconnect_cancels_scheduled_reconnect(self, listener, transports):
        """A pending reconnect never fires after disconnect."""
        manager = make_manager(listener, transports, retry_policy=RetryPolicy.fixed(60.0))
        manager.connect()
        transports.current.fire_open()
        transports.current.fire_close()
        assert manager.reconnect_task is not None

        manager.disconnect()
        await settle_tasks()

        assert len(transports.instances) == 1
        assert manager.reconnect_task is None

    @pytest.mark.asyncio
    async def test_disconnect_twice(self, listener, transports):
        """A second disconnect does not raise."""
        manager = make_manager(listener, transports)
        manager.connect()

        manager.disconnect()
        manager.disconnect()

        assert manager.state is ConnectionState.CLOSED
