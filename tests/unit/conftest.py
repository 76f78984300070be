"""Shared fixtures for client unit tests.

The client is driven through a fake transport and a passthrough codec, so tests
deliver and inspect ``Envelope`` objects directly instead of bytes.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from cdp_logger.client import Client
from cdp_logger.transport.retry_policy import RetryPolicy
from tests.helpers.fakes import FakeClock, PassthroughCodec, TransportRecorder, answer_time_probes

TEST_ENDPOINT = "127.0.0.1:17000"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transports() -> TransportRecorder:
    return TransportRecorder()


@pytest.fixture
def make_client(clock: FakeClock, transports: TransportRecorder) -> Callable[..., Client]:
    def _make(**kwargs: Any) -> Client:
        kwargs.setdefault("retry_policy", RetryPolicy.fixed(0.0))
        return Client(TEST_ENDPOINT, codec=PassthroughCodec(), transport_factory=transports, clock=clock, **kwargs)

    return _make


@pytest.fixture
def open_client(
    make_client: Callable[..., Client],
    transports: TransportRecorder,
    clock: FakeClock,
) -> Callable[..., Client]:
    """Build a client, open its connection and finish the first sync cycle."""

    def _open(offset: float = 0.0, **kwargs: Any) -> Client:
        client = make_client(**kwargs)
        client.connect()
        transports.current.fire_open()
        if client.time_sync.enabled:
            answer_time_probes(transports.current, clock, offset=offset)
        return client

    return _open
