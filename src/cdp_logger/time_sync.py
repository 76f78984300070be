"""Client/server clock reconciliation.

A sync cycle sends three time probes back to back. For every answer::

    round_trip        = received - sent
    server_at_receive = server_timestamp_ns / 1e9 + round_trip / 2
    offset            = received - server_at_receive

The sample with the smallest round trip wins and becomes the clock offset
(``client - server``). Timestamps going to the server have the offset
subtracted; timestamps coming back have it added.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from cdp_logger.const import TIME_SYNC_INTERVAL, TIME_SYNC_SAMPLES
from cdp_logger.exceptions import TimeSyncDisabledError
from cdp_logger.logging_abstraction import get_logger
from cdp_logger.metrics import registry as metrics
from cdp_logger.protocol.messages import Envelope, TimeRequest, TimeResponse
from cdp_logger.request_registry import RequestRegistry

logger = get_logger(__name__)


@dataclass(frozen=True)
class RoundTripSample:
    round_trip: float
    offset: float


def _consume_result(future: asyncio.Future[Any]) -> None:
    # Probe futures have no awaiting caller; mark failures as retrieved.
    if not future.cancelled():
        _ = future.exception()


class TimeSynchronizer:
    """Runs sync cycles and translates timestamps between client and server time.

    Only one cycle runs at a time and none starts while the connection is not
    open. ``on_cycle_complete(succeeded)`` fires whenever a cycle ends, including
    cycles aborted by an error frame or by disabling sync.
    """

    def __init__(
        self,
        registry: RequestRegistry,
        send: Callable[[Envelope], None],
        is_open: Callable[[], bool],
        clock: Callable[[], float],
        on_cycle_complete: Callable[[bool], None],
        enabled: bool = True,
        samples_per_cycle: int = TIME_SYNC_SAMPLES,
        resync_interval: float = TIME_SYNC_INTERVAL,
    ) -> None:
        self.registry = registry
        self.send = send
        self.is_open = is_open
        self.clock = clock
        self.on_cycle_complete = on_cycle_complete
        self.enabled = enabled
        self.samples_per_cycle = samples_per_cycle
        self.resync_interval = resync_interval
        self.offset: float = 0.0
        self.last_cycle_started: float | None = None
        self._samples: list[RoundTripSample] = []
        self._in_flight: dict[int, float] = {}
        self._cycle_active = False

    @property
    def cycle_active(self) -> bool:
        return self._cycle_active

    def to_server(self, client_time: float) -> float:
        return client_time - self.offset if self.enabled else client_time

    def to_client(self, server_time: float) -> float:
        return server_time + self.offset if self.enabled else server_time

    def mark_baseline(self) -> None:
        """Record now as the start of the re-sync interval."""
        self.last_cycle_started = self.clock()

    def start_cycle(self) -> bool:
        """Begin a sync cycle; returns False when one cannot start now."""
        if not self.enabled or self._cycle_active or not self.is_open():
            return False
        self._cycle_active = True
        self._samples.clear()
        self.last_cycle_started = self.clock()
        logger.debug("→ Starting time sync cycle", extra={"samples": self.samples_per_cycle})
        self._send_probe()
        return True

    def maybe_resync(self) -> bool:
        """Start a cycle when the last one began more than the re-sync interval ago."""
        if not self.enabled or self._cycle_active or not self.is_open():
            return False
        if self.last_cycle_started is not None and self.clock() - self.last_cycle_started <= self.resync_interval:
            return False
        return self.start_cycle()

    def handle_response(self, response: TimeResponse, received_at: float) -> None:
        request_id = response.request_id
        sent_at = self._in_flight.pop(request_id, None)
        if sent_at is None:
            # Late answer to a probe of an abandoned cycle.
            self.registry.settle(request_id, None)
            return

        round_trip = received_at - sent_at
        server_at_receive = response.timestamp_ns / 1e9 + round_trip / 2
        sample = RoundTripSample(round_trip=round_trip, offset=received_at - server_at_receive)
        self._samples.append(sample)
        self.registry.settle(request_id, sample)
        metrics.record_round_trip(round_trip)

        if len(self._samples) < self.samples_per_cycle:
            self._send_probe()
            return

        best = min(self._samples, key=lambda s: s.round_trip)
        self.offset = best.offset
        self._samples.clear()
        self._cycle_active = False
        metrics.record_clock_offset(self.offset)
        metrics.record_time_sync_cycle("completed")
        logger.info(
            "✓ Time sync complete",
            extra={"offset": round(self.offset, 6), "round_trip": round(best.round_trip, 6)},
        )
        self.on_cycle_complete(True)

    def handle_error(self, request_id: int, error: BaseException) -> bool:
        """Abort the cycle if ``request_id`` is a probe; returns whether it was."""
        if self._in_flight.pop(request_id, None) is None:
            return False
        self.registry.fail(request_id, error)
        logger.warning("✗ Time probe failed, keeping previous offset", extra={"error": str(error)})
        self._end_cycle("failed")
        return True

    def set_enabled(self, enabled: bool) -> None:
        if enabled == self.enabled:
            return
        self.enabled = enabled
        if enabled:
            # Stale, so the next request starts a fresh cycle.
            self.last_cycle_started = None
            logger.info("Time sync enabled")
            return
        was_active = self._cycle_active
        self._abandon_probes(TimeSyncDisabledError())
        logger.info("Time sync disabled")
        if was_active:
            self._end_cycle("disabled")

    def reset(self, error: BaseException) -> None:
        """Drop the current cycle after the connection went away."""
        self._abandon_probes(error)
        self._samples.clear()
        self._cycle_active = False

    def _send_probe(self) -> None:
        request_id = self.registry.allocate()
        future = self.registry.register(request_id)
        future.add_done_callback(_consume_result)
        self._in_flight[request_id] = self.clock()
        self.send(Envelope.wrap(TimeRequest(request_id=request_id)))

    def _abandon_probes(self, error: BaseException) -> None:
        in_flight, self._in_flight = self._in_flight, {}
        for request_id in in_flight:
            self.registry.fail(request_id, error)

    def _end_cycle(self, outcome: str) -> None:
        self._samples.clear()
        self._cycle_active = False
        metrics.record_time_sync_cycle(outcome)
        self.on_cycle_complete(False)
