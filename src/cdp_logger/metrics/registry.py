"""Prometheus metrics registry for the CDP Logger client."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from cdp_logger.const import CDP_METRICS_PORT

CONNECTION_STATES: Final = ("connecting", "open", "closed")

# Requests
cdp_client_requests_sent_total: Final = Counter(  # type: ignore[assignment]
    "cdp_client_requests_sent_total",
    "Total request frames written to the connection",
    ["kind"],
)

cdp_client_requests_queued_total: Final = Counter(  # type: ignore[assignment]
    "cdp_client_requests_queued_total",
    "Total requests deferred until the connection is ready",
    ["kind"],
)

cdp_client_responses_total: Final = Counter(  # type: ignore[assignment]
    "cdp_client_responses_total",
    "Total response frames received",
    ["kind"],
)

cdp_client_request_failures_total: Final = Counter(  # type: ignore[assignment]
    "cdp_client_request_failures_total",
    "Total requests failed",
    ["reason"],
)

cdp_client_dropped_responses_total: Final = Counter(  # type: ignore[assignment]
    "cdp_client_dropped_responses_total",
    "Total responses dropped because no request was waiting for them",
    ["kind"],
)

cdp_client_decode_errors_total: Final = Counter(  # type: ignore[assignment]
    "cdp_client_decode_errors_total",
    "Total frames that could not be decoded",
    ["reason"],
)

cdp_client_pending_requests: Final = Gauge(  # type: ignore[assignment]
    "cdp_client_pending_requests",
    "Requests awaiting a response",
)

# Time sync
cdp_client_time_sync_cycles_total: Final = Counter(  # type: ignore[assignment]
    "cdp_client_time_sync_cycles_total",
    "Total clock synchronization cycles",
    ["outcome"],
)

cdp_client_clock_offset_seconds: Final = Gauge(  # type: ignore[assignment]
    "cdp_client_clock_offset_seconds",
    "Current client minus server clock offset in seconds",
)

cdp_client_round_trip_seconds: Final = Histogram(  # type: ignore[assignment]
    "cdp_client_round_trip_seconds",
    "Clock probe round-trip time in seconds",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0),
)

# Connection
cdp_client_connection_state: Final = Gauge(  # type: ignore[assignment]
    "cdp_client_connection_state",
    "Current connection state",
    ["endpoint", "state"],
)

cdp_client_reconnection_total: Final = Counter(  # type: ignore[assignment]
    "cdp_client_reconnection_total",
    "Total reconnection attempts",
    ["endpoint"],
)

# Dependent lookups
cdp_client_directory_refresh_total: Final = Counter(  # type: ignore[assignment]
    "cdp_client_directory_refresh_total",
    "Total node directory refresh requests",
)

cdp_client_sender_tag_lookups_total: Final = Counter(  # type: ignore[assignment]
    "cdp_client_sender_tag_lookups_total",
    "Total event sender tag lookups",
    ["outcome"],
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = CDP_METRICS_PORT) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_request_sent(kind: str) -> None:
    cdp_client_requests_sent_total.labels(kind=kind).inc()  # type: ignore[no-untyped-call]


def record_request_queued(kind: str) -> None:
    cdp_client_requests_queued_total.labels(kind=kind).inc()  # type: ignore[no-untyped-call]


def record_response(kind: str) -> None:
    cdp_client_responses_total.labels(kind=kind).inc()  # type: ignore[no-untyped-call]


def record_request_failure(reason: str, count: int = 1) -> None:
    """Record failed requests; ``count`` covers bulk sweeps."""
    if count > 0:
        cdp_client_request_failures_total.labels(reason=reason).inc(count)  # type: ignore[no-untyped-call]


def record_dropped_response(kind: str) -> None:
    cdp_client_dropped_responses_total.labels(kind=kind).inc()  # type: ignore[no-untyped-call]


def record_decode_error(reason: str) -> None:
    cdp_client_decode_errors_total.labels(reason=reason).inc()  # type: ignore[no-untyped-call]


def record_pending_requests(count: int) -> None:
    cdp_client_pending_requests.set(count)  # type: ignore[no-untyped-call]


def record_time_sync_cycle(outcome: str) -> None:
    cdp_client_time_sync_cycles_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_clock_offset(offset_seconds: float) -> None:
    cdp_client_clock_offset_seconds.set(offset_seconds)  # type: ignore[no-untyped-call]


def record_round_trip(round_trip_seconds: float) -> None:
    cdp_client_round_trip_seconds.observe(round_trip_seconds)  # type: ignore[no-untyped-call]


def record_connection_state(endpoint: str, state: str) -> None:
    """Record connection state change."""
    # Set gauge to 1 for current state, 0 for all others
    for s in CONNECTION_STATES:
        value = 1 if s == state else 0
        cdp_client_connection_state.labels(endpoint=endpoint, state=s).set(value)  # type: ignore[no-untyped-call]


def record_reconnection(endpoint: str) -> None:
    cdp_client_reconnection_total.labels(endpoint=endpoint).inc()  # type: ignore[no-untyped-call]


def record_directory_refresh() -> None:
    cdp_client_directory_refresh_total.inc()  # type: ignore[no-untyped-call]


def record_sender_tag_lookup(outcome: str) -> None:
    cdp_client_sender_tag_lookups_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]
