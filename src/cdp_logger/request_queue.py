"""Deferred requests awaiting a ready connection."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from cdp_logger.protocol.messages import MessageKind


@dataclass
class QueuedRequest:
    """Deferred send of one public request.

    Attributes:
        request_id: Id allocated when the request was issued
        kind: Request message kind
        params: Arguments of the send routine (names, time range, query, ...)

    """

    request_id: int
    kind: MessageKind
    params: tuple[Any, ...] = field(default=())


class RequestQueue:
    """Requests waiting for the connection to become ready, plus those already on the wire.

    Queued requests are flushed in ascending id order. Requests written to a
    connection stay tracked until settled, so a clean close can put them back in
    the queue to be re-sent after reconnect.
    """

    def __init__(self) -> None:
        self._queued: dict[int, QueuedRequest] = {}
        self._on_wire: dict[int, QueuedRequest] = {}

    def enqueue(self, request: QueuedRequest) -> None:
        self._on_wire.pop(request.request_id, None)
        self._queued[request.request_id] = request

    def drain(self) -> list[QueuedRequest]:
        """Remove and return all queued requests, oldest id first."""
        requests = [self._queued[request_id] for request_id in sorted(self._queued)]
        self._queued.clear()
        return requests

    def mark_on_wire(self, request: QueuedRequest) -> None:
        self._on_wire[request.request_id] = request

    def forget(self, request_id: int) -> None:
        """Stop tracking a settled request."""
        self._queued.pop(request_id, None)
        self._on_wire.pop(request_id, None)

    def requeue_on_wire(self) -> int:
        """Move every request written to the old connection back into the queue.

        Returns:
            Number of requests requeued
        """
        count = len(self._on_wire)
        self._queued.update(self._on_wire)
        self._on_wire.clear()
        return count

    def discard(self) -> list[int]:
        """Drop everything; returns the ids that were still tracked."""
        request_ids = sorted(self._queued.keys() | self._on_wire.keys())
        self._queued.clear()
        self._on_wire.clear()
        return request_ids

    @property
    def queued_ids(self) -> list[int]:
        return sorted(self._queued)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._queued

    def __len__(self) -> int:
        return len(self._queued)
