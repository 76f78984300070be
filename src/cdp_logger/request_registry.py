"""Correlation of responses to outstanding requests."""

from __future__ import annotations

import asyncio
import itertools
from typing import Any

from cdp_logger.exceptions import TooManyPendingRequestsError
from cdp_logger.logging_abstraction import get_logger
from cdp_logger.metrics import registry as metrics

logger = get_logger(__name__)


class RequestRegistry:
    """Allocates request ids and owns the pending future of every outstanding request.

    Ids start at 0 and strictly increase for the lifetime of the registry, across
    reconnects. Each future is settled exactly once: by ``settle``, ``fail`` or
    ``fail_all``. Settling an unknown id (late, duplicate or already swept) is a
    no-op that returns False.
    """

    def __init__(self, max_outstanding: int | None = None) -> None:
        self.max_outstanding = max_outstanding
        self._ids = itertools.count()
        self._pending: dict[int, asyncio.Future[Any]] = {}

    def allocate(self) -> int:
        return next(self._ids)

    def ensure_capacity(self) -> None:
        """Raise if another request would exceed the outstanding cap."""
        if self.max_outstanding is not None and len(self._pending) >= self.max_outstanding:
            raise TooManyPendingRequestsError(self.max_outstanding)

    def register(self, request_id: int) -> asyncio.Future[Any]:
        if request_id in self._pending:
            msg = f"Request id {request_id} is already pending"
            raise ValueError(msg)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        metrics.record_pending_requests(len(self._pending))
        return future

    def settle(self, request_id: int, result: Any) -> bool:
        future = self._pending.pop(request_id, None)
        if future is None:
            return False
        metrics.record_pending_requests(len(self._pending))
        if not future.done():
            future.set_result(result)
        return True

    def fail(self, request_id: int, error: BaseException) -> bool:
        future = self._pending.pop(request_id, None)
        if future is None:
            return False
        metrics.record_pending_requests(len(self._pending))
        if not future.done():
            future.set_exception(error)
        return True

    def fail_all(self, error: BaseException) -> int:
        """Fail every outstanding request with ``error`` and empty the registry.

        Returns:
            Number of requests failed
        """
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)
        metrics.record_pending_requests(0)
        if pending:
            logger.info(
                "Failed %d outstanding requests",
                len(pending),
                extra={"count": len(pending), "error": str(error)},
            )
        return len(pending)

    def get(self, request_id: int) -> asyncio.Future[Any] | None:
        return self._pending.get(request_id)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    def __len__(self) -> int:
        return len(self._pending)
