"""
Performance instrumentation for frame handling and lookups.

Timing is switched on with ``CDP_PERF_TRACKING`` and warns above
``CDP_PERF_THRESHOLD_MS``.
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable, Coroutine
from typing import Any, ParamSpec, TypeVar

__all__ = [
    "measure_time",
    "timed",
    "timed_async",
]

P = ParamSpec("P")
T = TypeVar("T")


def measure_time(start_time: float) -> float:
    """Elapsed milliseconds since ``start_time`` (a ``time.perf_counter()`` value)."""
    return (time.perf_counter() - start_time) * 1000


def timed(operation_name: str | None = None) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorator for timing synchronous functions with threshold warnings.

    Args:
        operation_name: Name for the operation (defaults to function name)

    Example:
        @timed("frame_dispatch")
        def handle_frame(data):
            ...
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            from cdp_logger.const import CDP_PERF_THRESHOLD_MS, CDP_PERF_TRACKING  # noqa: PLC0415
            from cdp_logger.logging_abstraction import get_logger  # noqa: PLC0415

            if not CDP_PERF_TRACKING:
                return func(*args, **kwargs)

            start_time = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                _log_timing(get_logger(__name__), operation_name or func.__name__, measure_time(start_time),
                            CDP_PERF_THRESHOLD_MS)

        return wrapper

    return decorator


def timed_async(
    operation_name: str | None = None,
) -> Callable[[Callable[P, Coroutine[Any, Any, T]]], Callable[P, Coroutine[Any, Any, T]]]:
    """
    Decorator for timing async functions with threshold warnings.

    Args:
        operation_name: Name for the operation (defaults to function name)

    Example:
        @timed_async("resolve_node_ids")
        async def resolve(names):
            ...
    """

    def decorator(func: Callable[P, Coroutine[Any, Any, T]]) -> Callable[P, Coroutine[Any, Any, T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            from cdp_logger.const import CDP_PERF_THRESHOLD_MS, CDP_PERF_TRACKING  # noqa: PLC0415
            from cdp_logger.logging_abstraction import get_logger  # noqa: PLC0415

            if not CDP_PERF_TRACKING:
                return await func(*args, **kwargs)

            start_time = time.perf_counter()
            try:
                return await func(*args, **kwargs)
            finally:
                _log_timing(get_logger(__name__), operation_name or func.__name__, measure_time(start_time),
                            CDP_PERF_THRESHOLD_MS)

        return wrapper

    return decorator


def _log_timing(logger: Any, operation_name: str, elapsed_ms: float, threshold_ms: int) -> None:
    context = {
        "operation": operation_name,
        "duration_ms": round(elapsed_ms, 2),
        "threshold_ms": threshold_ms,
        "exceeded_threshold": elapsed_ms > threshold_ms,
    }
    if elapsed_ms > threshold_ms:
        logger.warning(
            "⏱️ [%s] completed in %.1fms (threshold: %dms)",
            operation_name,
            elapsed_ms,
            threshold_ms,
            extra=context,
        )
    else:
        logger.debug("⏱️ [%s] completed in %.1fms", operation_name, elapsed_ms, extra=context)
