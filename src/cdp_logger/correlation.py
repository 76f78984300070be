"""
Correlation ID tracking across async operations.

Responses are dispatched inside a correlation scope named after their request
id, so every log line emitted while settling a request can be traced back to it.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "generate_correlation_id",
    "get_correlation_id",
    "request_correlation_id",
    "set_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id",
    default=None,
)


def generate_correlation_id() -> str:
    """
    Generate a new correlation ID.

    Returns:
        New UUID-based correlation ID (format: UUID4 hex without dashes)
    """
    return uuid.uuid4().hex


def request_correlation_id(request_id: int) -> str:
    """Correlation ID used for everything that happens on behalf of a request."""
    return f"req-{request_id}"


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id.set(correlation_id)


@contextmanager
def correlation_context(
    correlation_id: str | None = None,
    auto_generate: bool = True,
) -> Generator[str | None]:
    """
    Context manager for correlation ID scope.

    Restores the previous correlation ID on exit.

    Args:
        correlation_id: Specific correlation ID to use (None to auto-generate)
        auto_generate: Generate new ID if correlation_id is None

    Yields:
        The correlation ID used in this context

    Example:
        with correlation_context(request_correlation_id(7)):
            logger.info("Settling request")  # tagged "req-7"
    """
    previous_id = get_correlation_id()

    if correlation_id is None and auto_generate:
        correlation_id = generate_correlation_id()

    set_correlation_id(correlation_id)
    try:
        yield correlation_id
    finally:
        set_correlation_id(previous_id)
