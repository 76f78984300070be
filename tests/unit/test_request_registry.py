"""Unit tests for the request correlation registry."""

from __future__ import annotations

import pytest

from cdp_logger.exceptions import TooManyPendingRequestsError
from cdp_logger.request_registry import RequestRegistry
from cdp_logger.transport.exceptions import CDPConnectionError
from tests.helpers.expectations import expect_exception, expect_failed

# Test constants
ALLOCATIONS = 50


class TestAllocate:
    """Tests for request id allocation."""

    def test_ids_start_at_zero_and_strictly_increase(self):
        """Ids count up from 0 without gaps or repeats."""
        registry = RequestRegistry()

        ids = [registry.allocate() for _ in range(ALLOCATIONS)]

        assert ids == list(range(ALLOCATIONS))

    @pytest.mark.asyncio
    async def test_ids_not_reused_after_settle(self):
        """Settling a request does not make its id available again."""
        registry = RequestRegistry()
        first = registry.allocate()
        _ = registry.register(first)
        registry.settle(first, "done")

        assert registry.allocate() == first + 1


class TestSettle:
    """Tests for settling pending requests."""

    @pytest.mark.asyncio
    async def test_settle_resolves_future(self):
        """settle() resolves the registered future and forgets it."""
        registry = RequestRegistry()
        future = registry.register(registry.allocate())

        assert registry.settle(0, "3.0") is True

        assert await future == "3.0"
        assert 0 not in registry
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_settle_unknown_id_is_noop(self):
        """Responses for unknown ids are dropped."""
        registry = RequestRegistry()
        future = registry.register(registry.allocate())

        assert registry.settle(99, "late") is False
        assert not future.done()

    @pytest.mark.asyncio
    async def test_second_settle_is_noop(self):
        """A duplicate response cannot change an already settled result."""
        registry = RequestRegistry()
        future = registry.register(registry.allocate())
        registry.settle(0, "first")

        assert registry.settle(0, "second") is False
        assert future.result() == "first"

    @pytest.mark.asyncio
    async def test_fail_rejects_future(self):
        """fail() rejects only the matching future."""
        registry = RequestRegistry()
        failing = registry.register(registry.allocate())
        other = registry.register(registry.allocate())
        error = CDPConnectionError("boom")

        assert registry.fail(0, error) is True

        assert expect_failed(failing, CDPConnectionError) is error
        assert not other.done()

    @pytest.mark.asyncio
    async def test_duplicate_register_raises(self):
        """A second future for the same id is refused."""
        registry = RequestRegistry()
        request_id = registry.allocate()
        _ = registry.register(request_id)

        error = expect_exception(registry.register, ValueError, request_id)

        assert str(request_id) in str(error)


class TestFailAll:
    """Tests for the bulk failure sweep."""

    @pytest.mark.asyncio
    async def test_fail_all_rejects_everything(self):
        """Every outstanding future fails with the same error and the registry empties."""
        registry = RequestRegistry()
        futures = [registry.register(registry.allocate()) for _ in range(3)]
        error = CDPConnectionError("Connection was closed", "closed")

        assert registry.fail_all(error) == 3

        assert all(expect_failed(future, CDPConnectionError) is error for future in futures)
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_fail_all_on_empty_registry(self):
        """Sweeping nothing is harmless."""
        registry = RequestRegistry()

        assert registry.fail_all(CDPConnectionError("closed")) == 0


class TestCapacity:
    """Tests for the optional outstanding-request cap."""

    @pytest.mark.asyncio
    async def test_cap_rejects_when_full(self):
        """ensure_capacity() raises once the cap is reached."""
        registry = RequestRegistry(max_outstanding=2)
        _ = registry.register(registry.allocate())
        registry.ensure_capacity()
        _ = registry.register(registry.allocate())

        error = expect_exception(registry.ensure_capacity, TooManyPendingRequestsError)

        assert error.limit == 2

    @pytest.mark.asyncio
    async def test_unbounded_by_default(self):
        """Without a cap any number of requests may be pending."""
        registry = RequestRegistry()
        for _ in range(ALLOCATIONS):
            _ = registry.register(registry.allocate())

        registry.ensure_capacity()
