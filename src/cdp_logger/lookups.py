"""Dependent lookups: node name to id resolution and event sender tags.

Both resolvers issue their own requests through the client and share in-flight
lookups, so concurrent callers never trigger duplicate requests.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Callable, Iterable, Sequence

from cdp_logger.exceptions import UnknownNodeError
from cdp_logger.instrumentation import timed_async
from cdp_logger.logging_abstraction import get_logger
from cdp_logger.metrics import registry as metrics
from cdp_logger.protocol.exceptions import CDPLoggerError
from cdp_logger.protocol.messages import TagInfo
from cdp_logger.results import Event, LoggedNode

logger = get_logger(__name__)

SenderTags = dict[str, TagInfo]


class NodeDirectory:
    """Logged nodes by name and by id; replaced wholesale on every refresh."""

    def __init__(self) -> None:
        self._by_name: dict[str, LoggedNode] = {}
        self._by_id: dict[int, LoggedNode] = {}

    def replace(self, nodes: Iterable[LoggedNode]) -> None:
        nodes = list(nodes)
        self._by_name = {node.name: node for node in nodes}
        self._by_id = {node.id: node for node in nodes}

    def id_for(self, name: str) -> int | None:
        node = self._by_name.get(name)
        return node.id if node is not None else None

    def node_for_id(self, node_id: int) -> LoggedNode | None:
        return self._by_id.get(node_id)

    def missing(self, names: Iterable[str]) -> list[str]:
        return [name for name in names if name not in self._by_name]

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)


class NodeIdResolver:
    """Resolves node names to ids, refreshing the directory at most once per miss.

    Concurrent resolutions that miss share a single directory request.
    """

    def __init__(
        self,
        directory: NodeDirectory,
        request_directory: Callable[[], asyncio.Future[list[LoggedNode]]],
    ) -> None:
        self.directory = directory
        self.request_directory = request_directory
        self._refresh: asyncio.Future[list[LoggedNode]] | None = None

    @timed_async("resolve_node_ids")
    async def resolve(self, names: Sequence[str]) -> list[int]:
        """Ids of ``names`` in order.

        Raises:
            UnknownNodeError: If a name is still missing after a directory refresh

        """
        if self.directory.missing(names):
            await self._shared_refresh()
            missing = self.directory.missing(names)
            if missing:
                raise UnknownNodeError(missing[0])
        return [self.directory.id_for(name) for name in names]  # type: ignore[misc]

    async def _shared_refresh(self) -> None:
        if self._refresh is None or self._refresh.done():
            logger.debug("Refreshing node directory")
            metrics.record_directory_refresh()
            self._refresh = self.request_directory()
        await self._refresh


class SenderTagResolver:
    """Lazily fetched, never evicted cache of event sender tags.

    A sender has at most one lookup in flight; later callers wait on it.
    Failed lookups are not cached.
    """

    def __init__(self, request_tags: Callable[[str], asyncio.Future[SenderTags]]) -> None:
        self.request_tags = request_tags
        self.cache: dict[str, SenderTags] = {}
        self._waiters: dict[str, list[asyncio.Future[SenderTags]]] = {}

    def tags_for(self, sender: str) -> asyncio.Future[SenderTags]:
        waiter: asyncio.Future[SenderTags] = asyncio.get_running_loop().create_future()
        cached = self.cache.get(sender)
        if cached is not None:
            waiter.set_result(dict(cached))
            return waiter

        waiters = self._waiters.get(sender)
        if waiters is not None:
            waiters.append(waiter)
            return waiter

        self._waiters[sender] = [waiter]
        try:
            lookup = self.request_tags(sender)
        except CDPLoggerError as e:
            del self._waiters[sender]
            metrics.record_sender_tag_lookup("failed")
            waiter.set_exception(e)
            return waiter
        lookup.add_done_callback(lambda done: self._lookup_done(sender, done))
        return waiter

    def fail_waiters(self, error: BaseException) -> None:
        """Reject every waiter of every in-flight lookup."""
        waiters, self._waiters = self._waiters, {}
        for pending in waiters.values():
            for waiter in pending:
                if not waiter.done():
                    waiter.set_exception(error)

    async def enrich(self, events: Sequence[Event]) -> list[Event]:
        """Attach sender tags to ``events``.

        Waits for every distinct sender's lookup. A sender whose lookup fails
        gets empty tags; the batch itself never fails here.
        """
        senders = list(dict.fromkeys(event.sender for event in events))
        results = await asyncio.gather(*(self.tags_for(sender) for sender in senders), return_exceptions=True)

        tags_by_sender: dict[str, SenderTags] = {}
        for sender, result in zip(senders, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(
                    "Sender tag lookup failed, returning events without tags",
                    extra={"sender": sender, "error": str(result)},
                )
                tags_by_sender[sender] = {}
            else:
                tags_by_sender[sender] = result
        return [dataclasses.replace(event, tags=dict(tags_by_sender[event.sender])) for event in events]

    def _lookup_done(self, sender: str, lookup: asyncio.Future[SenderTags]) -> None:
        waiters = self._waiters.pop(sender, [])
        if lookup.cancelled():
            error: BaseException | None = asyncio.CancelledError()
        else:
            error = lookup.exception()

        if error is None:
            tags = lookup.result()
            self.cache[sender] = tags
            metrics.record_sender_tag_lookup("ok")
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_result(dict(tags))
            return

        metrics.record_sender_tag_lookup("failed")
        for waiter in waiters:
            if not waiter.done():
                waiter.set_exception(error)
