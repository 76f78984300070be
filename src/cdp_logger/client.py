"""CDP Logger client.

One ``Client`` owns one connection to a Logger / LogServer endpoint and
multiplexes any number of concurrent requests over it. Every public request
method returns an ``asyncio.Future`` immediately:

    async with Client("127.0.0.1:17000") as client:
        limits = await client.request_log_limits()
        points = await client.request_data_points(["Output"], limits.start, limits.end, 500)

Requests issued before the connection is ready (open and clock synchronized)
are queued and sent in issue order afterwards.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from cdp_logger.const import MIN_API_VERSION
from cdp_logger.correlation import correlation_context, request_correlation_id
from cdp_logger.exceptions import InvalidRequestError, RequestError, VersionIncompatibleError
from cdp_logger.instrumentation import timed
from cdp_logger.logging_abstraction import get_logger
from cdp_logger.lookups import NodeDirectory, NodeIdResolver, SenderTags, SenderTagResolver
from cdp_logger.metrics import registry as metrics
from cdp_logger.protocol.codec import Codec, EnvelopeCodec
from cdp_logger.protocol.exceptions import CDPLoggerError, MessageDecodeError
from cdp_logger.protocol.messages import (
    CDPValueType,
    CountEventsRequest,
    CountEventsResponse,
    CriterionLimitsRequest,
    CriterionLimitsResponse,
    Envelope,
    ErrorResponse,
    EventSenderTagsRequest,
    EventSenderTagsResponse,
    EventsRequest,
    EventsResponse,
    MessageKind,
    SignalDataRequest,
    SignalDataResponse,
    SignalInfoRequest,
    SignalInfoResponse,
    TagMap,
    TimeResponse,
    VersionRequest,
    VersionResponse,
)
from cdp_logger.query import EventQuery
from cdp_logger.request_queue import QueuedRequest, RequestQueue
from cdp_logger.request_registry import RequestRegistry
from cdp_logger.results import DataPoint, Event, LoggedNode, SignalValue, TimeRange, value_from_variant
from cdp_logger.time_sync import TimeSynchronizer
from cdp_logger.transport.connection_manager import ConnectionManager, TransportFactory
from cdp_logger.transport.exceptions import CDPConnectionError
from cdp_logger.transport.retry_policy import RetryPolicy

logger = get_logger(__name__)


def normalize_endpoint(endpoint: str) -> str:
    """Prefix ``ws://`` unless the endpoint already names a WebSocket scheme."""
    if endpoint.startswith(("ws://", "wss://")):
        return endpoint
    return f"ws://{endpoint}"


class Client:
    """Request/response client for one CDP Logger endpoint.

    Must be used from a single running event loop. Nothing touches the network
    until ``connect()`` (or ``async with``).
    """

    def __init__(
        self,
        endpoint: str,
        auto_reconnect: bool = True,
        *,
        enable_time_sync: bool = True,
        codec: Codec | None = None,
        transport_factory: TransportFactory | None = None,
        retry_policy: RetryPolicy | None = None,
        max_reconnect_attempts: int | None = None,
        max_outstanding: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize client.

        Args:
            endpoint: "host:port" or a full ws:// / wss:// URL
            auto_reconnect: Reconnect whenever the connection closes
            enable_time_sync: Translate timestamps by the measured clock offset
            codec: Envelope codec (defaults to EnvelopeCodec)
            transport_factory: Builds the transport (defaults to WebSocketTransport)
            retry_policy: Reconnect delay policy (defaults to a fixed 1 second)
            max_reconnect_attempts: Stop reconnecting after this many failed attempts
            max_outstanding: Reject new requests while this many are pending
            clock: Wall clock in epoch seconds

        """
        self.endpoint = normalize_endpoint(endpoint)
        self.codec: Codec = codec or EnvelopeCodec()
        self.clock = clock
        self.registry = RequestRegistry(max_outstanding=max_outstanding)
        self.queue = RequestQueue()
        self.directory = NodeDirectory()
        self.connection = ConnectionManager(
            self.endpoint,
            self,
            auto_reconnect=auto_reconnect,
            transport_factory=transport_factory,
            retry_policy=retry_policy,
            max_reconnect_attempts=max_reconnect_attempts,
        )
        self.time_sync = TimeSynchronizer(
            self.registry,
            send=self._send_envelope,
            is_open=self.connection.is_open,
            clock=clock,
            on_cycle_complete=self._time_sync_finished,
            enabled=enable_time_sync,
        )
        self.node_ids = NodeIdResolver(self.directory, self.request_logged_nodes)
        self.sender_tags = SenderTagResolver(self._issue_sender_tags)
        self._flushed = False
        self._tasks: set[asyncio.Task[Any]] = set()

        self._senders: dict[MessageKind, Callable[[QueuedRequest], None]] = {
            MessageKind.VERSION_REQUEST: self._send_version_request,
            MessageKind.SIGNAL_INFO_REQUEST: self._send_signal_info_request,
            MessageKind.CRITERION_LIMITS_REQUEST: self._send_criterion_limits_request,
            MessageKind.SIGNAL_DATA_REQUEST: self._send_signal_data_request,
            MessageKind.EVENTS_REQUEST: self._send_events_request,
            MessageKind.COUNT_EVENTS_REQUEST: self._send_count_events_request,
            MessageKind.EVENT_SENDER_TAGS_REQUEST: self._send_event_sender_tags_request,
        }
        self._handlers: dict[MessageKind, Callable[[Any], None]] = {
            MessageKind.ERROR: self._handle_error,
            MessageKind.TIME_RESPONSE: self._handle_time_response,
            MessageKind.VERSION_RESPONSE: self._handle_version_response,
            MessageKind.SIGNAL_INFO_RESPONSE: self._handle_signal_info_response,
            MessageKind.CRITERION_LIMITS_RESPONSE: self._handle_criterion_limits_response,
            MessageKind.SIGNAL_DATA_RESPONSE: self._handle_signal_data_response,
            MessageKind.EVENTS_RESPONSE: self._handle_events_response,
            MessageKind.COUNT_EVENTS_RESPONSE: self._handle_count_events_response,
            MessageKind.EVENT_SENDER_TAGS_RESPONSE: self._handle_event_sender_tags_response,
        }

    # Lifecycle

    def connect(self) -> None:
        self.connection.connect()

    def disconnect(self) -> None:
        """Close the connection for good; outstanding requests fail with "Connection was closed"."""
        self.connection.disconnect()

    async def __aenter__(self) -> Client:
        self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.disconnect()

    @property
    def is_open(self) -> bool:
        return self.connection.is_open()

    @property
    def time_offset(self) -> float:
        """Client minus server clock, in seconds (0 while sync is disabled)."""
        return self.time_sync.offset if self.time_sync.enabled else 0.0

    def set_enable_time_sync(self, enabled: bool) -> None:
        self.time_sync.set_enabled(enabled)

    # Public requests

    def request_api_version(self) -> asyncio.Future[str]:
        return self._issue(MessageKind.VERSION_REQUEST)

    def request_logged_nodes(self) -> asyncio.Future[list[LoggedNode]]:
        return self._issue(MessageKind.SIGNAL_INFO_REQUEST)

    def request_log_limits(self) -> asyncio.Future[TimeRange]:
        return self._issue(MessageKind.CRITERION_LIMITS_REQUEST)

    def request_data_points(
        self,
        node_names: Sequence[str] | str,
        start: float,
        end: float,
        count: int,
    ) -> asyncio.Future[list[DataPoint]]:
        """Min/max/last values of ``node_names`` over ``[start, end]`` in at most ``count`` points.

        Raises:
            InvalidRequestError: If ``end < start``, ``count`` is negative, or no names are given

        """
        names = [node_names] if isinstance(node_names, str) else list(node_names)
        if not names:
            raise InvalidRequestError("at least one node name is required")
        if end < start:
            raise InvalidRequestError("end cannot be smaller than start")
        if count < 0:
            raise InvalidRequestError("count cannot be negative")
        return self._issue(MessageKind.SIGNAL_DATA_REQUEST, (tuple(names), float(start), float(end), int(count)))

    def request_events(self, query: EventQuery | Mapping[str, Any] | None = None) -> asyncio.Future[list[Event]]:
        """Events matching ``query``, each carrying its sender's tags.

        Raises:
            QueryValidationError: If the query has unknown fields or malformed values

        """
        return self._issue(MessageKind.EVENTS_REQUEST, (EventQuery.parse(query),))

    def count_events(self, query: EventQuery | Mapping[str, Any] | None = None) -> asyncio.Future[int]:
        return self._issue(MessageKind.COUNT_EVENTS_REQUEST, (EventQuery.parse(query),))

    def request_event_sender_tags(self, sender: str) -> asyncio.Future[SenderTags]:
        """Tags of ``sender``, served from the cache once fetched."""
        return self.sender_tags.tags_for(sender)

    def _issue_sender_tags(self, sender: str) -> asyncio.Future[SenderTags]:
        return self._issue(MessageKind.EVENT_SENDER_TAGS_REQUEST, (sender,))

    # Issue, queue and send

    def _issue(self, kind: MessageKind, params: tuple[Any, ...] = ()) -> asyncio.Future[Any]:
        self.registry.ensure_capacity()
        self.time_sync.maybe_resync()
        request_id = self.registry.allocate()
        future = self.registry.register(request_id)
        future.add_done_callback(lambda _done: self.queue.forget(request_id))
        request = QueuedRequest(request_id=request_id, kind=kind, params=params)

        if self._ready():
            self._dispatch(request)
        else:
            self.queue.enqueue(request)
            metrics.record_request_queued(kind.name.lower())
            logger.debug("Request queued", extra={"request_id": request_id, "kind": kind.name})
        return future

    def _ready(self) -> bool:
        return self._flushed and self.connection.is_open()

    def _flush_queue(self) -> None:
        self._flushed = True
        requests = self.queue.drain()
        if requests:
            logger.info("Sending queued requests", extra={"count": len(requests)})
        for request in requests:
            self._dispatch(request)

    def _dispatch(self, request: QueuedRequest) -> None:
        future = self.registry.get(request.request_id)
        if future is None or future.done():
            return
        try:
            self._senders[request.kind](request)
        except CDPLoggerError as e:
            self._fail_request(request.request_id, e)

    def _transmit(self, request: QueuedRequest, envelope: Envelope) -> None:
        if request.request_id not in self.registry:
            return
        if not self._ready():
            # Connection went away while a dependent lookup was running.
            self.queue.enqueue(request)
            return
        self.queue.mark_on_wire(request)
        self._send_envelope(envelope)

    def _send_envelope(self, envelope: Envelope) -> None:
        data = self.codec.encode(envelope)
        self.connection.send(data)
        metrics.record_request_sent(envelope.kind.name.lower())

    def _spawn(self, coro: Any, request_id: int) -> None:
        task = asyncio.create_task(coro, name=f"cdp-request-{request_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _fail_request(self, request_id: int, error: BaseException) -> None:
        if self.registry.fail(request_id, error):
            metrics.record_request_failure(type(error).__name__)

    def _send_version_request(self, request: QueuedRequest) -> None:
        self._transmit(request, Envelope.wrap(VersionRequest(request_id=request.request_id)))

    def _send_signal_info_request(self, request: QueuedRequest) -> None:
        self._transmit(request, Envelope.wrap(SignalInfoRequest(request_id=request.request_id)))

    def _send_criterion_limits_request(self, request: QueuedRequest) -> None:
        self._transmit(request, Envelope.wrap(CriterionLimitsRequest(request_id=request.request_id)))

    def _send_event_sender_tags_request(self, request: QueuedRequest) -> None:
        (sender,) = request.params
        body = EventSenderTagsRequest(request_id=request.request_id, senders=[sender])
        self._transmit(request, Envelope.wrap(body))

    def _send_events_request(self, request: QueuedRequest) -> None:
        (query,) = request.params
        query_message = query.to_message(self.time_sync.to_server, self.clock)
        body = EventsRequest(request_id=request.request_id, query=query_message)
        self._transmit(request, Envelope.wrap(body))

    def _send_count_events_request(self, request: QueuedRequest) -> None:
        (query,) = request.params
        query_message = query.to_message(self.time_sync.to_server, self.clock)
        body = CountEventsRequest(request_id=request.request_id, query=query_message)
        self._transmit(request, Envelope.wrap(body))

    def _send_signal_data_request(self, request: QueuedRequest) -> None:
        self._spawn(self._resolve_and_send_signal_data(request), request.request_id)

    async def _resolve_and_send_signal_data(self, request: QueuedRequest) -> None:
        names, start, end, count = request.params
        with correlation_context(request_correlation_id(request.request_id)):
            try:
                signal_ids = await self.node_ids.resolve(names)
                body = SignalDataRequest(
                    request_id=request.request_id,
                    signal_ids=signal_ids,
                    num_of_datapoints=count,
                    criterion_min=self.time_sync.to_server(start),
                    criterion_max=self.time_sync.to_server(end),
                )
                self._transmit(request, Envelope.wrap(body))
            except CDPLoggerError as e:
                logger.warning("Data point request failed", extra={"error": str(e)})
                self._fail_request(request.request_id, e)
            except Exception as e:
                logger.exception("Unexpected error sending data point request")
                self._fail_request(request.request_id, e)

    # ConnectionListener callbacks

    def connection_opened(self) -> None:
        self._flushed = False
        self.time_sync.mark_baseline()
        if not self.time_sync.start_cycle():
            self._flush_queue()

    @timed("frame_dispatch")
    def frame_received(self, data: bytes) -> None:
        received_at = self.clock()
        try:
            envelope = self.codec.decode(data)
        except MessageDecodeError as e:
            metrics.record_decode_error(e.reason)
            logger.warning("Dropping undecodable frame", extra={"reason": e.reason, "preview": e.data_preview.hex()})
            return

        handler = self._handlers.get(envelope.kind)
        if handler is None:
            logger.warning("Dropping unexpected message", extra={"kind": envelope.kind.name})
            return

        metrics.record_response(envelope.kind.name.lower())
        with correlation_context(request_correlation_id(envelope.request_id)):
            if envelope.kind is MessageKind.TIME_RESPONSE:
                self._handle_time_response(envelope.body, received_at)
            else:
                handler(envelope.body)

    def connection_failed(self, error: CDPConnectionError) -> None:
        self._flushed = False
        self.time_sync.reset(error)
        dropped = self.queue.discard()
        self.sender_tags.fail_waiters(error)
        failed = self.registry.fail_all(error)
        metrics.record_request_failure(type(error).__name__, failed)
        if failed or dropped:
            logger.warning(
                "Connection failure swept outstanding requests",
                extra={"failed": failed, "queued": len(dropped), "reason": error.reason},
            )

    def connection_interrupted(self) -> None:
        self._flushed = False
        self.time_sync.reset(CDPConnectionError("connection interrupted", "closed"))
        requeued = self.queue.requeue_on_wire()
        if requeued:
            logger.info("Requests will be re-sent after reconnect", extra={"count": requeued})

    def _time_sync_finished(self, succeeded: bool) -> None:
        if not self._flushed and self.connection.is_open():
            self._flush_queue()
        elif not succeeded:
            logger.debug("Time sync cycle ended without a new offset")

    # Response handlers

    def _settle(self, request_id: int, result: Any) -> None:
        if not self.registry.settle(request_id, result):
            metrics.record_dropped_response("late")
            logger.debug("Dropping response for unknown request", extra={"request_id": request_id})

    def _handle_error(self, body: ErrorResponse) -> None:
        error = RequestError(body.error_message, request_id=body.request_id, code=body.code)
        if self.time_sync.handle_error(body.request_id, error):
            return
        if body.request_id not in self.registry:
            metrics.record_dropped_response("error")
            logger.debug("Dropping error for unknown request", extra={"request_id": body.request_id})
            return
        logger.warning("Server rejected request", extra={"request_id": body.request_id, "error": body.error_message})
        self._fail_request(body.request_id, error)

    def _handle_time_response(self, body: TimeResponse, received_at: float | None = None) -> None:
        self.time_sync.handle_response(body, self.clock() if received_at is None else received_at)

    def _handle_version_response(self, body: VersionResponse) -> None:
        try:
            supported = float(body.version) >= MIN_API_VERSION
        except ValueError:
            supported = False
        if supported:
            self._settle(body.request_id, body.version)
        else:
            self._fail_request(body.request_id, VersionIncompatibleError(body.version, MIN_API_VERSION))

    def _handle_signal_info_response(self, body: SignalInfoResponse) -> None:
        nodes = []
        for index, name in enumerate(body.names):
            value_type = body.types[index] if index < len(body.types) else CDPValueType.DOUBLE
            try:
                value_type = CDPValueType(value_type)
            except ValueError:
                value_type = CDPValueType.DOUBLE
            tag_map = body.tag_maps[index] if index < len(body.tag_maps) else TagMap()
            nodes.append(
                LoggedNode(
                    name=name,
                    routing=body.paths[index] if index < len(body.paths) else "",
                    id=body.ids[index] if index < len(body.ids) else index,
                    value_type=value_type,
                    tags=tag_map.as_dict(),
                ),
            )
        self.directory.replace(nodes)
        logger.debug("Node directory replaced", extra={"nodes": len(nodes)})
        self._settle(body.request_id, nodes)

    def _handle_criterion_limits_response(self, body: CriterionLimitsResponse) -> None:
        limits = TimeRange(
            start=self.time_sync.to_client(body.criterion_min),
            end=self.time_sync.to_client(body.criterion_max),
        )
        self._settle(body.request_id, limits)

    def _handle_signal_data_response(self, body: SignalDataResponse) -> None:
        points = []
        for criterion, row in zip(body.criteria, body.rows, strict=False):
            values: dict[str, SignalValue] = {}
            for index, signal_id in enumerate(row.signal_ids):
                node = self.directory.node_for_id(signal_id)
                if node is None or index >= len(row.last_values):
                    continue
                values[node.name] = SignalValue(
                    min=value_from_variant(row.min_values[index], node.value_type),
                    max=value_from_variant(row.max_values[index], node.value_type),
                    last=value_from_variant(row.last_values[index], node.value_type),
                )
            points.append(DataPoint(timestamp=self.time_sync.to_client(criterion), value=values))
        self._settle(body.request_id, points)

    def _handle_count_events_response(self, body: CountEventsResponse) -> None:
        self._settle(body.request_id, body.count)

    def _handle_event_sender_tags_response(self, body: EventSenderTagsResponse) -> None:
        tags: SenderTags = {}
        for entry in body.sender_tags:
            if entry.tags is not None:
                tags.update(entry.tags.as_dict())
        self._settle(body.request_id, tags)

    def _handle_events_response(self, body: EventsResponse) -> None:
        if body.request_id not in self.registry:
            metrics.record_dropped_response("late")
            return
        # Answered; only the tag lookups may still be outstanding.
        self.queue.forget(body.request_id)
        events = [
            Event(
                id=info.id,
                sender=info.sender,
                code=info.code,
                status=info.status,
                timestamp=self.time_sync.to_client(info.timestamp_sec),
                logstamp=self.time_sync.to_client(info.logstamp_sec),
                data={entry.key: entry.value for entry in info.data},
            )
            for info in body.events
        ]
        self._spawn(self._enrich_and_settle(body.request_id, events), body.request_id)

    async def _enrich_and_settle(self, request_id: int, events: list[Event]) -> None:
        with correlation_context(request_correlation_id(request_id)):
            try:
                enriched = await self.sender_tags.enrich(events)
            except Exception as e:
                logger.exception("Unexpected error attaching sender tags")
                self._fail_request(request_id, e)
                return
            self._settle(request_id, enriched)
