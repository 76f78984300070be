"""Transport layer: WebSocket connection, lifecycle management and reconnect policy."""

from cdp_logger.transport.connection_manager import ConnectionListener, ConnectionManager, ConnectionState
from cdp_logger.transport.exceptions import CDPConnectionError
from cdp_logger.transport.retry_policy import RetryPolicy
from cdp_logger.transport.websocket import Transport, TransportHandler, WebSocketTransport

__all__ = [
    "CDPConnectionError",
    "ConnectionListener",
    "ConnectionManager",
    "ConnectionState",
    "RetryPolicy",
    "Transport",
    "TransportHandler",
    "WebSocketTransport",
]
