"""Asyncio REST client for the Discord API with per-route and global rate limiting."""

from snowtransfer.client import SnowTransfer
from snowtransfer.config import ClientOptions
from snowtransfer.dispatcher import DispatcherConfig, RequestDispatcher
from snowtransfer.errors import (
    ClientError,
    MalformedResponse,
    NetworkError,
    RateLimitExceeded,
    RequestCancelled,
    RequestTimeout,
    ServerError,
    SnowTransferError,
)
from snowtransfer.transport import AiohttpTransport, Transport, TransportResponse
from snowtransfer.types import (
    Attachment,
    CancellationToken,
    RequestHandle,
    RequestOptions,
    RequestState,
    RouteDescriptor,
)

__version__ = "1.0.0"

__all__ = [
    "AiohttpTransport",
    "Attachment",
    "CancellationToken",
    "ClientError",
    "ClientOptions",
    "DispatcherConfig",
    "MalformedResponse",
    "NetworkError",
    "RateLimitExceeded",
    "RequestCancelled",
    "RequestDispatcher",
    "RequestHandle",
    "RequestOptions",
    "RequestState",
    "RequestTimeout",
    "RouteDescriptor",
    "ServerError",
    "SnowTransfer",
    "SnowTransferError",
    "Transport",
    "TransportResponse",
]
