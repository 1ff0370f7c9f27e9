"""Asynchronous service client core."""

from .builder import RequestBuilder, basic_auth_header
from .client import AsyncServiceClient
from .config import ClientSettings
from .errors import (
    ArgumentError,
    AuthenticationError,
    ProtocolError,
    RequestAbortedError,
    RequestTimeoutError,
    ServiceClientError,
    TransportError,
)
from .filters import FilterRegistry, global_filters
from .log import configure_logging
from .materializer import Materializer, ResultKind
from .models import RequestDescriptor
from .serializers import JsonSerializer, Serializer
from .state import AsyncState, CallState, CancellationHandle
from .transport import (
    HttpxTransport,
    PoolLimits,
    Transport,
    TransportRequest,
    TransportResponse,
)
from .types import ErrorCallback, RequestFilter, ResponseFilter, SuccessCallback

__all__ = [
    "AsyncServiceClient",
    "ClientSettings",
    "RequestBuilder",
    "RequestDescriptor",
    "basic_auth_header",
    "FilterRegistry",
    "global_filters",
    "configure_logging",
    "Materializer",
    "ResultKind",
    "JsonSerializer",
    "Serializer",
    "AsyncState",
    "CallState",
    "CancellationHandle",
    "Transport",
    "TransportRequest",
    "TransportResponse",
    "HttpxTransport",
    "PoolLimits",
    "RequestFilter",
    "ResponseFilter",
    "SuccessCallback",
    "ErrorCallback",
    "ServiceClientError",
    "ArgumentError",
    "TransportError",
    "RequestAbortedError",
    "RequestTimeoutError",
    "AuthenticationError",
    "ProtocolError",
]
