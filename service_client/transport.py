import io
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import IO, Any, Protocol

import httpx

from .errors import RequestAbortedError

logger = logging.getLogger(__name__)


@dataclass
class PoolLimits:
    max_connections: int = 100
    max_keepalive: int = 20
    keepalive_expiry: float = 30.0

    def to_httpx_limits(self) -> httpx.Limits:
        return httpx.Limits(
            max_connections=self.max_connections,
            max_keepalive_connections=self.max_keepalive,
            keepalive_expiry=self.keepalive_expiry,
        )


class TransportRequest:
    """Mutable outbound request handle. Request filters may change any field."""

    def __init__(self, url: str):
        self.url = url
        self.method = "GET"
        self.headers = httpx.Headers()
        self.content: bytes | None = None
        self.credentials: httpx.Auth | None = None
        self.cookies: httpx.Cookies | None = None
        self.aborted = False

    def __repr__(self) -> str:
        return f"<TransportRequest [{self.method} {self.url}]>"


class TransportResponse:
    """Response handle available once headers have arrived."""

    def __init__(self, raw: httpx.Response):
        self.raw = raw
        self._chunks: AsyncIterator[bytes] | None = None

    @property
    def status_code(self) -> int:
        return self.raw.status_code

    @property
    def reason_phrase(self) -> str:
        return self.raw.reason_phrase

    @property
    def headers(self) -> httpx.Headers:
        return self.raw.headers

    @property
    def is_closed(self) -> bool:
        return self.raw.is_closed

    def __repr__(self) -> str:
        return f"<TransportResponse [{self.status_code} {self.reason_phrase}]>"


class RequestBodyStream(io.BytesIO):
    """Writable request body. Closing it commits the bytes to the request."""

    def __init__(self, request: TransportRequest):
        super().__init__()
        self._request = request

    def close(self) -> None:
        if not self.closed:
            self._request.content = self.getvalue()
        super().close()


class Transport(Protocol):
    def open(self, url: str) -> TransportRequest: ...

    async def write_body(self, request: TransportRequest) -> IO[bytes]: ...

    async def read_headers(self, request: TransportRequest) -> TransportResponse: ...

    async def read_body(self, response: TransportResponse, buffer: bytearray) -> int: ...

    async def close_response(self, response: TransportResponse) -> None: ...

    def abort(self, request: TransportRequest) -> None: ...

    async def close(self) -> None: ...


class HttpxTransport:
    """Transport over a lazily created ``httpx.AsyncClient``.

    Error statuses are raised as ``httpx.HTTPStatusError`` with the body
    already read, so the error response stays inspectable after the
    connection is released.
    """

    def __init__(
        self,
        pool_limits: PoolLimits | None = None,
        verify: Any = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._pool_limits = pool_limits or PoolLimits()
        self._verify = verify
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                limits=self._pool_limits.to_httpx_limits(),
                verify=self._verify,
                transport=self._transport,
                follow_redirects=True,
                # calls carry their own cancellation timer
                timeout=None,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "HttpxTransport":
        await self._ensure_client()
        return self

    async def __aexit__(self, *_args: Any) -> None:
        await self.close()

    def open(self, url: str) -> TransportRequest:
        return TransportRequest(url)

    def _check_open(self, request: TransportRequest) -> None:
        if request.aborted:
            raise RequestAbortedError(request.url)

    async def write_body(self, request: TransportRequest) -> IO[bytes]:
        self._check_open(request)
        return RequestBodyStream(request)

    async def read_headers(self, request: TransportRequest) -> TransportResponse:
        self._check_open(request)
        client = await self._ensure_client()
        http_request = client.build_request(
            method=request.method,
            url=request.url,
            headers=request.headers,
            content=request.content,
        )
        if request.cookies is not None:
            request.cookies.set_cookie_header(http_request)

        auth = request.credentials if request.credentials is not None else httpx.USE_CLIENT_DEFAULT
        response = await client.send(http_request, auth=auth, stream=True)
        # Cookies only persist through the jar attached to the request.
        client.cookies.clear()
        if request.cookies is not None:
            request.cookies.extract_cookies(response)

        if response.is_error:
            try:
                await response.aread()
            finally:
                await response.aclose()
            response.raise_for_status()
        return TransportResponse(response)

    async def read_body(self, response: TransportResponse, buffer: bytearray) -> int:
        if response._chunks is None:
            response._chunks = response.raw.aiter_bytes(chunk_size=len(buffer))
        chunk = await anext(response._chunks, b"")
        read = len(chunk)
        buffer[:read] = chunk
        return read

    async def close_response(self, response: TransportResponse) -> None:
        await response.raw.aclose()

    def abort(self, request: TransportRequest) -> None:
        logger.debug(f"Aborting {request!r}")
        request.aborted = True
