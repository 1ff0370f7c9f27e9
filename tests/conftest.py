import asyncio
from typing import Any

import httpx
import pytest

from service_client.errors import RequestAbortedError
from service_client.transport import RequestBodyStream, TransportRequest, TransportResponse


def make_response(
    status_code: int,
    body: bytes | str = b"",
    reason: str | None = None,
    headers: dict[str, str] | None = None,
    url: str = "https://api.example.com/",
) -> httpx.Response:
    if isinstance(body, str):
        body = body.encode("utf-8")
    extensions = {"reason_phrase": reason.encode("ascii")} if reason else {}
    return httpx.Response(
        status_code,
        content=body,
        headers=headers,
        extensions=extensions,
        request=httpx.Request("GET", url),
    )


class FakeTransport:
    """In-memory transport answering header reads from a script.

    Each entry of ``script`` is either an ``httpx.Response`` or an exception
    to raise from ``read_headers``.
    """

    def __init__(self, *script: httpx.Response | BaseException):
        self.script = list(script)
        self.opened: list[TransportRequest] = []
        self.sent: list[TransportRequest] = []
        self.bodies: list[bytes | None] = []
        self.aborted: list[TransportRequest] = []
        self.closed: list[TransportResponse] = []
        self.read_sizes: list[int] = []
        self.write_error: BaseException | None = None
        self.header_gate: asyncio.Event | None = None
        self.body_error: BaseException | None = None
        self.close_error: BaseException | None = None
        self._offsets: dict[int, int] = {}

    def open(self, url: str) -> TransportRequest:
        request = TransportRequest(url)
        self.opened.append(request)
        return request

    async def write_body(self, request: TransportRequest) -> RequestBodyStream:
        if self.write_error is not None:
            raise self.write_error
        return RequestBodyStream(request)

    async def read_headers(self, request: TransportRequest) -> TransportResponse:
        self.sent.append(request)
        self.bodies.append(request.content)
        if self.header_gate is not None:
            await self.header_gate.wait()
        if request.aborted:
            raise RequestAbortedError(request.url)
        outcome = self.script.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome.is_error:
            outcome.raise_for_status()
        return TransportResponse(outcome)

    async def read_body(self, response: TransportResponse, buffer: bytearray) -> int:
        if self.body_error is not None:
            raise self.body_error
        self.read_sizes.append(len(buffer))
        content = response.raw.content
        offset = self._offsets.get(id(response), 0)
        chunk = content[offset : offset + len(buffer)]
        self._offsets[id(response)] = offset + len(chunk)
        buffer[: len(chunk)] = chunk
        return len(chunk)

    async def close_response(self, response: TransportResponse) -> None:
        self.closed.append(response)
        if self.close_error is not None:
            raise self.close_error

    def abort(self, request: TransportRequest) -> None:
        request.aborted = True
        self.aborted.append(request)

    async def close(self) -> None:
        pass


class Recorder:
    """Collects continuation calls and signals the first one."""

    def __init__(self):
        self.successes: list[Any] = []
        self.errors: list[tuple[Any, BaseException]] = []
        self.done = asyncio.Event()

    def on_success(self, result: Any) -> None:
        self.successes.append(result)
        self.done.set()

    def on_error(self, result: Any, error: BaseException) -> None:
        self.errors.append((result, error))
        self.done.set()

    async def wait(self, timeout: float = 1.0) -> None:
        await asyncio.wait_for(self.done.wait(), timeout)
        # let any stray late completion surface before assertions
        await asyncio.sleep(0.01)

    @property
    def calls(self) -> int:
        return len(self.successes) + len(self.errors)

    @property
    def error(self) -> BaseException:
        assert len(self.errors) == 1
        return self.errors[0][1]


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("BASE_URI", "TIMEOUT", "BUFFER_SIZE", "USERNAME", "PASSWORD", "STORE_COOKIES"):
        monkeypatch.delenv(f"SERVICE_CLIENT_{key}", raising=False)
