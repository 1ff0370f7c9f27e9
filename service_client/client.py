import asyncio
import functools
import logging
from typing import Any

import httpx

from .builder import RequestBuilder
from .config import ClientSettings
from .errors import (
    ArgumentError,
    RequestAbortedError,
    RequestTimeoutError,
    classify,
    should_authenticate,
)
from .filters import FilterChain, FilterRegistry, global_filters
from .log import call_id_var
from .materializer import Materializer
from .models import RequestDescriptor
from .serializers import JsonSerializer, Serializer
from .state import AsyncState, CallState, CancellationHandle
from .transport import HttpxTransport, Transport, TransportRequest, TransportResponse
from .types import ErrorCallback, RequestFilter, ResponseFilter, SuccessCallback

logger = logging.getLogger(__name__)


def _pick(value: Any, default: Any) -> Any:
    return default if value is None else value


def _resolve(future: asyncio.Future, result: Any, error: BaseException | None) -> None:
    if future.done():
        return
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(result)


class AsyncServiceClient:
    """Dispatches typed calls and reports each outcome to a continuation.

    Configuration is read at dispatch time and should not change while a
    call is in flight.
    """

    def __init__(
        self,
        base_uri: str | None = None,
        *,
        settings: ClientSettings | None = None,
        transport: Transport | None = None,
        serializer: Serializer | None = None,
        content_type: str | None = None,
        timeout: float | None = None,
        buffer_size: int | None = None,
        emulate_http_via_post: bool | None = None,
        always_send_basic_auth_header: bool | None = None,
        store_cookies: bool | None = None,
        cookie_jar: httpx.Cookies | None = None,
        username: str | None = None,
        password: str | None = None,
        credentials: httpx.Auth | None = None,
        request_filter: RequestFilter | None = None,
        response_filter: ResponseFilter | None = None,
        shared_filters: FilterRegistry | None = None,
        on_authentication_required: RequestFilter | None = None,
        callback_loop: asyncio.AbstractEventLoop | None = None,
    ):
        settings = settings or ClientSettings()
        self.base_uri = _pick(base_uri, settings.BASE_URI)
        self.transport: Transport = transport or HttpxTransport()
        self.serializer: Serializer = serializer or JsonSerializer()
        self.content_type = _pick(content_type, settings.CONTENT_TYPE)
        self.timeout = _pick(timeout, settings.TIMEOUT)
        self.buffer_size = _pick(buffer_size, settings.BUFFER_SIZE)
        self.emulate_http_via_post = _pick(emulate_http_via_post, settings.EMULATE_HTTP_VIA_POST)
        self.always_send_basic_auth_header = _pick(
            always_send_basic_auth_header, settings.ALWAYS_SEND_BASIC_AUTH_HEADER
        )
        self.store_cookies = _pick(store_cookies, settings.STORE_COOKIES)
        self.cookie_jar = cookie_jar if cookie_jar is not None else httpx.Cookies()
        self.username = _pick(username, settings.USERNAME)
        self.password = _pick(password, settings.PASSWORD)
        self.credentials = credentials
        self.filters = FilterRegistry(request_filter, response_filter)
        self.shared_filters = shared_filters if shared_filters is not None else global_filters
        self.on_authentication_required = on_authentication_required
        self.callback_loop = callback_loop
        self._pending: CancellationHandle | None = None

        if self.timeout <= 0:
            raise ArgumentError(f"timeout must be positive, got {self.timeout}")
        if self.buffer_size <= 0:
            raise ArgumentError(f"buffer_size must be positive, got {self.buffer_size}")

    def set_credentials(self, username: str | None, password: str | None) -> None:
        self.username = username
        self.password = password

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> "AsyncServiceClient":
        return self

    async def __aexit__(self, *_args: Any) -> None:
        await self.close()

    def _builder(self) -> RequestBuilder:
        return RequestBuilder(
            self.serializer,
            content_type=self.content_type,
            emulate_http_via_post=self.emulate_http_via_post,
            always_send_basic_auth_header=self.always_send_basic_auth_header,
            username=self.username,
            password=self.password,
            credentials=self.credentials,
        )

    def _filter_chain(self) -> FilterChain:
        return FilterChain(local=self.filters, shared=self.shared_filters)

    def _resolve_url(self, url: str) -> str:
        if not self.base_uri or "://" in url:
            return url
        return f"{self.base_uri.rstrip('/')}/{url.lstrip('/')}"

    def _open(self, descriptor: RequestDescriptor) -> TransportRequest:
        request = self.transport.open(descriptor.url)
        request.method = descriptor.method
        request.headers.update(descriptor.headers)
        if descriptor.credentials is not None:
            request.credentials = descriptor.credentials
        if self.store_cookies:
            request.cookies = self.cookie_jar
        return request

    def dispatch(
        self,
        method: str | None,
        url: str,
        payload: Any,
        on_success: SuccessCallback,
        on_error: ErrorCallback,
        response_type: Any = Any,
    ) -> CancellationHandle:
        """Start one call and return the handle that cancels it.

        Exactly one of ``on_success(result)`` or ``on_error(result, error)``
        is invoked. Must be called from a running event loop.
        """
        descriptor = self._builder().build(method, self._resolve_url(url), payload)
        loop = asyncio.get_running_loop()

        state = AsyncState(
            descriptor=descriptor,
            transport_request=self._open(descriptor),
            materializer=Materializer(response_type, self.serializer),
            on_success=on_success,
            on_error=on_error,
            buffer_size=self.buffer_size,
            callback_loop=self.callback_loop,
        )
        handle = CancellationHandle(state, functools.partial(self._abort, state), loop)
        state.on_release = functools.partial(self._clear_pending, handle)
        state.start_timer(loop, self.timeout, functools.partial(self._abort, state, self.timeout))
        self._pending = handle

        state.task = loop.create_task(self._run(state), name=f"service-client-{state.call_id}")
        state.task.add_done_callback(functools.partial(self._on_task_done, state))
        logger.debug(f"Dispatched call {state.call_id}: {descriptor.verb} {descriptor.url}")
        return handle

    def cancel(self, handle: CancellationHandle | None = None) -> None:
        """Cancel ``handle``, or the most recent call still pending."""
        handle = handle or self._pending
        if handle is not None:
            handle.cancel()

    def _clear_pending(self, handle: CancellationHandle) -> None:
        if self._pending is handle:
            self._pending = None

    def _abort(self, state: AsyncState, timeout: float | None = None) -> None:
        if state.completed or state.abort_error is not None:
            return
        if timeout is not None:
            state.abort_error = RequestTimeoutError(state.url, timeout)
        else:
            state.abort_error = RequestAbortedError(state.url)
        logger.debug(f"Aborting call {state.call_id}: {state.abort_error}")
        self.transport.abort(state.transport_request)
        if state.task is not None and not state.task.done():
            state.task.cancel()

    def _on_task_done(self, state: AsyncState, task: asyncio.Task) -> None:
        # Covers a task cancelled before its first step, which never enters _run.
        if task.cancelled():
            state.fail(None, state.abort_error or RequestAbortedError(state.url))
            return
        error = task.exception()
        if error is not None and not state.fail(None, error):
            logger.debug(f"Call {state.call_id} finished with {error!r} after completing")

    async def _run(self, state: AsyncState) -> None:
        call_id_var.set(state.call_id)
        try:
            await self._submit(state)
        except asyncio.CancelledError:
            if state.abort_error is None:
                raise
            task = asyncio.current_task()
            if task is not None:
                task.uncancel()
            self._handle_error(state, state.abort_error)
        finally:
            state.release()

    async def _submit(self, state: AsyncState) -> None:
        try:
            self._filter_chain().apply_request(state.transport_request)
        except Exception as ex:
            self._handle_error(state, ex)
            return
        await self._transmit(state)

    async def _transmit(self, state: AsyncState) -> None:
        if state.descriptor.has_body:
            if not state.transition(CallState.SENDING):
                return
            try:
                stream = await self.transport.write_body(state.transport_request)
                try:
                    self.serializer.serialize(state.descriptor.payload, stream)
                finally:
                    stream.close()
            except Exception as ex:
                # body-write failures never reach the retry gate
                self._handle_error(state, ex)
                return
        await self._receive(state)

    async def _receive(self, state: AsyncState) -> None:
        if not state.transition(CallState.AWAITING_HEADERS):
            return
        try:
            state.response = await self.transport.read_headers(state.transport_request)
            self._filter_chain().apply_response(state.response)
        except Exception as ex:
            if state.response is not None:
                await self._release_response(state.response)
                state.response = None
            if state.register_attempt() and should_authenticate(ex, self.username, self.password):
                await self._reauthenticate(state, ex)
                return
            self._handle_error(state, ex)
            return

        if not state.materializer.reads_body:
            state.succeed(state.response)
            return
        await self._read_body(state)

    async def _reauthenticate(self, state: AsyncState, cause: Exception) -> None:
        try:
            descriptor = self._builder().with_basic_auth(state.descriptor)
            request = self._open(descriptor)
            if self.on_authentication_required is not None:
                self.on_authentication_required(request)
            self._filter_chain().apply_request(request)
        except Exception as ex:
            logger.debug(f"Could not rebuild request for re-authentication: {ex}", exc_info=ex)
            self._handle_error(state, cause)
            return

        state.descriptor = descriptor
        state.transport_request = request
        logger.info(f"Authentication required for {state.url}, resending call {state.call_id} with credentials")
        await self._transmit(state)

    async def _read_body(self, state: AsyncState) -> None:
        response = state.response
        try:
            if not state.transition(CallState.RECEIVING_BODY):
                return
            while True:
                read = await self.transport.read_body(response, state.buffer)
                if read <= 0:
                    break
                state.body.write(state.buffer[:read])

            if not state.transition(CallState.MATERIALIZING):
                return
            try:
                result = state.materializer(state.body)
            except Exception as ex:
                logger.debug(f"Error materializing response: {ex}", exc_info=ex)
                state.fail(None, ex)
            else:
                state.succeed(result)
        except Exception as ex:
            self._handle_error(state, ex)
        finally:
            await self._release_response(response)

    async def _release_response(self, response: TransportResponse) -> None:
        try:
            await self.transport.close_response(response)
        except Exception as ex:
            logger.debug(f"Error closing response {response!r}: {ex}", exc_info=ex)

    def _handle_error(self, state: AsyncState, exc: BaseException) -> None:
        if state.completed:
            logger.debug(f"Call {state.call_id} already completed, dropping {exc!r}")
            return
        result, error = classify(exc, state.url, state.materializer.deserialize_bytes)
        state.fail(result, error)

    async def send(self, method: str, url: str, payload: Any = None, response_type: Any = Any) -> Any:
        """Awaitable form of :meth:`dispatch`; raises the classified error."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def on_success(result: Any) -> None:
            loop.call_soon_threadsafe(_resolve, future, result, None)

        def on_error(_result: Any, error: BaseException) -> None:
            loop.call_soon_threadsafe(_resolve, future, None, error)

        handle = self.dispatch(method, url, payload, on_success, on_error, response_type)
        try:
            return await future
        except asyncio.CancelledError:
            handle.cancel()
            raise

    async def get(self, url: str, **kwargs: Any) -> Any:
        return await self.send("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> Any:
        return await self.send("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> Any:
        return await self.send("PUT", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> Any:
        return await self.send("DELETE", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> Any:
        return await self.send("PATCH", url, **kwargs)
