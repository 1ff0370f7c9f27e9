import asyncio
import enum
import io
import logging
from collections.abc import Callable
from typing import Any

from .log import call_id_generator
from .materializer import Materializer
from .models import RequestDescriptor
from .transport import TransportRequest, TransportResponse
from .types import ErrorCallback, SuccessCallback

logger = logging.getLogger(__name__)


class CallState(enum.Enum):
    CREATED = "created"
    SENDING = "sending"
    AWAITING_HEADERS = "awaiting_headers"
    RECEIVING_BODY = "receiving_body"
    MATERIALIZING = "materializing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (CallState.SUCCEEDED, CallState.FAILED)


class AsyncState:
    """Mutable state of one dispatched call.

    Owned by the call's task until the first terminal outcome. The success
    and error continuations are mutually exclusive and fire at most once.
    """

    def __init__(
        self,
        descriptor: RequestDescriptor,
        transport_request: TransportRequest,
        materializer: Materializer,
        on_success: SuccessCallback,
        on_error: ErrorCallback,
        buffer_size: int,
        callback_loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.call_id = call_id_generator()
        self.descriptor = descriptor
        self.transport_request = transport_request
        self.response: TransportResponse | None = None
        self.materializer = materializer
        self.on_success = on_success
        self.on_error = on_error
        self.callback_loop = callback_loop

        self.body = io.BytesIO()
        self.buffer = bytearray(buffer_size)
        self.request_count = 0
        self.state = CallState.CREATED

        self.task: asyncio.Task | None = None
        self.timer: asyncio.TimerHandle | None = None
        self.abort_error: BaseException | None = None
        self.on_release: Callable[[], None] | None = None

    @property
    def url(self) -> str:
        return self.transport_request.url

    @property
    def completed(self) -> bool:
        return self.state.is_terminal

    def transition(self, new_state: CallState) -> bool:
        if self.completed:
            logger.debug(f"Call {self.call_id} already {self.state.value}, ignoring {new_state.value}")
            return False
        logger.debug(f"Call {self.call_id}: {self.state.value} -> {new_state.value}")
        self.state = new_state
        return True

    def register_attempt(self) -> bool:
        """Count a failed header read; True only for the first one."""
        self.request_count += 1
        return self.request_count == 1

    def start_timer(self, loop: asyncio.AbstractEventLoop, timeout: float, on_timeout: Callable[[], None]) -> None:
        self.timer = loop.call_later(timeout, on_timeout)

    def release(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        if self.on_release is not None:
            on_release, self.on_release = self.on_release, None
            on_release()

    def succeed(self, result: Any) -> bool:
        if not self._finish(CallState.SUCCEEDED):
            return False
        self._deliver(self.on_success, result)
        return True

    def fail(self, result: Any, error: BaseException) -> bool:
        if not self._finish(CallState.FAILED):
            return False
        self._deliver(self.on_error, result, error)
        return True

    def _finish(self, state: CallState) -> bool:
        if not self.transition(state):
            return False
        self.release()
        return True

    def _deliver(self, callback: Callable[..., None], *args: Any) -> None:
        if self.callback_loop is not None:
            self.callback_loop.call_soon_threadsafe(self._invoke, callback, *args)
        else:
            self._invoke(callback, *args)

    def _invoke(self, callback: Callable[..., None], *args: Any) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception(f"Continuation for call {self.call_id} raised")


class CancellationHandle:
    """Aborts one dispatched call. Idempotent and safe after completion."""

    def __init__(self, state: AsyncState, abort: Callable[[], None], loop: asyncio.AbstractEventLoop):
        self._state = state
        self._abort = abort
        self._loop = loop

    @property
    def call_id(self) -> str:
        return self._state.call_id

    @property
    def done(self) -> bool:
        return self._state.completed

    def cancel(self) -> None:
        if self._state.completed:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._abort()
        else:
            self._loop.call_soon_threadsafe(self._abort)

    def __repr__(self) -> str:
        return f"<CancellationHandle {self.call_id} {self._state.state.value}>"
