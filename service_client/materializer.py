import enum
import io
from collections.abc import Callable
from typing import Any

from .serializers import Serializer
from .transport import TransportResponse


class ResultKind(enum.Enum):
    RESPONSE = "response"
    STREAM = "stream"
    TEXT = "text"
    BYTES = "bytes"
    DESERIALIZE = "deserialize"

    @classmethod
    def for_type(cls, response_type: Any) -> "ResultKind":
        if isinstance(response_type, cls):
            return response_type
        return _KIND_BY_TYPE.get(response_type, cls.DESERIALIZE)


_KIND_BY_TYPE = {
    TransportResponse: ResultKind.RESPONSE,
    io.BytesIO: ResultKind.STREAM,
    str: ResultKind.TEXT,
    bytes: ResultKind.BYTES,
}


class Materializer:
    """Turns an accumulated response body into the caller's declared type.

    The strategy is chosen once, when the call is dispatched.
    """

    def __init__(self, response_type: Any, serializer: Serializer):
        self.kind = ResultKind.for_type(response_type)
        self.response_type = response_type
        self.serializer = serializer
        self._strategy: Callable[[io.BytesIO], Any] = {
            ResultKind.RESPONSE: self._unsupported,
            ResultKind.STREAM: self._stream,
            ResultKind.TEXT: self._text,
            ResultKind.BYTES: self._bytes,
            ResultKind.DESERIALIZE: self._deserialize,
        }[self.kind]

    @property
    def reads_body(self) -> bool:
        return self.kind is not ResultKind.RESPONSE

    def __call__(self, body: io.BytesIO) -> Any:
        body.seek(0)
        return self._strategy(body)

    def deserialize_bytes(self, data: bytes) -> Any:
        """Typed payload of an error body; raw kinds get no typed payload."""
        if self.kind is not ResultKind.DESERIALIZE:
            return None
        return self.serializer.deserialize(self.response_type, io.BytesIO(data))

    def _unsupported(self, body: io.BytesIO) -> Any:
        raise TypeError("Raw responses are handed back before the body is read")

    def _stream(self, body: io.BytesIO) -> io.BytesIO:
        return body

    def _text(self, body: io.BytesIO) -> str:
        return body.getvalue().decode("utf-8-sig", errors="replace")

    def _bytes(self, body: io.BytesIO) -> bytes:
        return body.getvalue()

    def _deserialize(self, body: io.BytesIO) -> Any:
        return self.serializer.deserialize(self.response_type, body)
