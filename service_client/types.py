from collections.abc import Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .transport import TransportRequest, TransportResponse

RequestFilter = Callable[["TransportRequest"], None]
ResponseFilter = Callable[["TransportResponse"], None]

SuccessCallback = Callable[[Any], None]
ErrorCallback = Callable[[Any, BaseException], None]
