from dataclasses import dataclass, field, replace
from typing import Any

BODYLESS_METHODS = frozenset({"GET", "DELETE", "HEAD"})


@dataclass(frozen=True)
class RequestDescriptor:
    """Outbound request as configured by the builder.

    ``verb`` is the caller's method, ``method`` is what goes on the wire
    (they differ when verbs are emulated via POST).
    """

    verb: str
    method: str
    url: str
    content_type: str
    headers: dict[str, str] = field(default_factory=dict)
    payload: Any = None
    credentials: Any = None

    @property
    def has_body(self) -> bool:
        return self.verb not in BODYLESS_METHODS and self.payload is not None

    def with_header(self, name: str, value: str) -> "RequestDescriptor":
        return replace(self, headers={**self.headers, name: value})
