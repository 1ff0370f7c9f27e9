from dataclasses import dataclass

from .transport import TransportRequest, TransportResponse
from .types import RequestFilter, ResponseFilter



@dataclass
class FilterRegistry:
    """Hook slots invoked right before send and right after response headers.

    Response filters must not consume the body.
    """

    request_filter: RequestFilter | None = None
    response_filter: ResponseFilter | None = None

    def clear(self) -> None:
        self.request_filter = None
        self.response_filter = None


# Process-wide hooks. Clients read this at dispatch time unless given their own.
global_filters = FilterRegistry()


@dataclass
class FilterChain:
    local: FilterRegistry
    shared: FilterRegistry

    def apply_request(self, request: TransportRequest) -> None:
        if self.local.request_filter is not None:
            self.local.request_filter(request)
        if self.shared.request_filter is not None:
            self.shared.request_filter(request)

    def apply_response(self, response: TransportResponse) -> None:
        if self.shared.response_filter is not None:
            self.shared.response_filter(response)
        if self.local.response_filter is not None:
            self.local.response_filter(response)
