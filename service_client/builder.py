import base64
from typing import Any

from .errors import ArgumentError
from .models import BODYLESS_METHODS, RequestDescriptor
from .serializers import Serializer

METHOD_OVERRIDE_HEADER = "X-HTTP-Method-Override"

def basic_auth_header(username: str | None, password: str | None) -> str:
    token = f"{username or ''}:{password or ''}".encode("utf-8")
    return "Basic " + base64.b64encode(token).decode("ascii")

def append_query_string(url: str, query_string: str) -> str:
    if not query_string:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{query_string}"

class RequestBuilder:
    def __init__(
        self,
        serializer: Serializer,
        content_type: str = "application/json",
        emulate_http_via_post: bool = False,
        always_send_basic_auth_header: bool = False,
        username: str | None = None,
        password: str | None = None,
        credentials: Any = None,
    ):
        self.serializer = serializer
        self.content_type = content_type
        self.emulate_http_via_post = emulate_http_via_post
        self.always_send_basic_auth_header = always_send_basic_auth_header
        self.username = username
        self.password = password
        self.credentials = credentials

    def build(self, method: str | None, url: str, payload: Any = None) -> RequestDescriptor:
        if not method:
            raise ArgumentError("method is required")
        verb = method.upper()

        if verb in BODYLESS_METHODS:
            if payload is not None:
                url = append_query_string(url, self.serializer.encode_query_string(payload))
            payload = None

        headers = {"Accept": f"{self.content_type}, */*"}
        wire_method = verb
        if self.emulate_http_via_post and verb not in ("GET", "POST"):
            wire_method = "POST"
            headers[METHOD_OVERRIDE_HEADER] = verb
        if payload is not None:
            headers["Content-Type"] = self.content_type
        if self.always_send_basic_auth_header:
            headers["Authorization"] = basic_auth_header(self.username, self.password)

        return RequestDescriptor(
            verb=verb,
            method=wire_method,
            url=url,
            content_type=self.content_type,
            headers=headers,
            payload=payload,
            credentials=self.credentials,
        )

    def with_basic_auth(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        """Replacement descriptor for the re-authentication attempt."""
        return descriptor.with_header("Authorization", basic_auth_header(self.username, self.password))
