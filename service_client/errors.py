import logging
import ssl
from collections.abc import Callable
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class ServiceClientError(Exception):
    """Base class for errors raised by the service client."""


class ArgumentError(ServiceClientError, ValueError):
    pass


class TransportError(ServiceClientError):
    pass


class RequestAbortedError(TransportError):
    def __init__(self, url: str, message: str = "Request was aborted"):
        super().__init__(f"{message}: {url}")
        self.url = url


class RequestTimeoutError(RequestAbortedError):
    def __init__(self, url: str, timeout: float):
        super().__init__(url, f"Request timed out after {timeout}s")
        self.timeout = timeout


class AuthenticationError(ServiceClientError):
    def __init__(self, url: str, cause: BaseException):
        super().__init__(f"Authentication failed for {url}: {cause}")
        self.url = url
        self.__cause__ = cause


class ProtocolError(ServiceClientError):
    """Remote endpoint answered with a non-success status."""

    def __init__(
        self,
        status_description: str,
        status_code: int,
        response_body: str | None = None,
        response_dto: Any = None,
    ):
        super().__init__(status_description)
        self.status_code = status_code
        self.status_description = status_description
        self.response_body = response_body
        self.response_dto = response_dto


def should_authenticate(exc: BaseException, username: str | None, password: str | None) -> bool:
    """True when the server challenged for credentials and we have some to offer."""
    if username is None or password is None:
        return False
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 401


def is_authentication_failure(exc: BaseException) -> bool:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, (ssl.SSLError, AuthenticationError)):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return False


def classify(
    exc: BaseException,
    url: str,
    deserialize: Callable[[bytes], Any],
) -> tuple[Any, BaseException]:
    """Map a send/receive failure to ``(typed_payload, error)``.

    ``deserialize`` turns the raw error body into the caller's declared
    response type. It may raise; the status code survives either way.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        description = response.reason_phrase or httpx.codes.get_reason_phrase(response.status_code)
        logger.error(f"Protocol error from {url}: {exc}")
        logger.debug(f"Status Code : {response.status_code}")
        logger.debug(f"Status Description : {description}")

        body = None
        try:
            body = response.content.decode("utf-8", errors="replace")
            dto = deserialize(response.content)
        except Exception as inner:
            logger.debug(f"Error reading error response body: {inner}", exc_info=inner)
            error = ProtocolError(description, response.status_code, response_body=body)
            error.__cause__ = inner
            return None, error
        return dto, ProtocolError(description, response.status_code, body, dto)

    if is_authentication_failure(exc):
        if isinstance(exc, AuthenticationError):
            return None, exc
        error = AuthenticationError(url, exc)
        logger.debug(f"Authentication failure: {error}", exc_info=exc)
        return None, error

    logger.debug(f"Exception reading response: {exc}", exc_info=exc)
    return None, exc
