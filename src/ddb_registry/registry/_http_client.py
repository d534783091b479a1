"""HTTP request dispatch and response classification for registry API calls."""

import json
import logging
import typing

import httpx
from httpx_retries import Retry, RetryTransport

from ddb_registry.config import DEFAULT_TIMEOUT
from ddb_registry.credentials import CredentialStore
from ddb_registry.exceptions import (
    NotFoundError,
    ServerError,
    TransportError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = (200, 201)

FormPart = tuple[str | None, str | bytes]


# -----------------------------------------------------------------------------
# Multipart bodies
# -----------------------------------------------------------------------------


def _form_part(value: typing.Any) -> FormPart | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return (None, "true" if value else "false")
    if isinstance(value, (bytes, bytearray)):
        return ("blob", bytes(value))
    return (None, str(value))


def build_multipart(
    body: typing.Mapping[str, typing.Any],
) -> list[tuple[str, FormPart]]:
    """Convert a request body into multipart form parts.

    Scalars become a single part; lists and tuples become one part per
    element under the same field name. ``None`` values are skipped and bytes
    are sent as file parts.
    """
    parts: list[tuple[str, FormPart]] = []
    for name, value in body.items():
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            part = _form_part(item)
            if part is not None:
                parts.append((name, part))
    return parts


# -----------------------------------------------------------------------------
# Response classification
#
# Evaluated top to bottom: status table, then HEAD acknowledgement, then the
# content type table, then the fallback.
# -----------------------------------------------------------------------------


def _content_type(response: httpx.Response) -> str:
    return response.headers.get("content-type", "")


def _is_json(content_type: str) -> bool:
    return "application/json" in content_type


def _is_text(content_type: str) -> bool:
    return "text/" in content_type


def parse_json_body(response: httpx.Response) -> typing.Any:
    try:
        return response.json()
    except ValueError as e:
        raise TransportError(f"Cannot parse response: {e}") from e


def _no_content(response: httpx.Response) -> bool:
    return True


def _unauthorized(response: httpx.Response) -> typing.NoReturn:
    if not _is_json(_content_type(response)):
        raise UnauthorizedError()

    data = parse_json_body(response)
    if not isinstance(data, dict):
        raise UnauthorizedError(json.dumps(data))

    extra = {k: v for k, v in data.items() if k != "error"}
    raise UnauthorizedError(data.get("error") or json.dumps(data), extra=extra)


def _not_found(response: httpx.Response) -> typing.NoReturn:
    raise NotFoundError()


def _classify_json(response: httpx.Response) -> typing.Any:
    data = parse_json_body(response)
    if isinstance(data, dict) and data.get("error"):
        raise ServerError(str(data["error"]), status_code=response.status_code)
    if response.status_code in SUCCESS_STATUSES:
        return data
    raise ServerError(
        f"Server responded with: {json.dumps(data)}",
        status_code=response.status_code,
    )


def _classify_text(response: httpx.Response) -> str:
    text = response.text
    if response.status_code in SUCCESS_STATUSES:
        return text
    raise ServerError(
        f"Server responded with: {text}", status_code=response.status_code
    )


def _classify_other(response: httpx.Response) -> typing.NoReturn:
    raise ServerError(
        f"Server responded with: {response.text}", status_code=response.status_code
    )


_STATUS_TABLE: dict[int, typing.Callable[[httpx.Response], typing.Any]] = {
    204: _no_content,
    401: _unauthorized,
    404: _not_found,
}

_CONTENT_TYPE_TABLE: list[
    tuple[typing.Callable[[str], bool], typing.Callable[[httpx.Response], typing.Any]]
] = [
    (_is_json, _classify_json),
    (_is_text, _classify_text),
]


def classify_response(response: httpx.Response, method: str = "GET") -> typing.Any:
    """Turn a registry response into a success value or raise the matching error.

    Returns:
        ``True`` for acknowledgements (204, or 200 to a HEAD request), the
        parsed JSON body, or the response text.

    Raises:
        UnauthorizedError: On 401.
        NotFoundError: On 404.
        ServerError: On any other failure status or error body.
        TransportError: If a JSON body cannot be parsed.
    """
    handler = _STATUS_TABLE.get(response.status_code)
    if handler is not None:
        return handler(response)

    if method.upper() == "HEAD" and response.status_code == 200:
        return True

    content_type = _content_type(response)
    for matches, handler in _CONTENT_TYPE_TABLE:
        if matches(content_type):
            return handler(response)

    return _classify_other(response)


# -----------------------------------------------------------------------------
# Dispatcher
# -----------------------------------------------------------------------------


class RequestDispatcher:
    """Sends requests to one registry and classifies the responses.

    The bearer token is looked up in the credential store on every call, so
    an expired token is never sent.
    """

    def __init__(
        self,
        url: str,
        credentials: CredentialStore,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = 0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.credentials = credentials
        self.timeout = timeout
        self.retries = retries
        self._transport = transport
        self._async_client: httpx.AsyncClient | None = None
        self.closed = False

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-initialized async HTTP client.

        Raises:
            TransportError: If the dispatcher has been closed.
        """
        if self.closed:
            raise TransportError(f"Client for {self.url} is closed")
        if self._async_client is None:
            transport = self._transport
            if transport is None and self.retries > 0:
                transport = RetryTransport(
                    retry=Retry(total=self.retries, backoff_factor=0.5)
                )
            self._async_client = httpx.AsyncClient(
                timeout=self.timeout, transport=transport
            )
        return self._async_client

    async def aclose(self) -> None:
        """Close the async HTTP client. The dispatcher cannot be used afterwards."""
        self.closed = True
        if self._async_client is not None:
            await self._async_client.aclose()
            self._async_client = None

    def auth_headers(self) -> dict[str, str]:
        token = self.credentials.get_token(self.url)
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    async def send(
        self,
        endpoint: str,
        method: str = "GET",
        body: typing.Mapping[str, typing.Any] | None = None,
        authenticate: bool = True,
    ) -> httpx.Response:
        """Send a request and return the raw response.

        The bearer token is attached unless ``authenticate`` is False.

        Raises:
            TransportError: If the request could not be completed.
        """
        files = build_multipart(body) if body else None
        logger.debug(f"{method} {self.url}{endpoint}")
        try:
            return await self.client.request(
                method,
                f"{self.url}{endpoint}",
                headers=self.auth_headers() if authenticate else {},
                files=files or None,
            )
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {endpoint} failed: {e}") from e

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        body: typing.Mapping[str, typing.Any] | None = None,
    ) -> typing.Any:
        """Send a request and return its classified result."""
        response = await self.send(endpoint, method, body)
        return classify_response(response, method)
