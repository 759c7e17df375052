"""Executor - Sends one JSON request and captures the response.

The RequestExecutor encodes a RequestDescription body as JSON, sends it with
httpx, reads the whole response into memory and returns a ResponseDescription.
Request and response bodies can be written to the debug log, truncated to a
configurable number of characters.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import re
from typing import Any

import httpx
from pydantic import BaseModel

from httpoison.models import ExecutorConfig, RequestDescription, ResponseDescription


class ExecutorError(Exception):
    """Base class for executor errors."""


class EncodingError(ExecutorError):
    """Raised when the request body has no JSON representation.

    Always raised before any network I/O is attempted.
    """


class TransportError(ExecutorError):
    """Raised when building, sending or reading the request fails."""


DEFAULT_METHOD = "GET"
JSON_CONTENT_TYPE = "application/json"

_SUPPORTED_SCHEMES = ("http", "https")

# RFC 7230 token characters
_METHOD_TOKEN = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")

_module_logger = logging.getLogger(__name__)


def truncate_for_log(text: str, limit: int) -> str:
    """Return at most `limit` characters of text, with no truncation marker."""
    if len(text) > limit:
        return text[:limit]
    return text


def _json_default(value: Any) -> Any:
    """Map pydantic models and dataclass instances onto JSON-encodable values."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_json_body(body: Any) -> str:
    """Encode a body value as compact JSON text.

    Non-ASCII characters are kept as-is; NaN and Infinity are rejected since
    JSON has no representation for them. Values nested deeper than the
    interpreter's recursion limit are rejected too.

    Raises:
        EncodingError: If the value (or anything nested in it) cannot be encoded.
    """
    try:
        return json.dumps(
            body,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
            default=_json_default,
        )
    except (TypeError, ValueError, RecursionError) as e:
        raise EncodingError(f"json: {e}") from e


def _query_pairs(query_params: dict[str, list[str]]) -> list[tuple[str, str]]:
    """Flatten query params, sorted by key with per-key order preserved."""
    return [(key, value) for key in sorted(query_params) for value in query_params[key]]


def _header_pairs(headers: dict[str, list[str]]) -> list[tuple[str, str]]:
    """Flatten header lists into (name, value) pairs for httpx."""
    return [(name, value) for name, values in headers.items() for value in values]


class RequestExecutor:
    """Executes RequestDescriptions and captures ResponseDescriptions.

    The executor only holds immutable configuration, so one instance can be
    shared between threads. Each call builds its own request state.

    Usage:
        executor = RequestExecutor(max_log_chars=10000)
        response = executor.execute(RequestDescription(method="POST", url=url, body={"a": 1}))

    An httpx.Client may be passed in; the caller then owns its lifecycle.
    Otherwise a short-lived client is created and closed for every call.
    """

    def __init__(
        self,
        max_log_chars: int,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        client: httpx.Client | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            max_log_chars: Maximum number of body characters in a debug record.
            logger: Logger receiving the request/response debug records.
                    Defaults to the module logger.
            client: Optional caller-owned HTTP client used to send requests.
            timeout: Timeout in seconds for clients created by the executor.
                     None means no deadline.

        Raises:
            ValueError: If max_log_chars is negative.
        """
        if max_log_chars < 0:
            raise ValueError(f"max_log_chars must be non-negative, got {max_log_chars}")
        self._max_log_chars = max_log_chars
        self._logger = logger if logger is not None else _module_logger
        self._client = client
        self._timeout = timeout

    @classmethod
    def from_config(
        cls,
        config: ExecutorConfig,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        client: httpx.Client | None = None,
    ) -> "RequestExecutor":
        """Build an executor from a loaded ExecutorConfig."""
        return cls(
            max_log_chars=config.max_log_chars,
            logger=logger,
            client=client,
            timeout=config.timeout,
        )

    @property
    def max_log_chars(self) -> int:
        return self._max_log_chars

    def execute(self, request: RequestDescription) -> ResponseDescription:
        """Execute a request and return the complete response.

        Args:
            request: The request to execute.

        Returns:
            ResponseDescription holding the full response body and a reference
            to `request`.

        Raises:
            EncodingError: If the body cannot be JSON-encoded. Nothing is sent.
            TransportError: If the method or URL is rejected, or sending or
                            reading the response fails.
        """
        method = request.method or DEFAULT_METHOD

        content: bytes | None = None
        body_log = ""
        if request.body is not None:
            payload = encode_json_body(request.body)
            if request.log_request_body:
                body_log = truncate_for_log(payload, self._max_log_chars)
            content = payload.encode("utf-8")

        self._logger.debug(
            "HTTP request %s %s body=%s",
            method,
            request.url,
            body_log,
            extra={"method": method, "url": request.url, "body": body_log},
        )

        http_request = self._build_request(method, request, content)

        if self._client is not None:
            status_code, headers, response_bytes = self._send(self._client, http_request)
        else:
            with httpx.Client(timeout=self._timeout, follow_redirects=True) as client:
                status_code, headers, response_bytes = self._send(client, http_request)

        body_log = ""
        if request.log_response_body:
            body_log = truncate_for_log(
                response_bytes.decode("utf-8", errors="replace"), self._max_log_chars
            )
        self._logger.debug(
            "HTTP response %d body=%s",
            status_code,
            body_log,
            extra={"status_code": status_code, "body": body_log},
        )

        return ResponseDescription(
            status_code=status_code,
            body=response_bytes,
            headers=headers,
            request=request,
        )

    def _build_request(
        self,
        method: str,
        request: RequestDescription,
        content: bytes | None,
    ) -> httpx.Request:
        """Build the outgoing httpx request.

        The URL's query string is replaced by the encoded query_params. When
        headers are given they form the whole header set; Content-Type is
        then forced to application/json.

        Raises:
            TransportError: If the method, URL or headers are rejected.
        """
        if not _METHOD_TOKEN.match(method):
            raise TransportError(f'invalid method "{method}"')

        try:
            url = httpx.URL(request.url)
        except httpx.InvalidURL as e:
            raise TransportError(f'{method} "{request.url}": {e}') from e

        if url.scheme not in _SUPPORTED_SCHEMES:
            raise TransportError(
                f'{method} "{request.url}": unsupported protocol scheme "{url.scheme}"'
            )

        try:
            url = url.copy_with(params=httpx.QueryParams(_query_pairs(request.query_params)))

            headers = httpx.Headers(_header_pairs(request.headers))
            headers["Content-Type"] = JSON_CONTENT_TYPE

            return httpx.Request(method, url, headers=headers, content=content)
        except httpx.InvalidURL as e:
            raise TransportError(f'{method} "{request.url}": {e}') from e
        except UnicodeEncodeError as e:
            # Header names and values must be ASCII
            raise TransportError(
                f'{method} "{request.url}": non-ASCII character '
                f"{e.object[e.start:e.end]!r} in request headers"
            ) from e

    def _send(
        self,
        client: httpx.Client,
        http_request: httpx.Request,
    ) -> tuple[int, dict[str, list[str]], bytes]:
        """Send a request and drain the response body.

        The response is closed on every exit path; bytes read before a
        failure are discarded.

        Returns:
            Tuple of (status_code, headers, body).

        Raises:
            TransportError: If sending or reading fails.
        """
        target = f'{http_request.method} "{http_request.url}"'
        try:
            response = client.send(http_request, stream=True)
        except httpx.HTTPError as e:
            raise TransportError(f"{target}: {e}") from e

        try:
            response_bytes = self._read_raw(response)
        except (httpx.HTTPError, httpx.StreamError) as e:
            raise TransportError(f"{target}: reading response body: {e}") from e
        finally:
            response.close()

        return response.status_code, self._convert_headers(response), response_bytes

    @staticmethod
    def _read_raw(response: httpx.Response) -> bytes:
        """Drain the body as received, without undoing Content-Encoding."""
        if response.is_stream_consumed:
            # Transport loaded the body up front; only decoded content is left
            return response.content
        return b"".join(response.iter_raw())

    @staticmethod
    def _convert_headers(response: httpx.Response) -> dict[str, list[str]]:
        """Convert httpx headers to lowercase keys with list values."""
        headers: dict[str, list[str]] = {}
        for key, value in response.headers.multi_items():
            headers.setdefault(key.lower(), []).append(value)
        return headers
