"""
HTTP transport for streaming queries.

Wraps httpx.AsyncClient and exposes it as the request function a StreamSession
awaits: ``await transport.send(request) -> TransportResponse``. httpx errors are
translated into the APIError hierarchy here, both when the request is issued and
while the body is being read.
"""

from collections.abc import AsyncIterator
from typing import Any, Dict, Optional

import httpx

from capstream.core.logger import get_logger
from capstream.schemas.stream import StreamRequest, TransportResponse

logger = get_logger("capstream.transport")

SENSITIVE_HEADERS = ("authorization", "x-api-key", "cookie")


# ============================================================================
# Error Classes
# ============================================================================


class APIError(Exception):
    """Base exception for transport and stream errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, response_text: str = ""):
        self.message = message
        self.status_code = status_code
        self.response_text = response_text
        super().__init__(self.message)

    def user_friendly_message(self) -> str:
        return self.message


class NetworkError(APIError):
    """Connection refused, DNS failure, dropped connection mid-stream."""

    def user_friendly_message(self) -> str:
        return (
            f"[ERROR] Unable to reach the analytics backend\n\n"
            f"Error: {self.message}\n\n"
            f"Suggestions:\n"
            f"  1. Check that the backend is running\n"
            f"  2. Check the --api-base option or CAPSTREAM_API_BASE\n"
            f"  3. Check the network connection"
        )


class TimeoutError(APIError):
    """Connect, write or pool timeout."""

    def user_friendly_message(self) -> str:
        return (
            f"[TIMEOUT] Request timed out\n\n"
            f"Error: {self.message}\n\n"
            f"Suggestions:\n"
            f"  1. Check the network connection\n"
            f"  2. Increase the timeout (--timeout)"
        )


class HTTPStatusError(APIError):
    """Non-success HTTP status (4xx, 5xx); the body is not read."""

    def user_friendly_message(self) -> str:
        status = self.status_code or "Unknown"
        return f"[SERVER ERROR] (HTTP {status})\n\nError: {self.message}"


class StreamDecodeError(APIError):
    """The response body could not be decoded as text."""

    def user_friendly_message(self) -> str:
        return f"[STREAM ERROR] Could not decode the response stream\n\nError: {self.message}"


def translate_httpx_error(error: Exception) -> APIError:
    """Map an httpx exception onto the APIError hierarchy."""
    if isinstance(error, httpx.ConnectTimeout):
        return NetworkError("Connection timeout: server may be unreachable")
    if isinstance(error, httpx.TimeoutException):
        return TimeoutError(f"Stream request timeout: {error}")
    if isinstance(error, (httpx.ConnectError, httpx.NetworkError)):
        return NetworkError(str(error) or type(error).__name__)
    if isinstance(error, httpx.DecodingError):
        return StreamDecodeError(str(error))
    return NetworkError(f"HTTP error: {error}")


def mask_headers(headers: Dict[str, str]) -> Dict[str, str]:
    return {k: ("***" if k.lower() in SENSITIVE_HEADERS else v) for k, v in headers.items()}


# ============================================================================
# Streaming transport
# ============================================================================


class HttpxStreamTransport:
    """
    Request function over httpx.AsyncClient.

    Features:
    - Read timeout disabled for streams (sparse server events), other timeouts kept
    - Accept: text/event-stream added unless the caller set it
    - Default headers (e.g. bearer token) merged under request headers
    - Sensitive header masking in logs
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000",
        timeout: float = 30.0,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            base_url: Base URL that relative request URLs are resolved against
            timeout: Connect/write/pool timeout in seconds
            headers: Headers sent with every request (e.g. Authorization)
            client: Pre-built client (tests inject one with a mock transport)
        """
        self.base_url = base_url
        self.timeout = timeout
        self.default_headers = dict(headers or {})
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            trust_env=False,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _log_request(self, method: str, url: str, headers: Dict[str, str]) -> None:
        logger.debug("%s %s | headers: %s", method, url, mask_headers(headers))

    def _stream_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(connect=self.timeout, read=None, write=self.timeout, pool=self.timeout)

    async def send(self, request: StreamRequest) -> TransportResponse:
        """
        Issue ``request`` and return as soon as the response headers arrived.

        Raises:
            NetworkError: Connection failure
            TimeoutError: Connect/write/pool timeout
        """
        headers: Dict[str, str] = {**self.default_headers, **request.headers}
        if not any(k.lower() == "accept" for k in headers):
            headers["Accept"] = "text/event-stream"
        self._log_request(request.method, request.url, headers)

        json_body: Optional[Dict[str, Any]] = None
        if request.method == "POST":
            json_body = request.body.model_dump(exclude_none=True)

        try:
            http_request = self._client.build_request(
                request.method,
                request.url,
                headers=headers,
                json=json_body,
                timeout=self._stream_timeout(),
            )
            response = await self._client.send(http_request, stream=True)
        except httpx.HTTPError as e:
            logger.error("Request %s failed: %s: %s", request.request_id, type(e).__name__, e)
            raise translate_httpx_error(e) from e

        return TransportResponse(
            status_code=response.status_code,
            headers=response.headers,
            chunks=self._iter_text(response),
            close=response.aclose,
        )

    async def _iter_text(self, response: httpx.Response) -> AsyncIterator[str]:
        try:
            async for text in response.aiter_text():
                if text:
                    yield text
        except httpx.HTTPError as e:
            raise translate_httpx_error(e) from e
        except UnicodeDecodeError as e:
            raise StreamDecodeError(str(e)) from e
