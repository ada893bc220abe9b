"""
HTTP Transport for batchcommit.

Handles async HTTP communication with the row store, the object store and the
Git host: bounded retry with backoff, per-request timeouts and parsing of
error responses into typed exceptions.
"""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from batchcommit.exceptions import (
    APIError,
    AuthenticationError,
    AuthorizationError,
    BadRequestError,
    RateLimitedError,
    RequestTimeoutError,
    ResourceConflictError,
    ResourceNotFoundError,
    ServerError,
    UnprocessableError,
)
from batchcommit.logging import log_http_request, log_http_response


@dataclass
class RetryConfig:
    """Configuration for automatic retry behavior."""

    max_retries: int = 3
    backoff_factor: float = 2.0
    retry_on: list[int] = field(default_factory=lambda: [429, 500, 502, 503, 504])
    respect_retry_after: bool = True
    max_backoff: float = 30.0  # Maximum backoff time in seconds
    jitter: float = 0.1  # Jitter factor (0.1 = ±10%)


class HTTPTransport:
    """
    Async HTTP transport layer with retry logic.

    Handles:
    - Exponential backoff with jitter for retries
    - Retry-After header respect for rate limiting
    - Timeouts surfaced as RequestTimeoutError
    - Error response parsing into typed exceptions
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        retry_config: RetryConfig | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize HTTP transport.

        Args:
            base_url: Base URL for API requests (e.g., "https://api.github.com")
            headers: Headers sent with every request
            timeout: Request timeout in seconds
            retry_config: Configuration for retry behavior
            client: Pre-built httpx client (tests pass one with a MockTransport)
            sleep: Coroutine used to wait between attempts
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()
        self._sleep = sleep

        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=headers or {},
        )
        if client is not None and headers:
            self._client.headers.update(headers)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "HTTPTransport":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
        retry: bool = True,
    ) -> httpx.Response:
        """
        Make a request with automatic retry.

        Args:
            method: HTTP method
            path: API path relative to the base URL
            token: Bearer credential for this request only
            params: Query parameters
            json: JSON request body
            headers: Extra headers for this request
            retry: Set False for calls that must not be repeated automatically

        Returns:
            The successful (< 400) response

        Raises:
            APIError: On API errors, timeouts or exhausted retries
        """
        request_headers = dict(headers or {})
        if token is not None:
            request_headers["Authorization"] = f"Bearer {token}"

        async def make_request() -> httpx.Response:
            log_http_request(method, f"{self.base_url}{path}", request_headers, json if isinstance(json, dict) else None)
            return await self._client.request(
                method,
                path,
                params=params,
                json=json,
                headers=request_headers,
            )

        return await self._execute_with_retry(make_request, f"{method} {path}", retry)

    async def request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        """Make a request and return the parsed JSON body (None when empty)."""
        response = await self.request(method, path, **kwargs)
        if not response.content:
            return None
        return response.json()

    async def request_bytes(self, method: str, path: str, **kwargs: Any) -> bytes:
        """Make a request and return the raw response body."""
        response = await self.request(method, path, **kwargs)
        return response.content

    async def _execute_with_retry(
        self,
        request_fn: Callable[[], Awaitable[httpx.Response]],
        operation: str,
        retry: bool = True,
    ) -> httpx.Response:
        """
        Execute a request with automatic retry on retryable errors.

        Args:
            request_fn: Coroutine function that makes the HTTP request
            operation: Description used in timeout errors
            retry: Whether retryable failures may be attempted again

        Returns:
            The successful response

        Raises:
            APIError: On non-retryable errors or after max retries
        """
        max_retries = self.retry_config.max_retries if retry else 0

        for attempt in range(max_retries + 1):
            started = time.monotonic()
            try:
                response = await request_fn()
            except httpx.TimeoutException as e:
                if attempt >= max_retries:
                    raise RequestTimeoutError(
                        "TIMEOUT",
                        f"{operation} timed out after {self.timeout}s",
                    ) from e
                await self._sleep(self._get_backoff_time(attempt, None))
                continue
            except httpx.RequestError as e:
                # Network errors are retryable
                if attempt >= max_retries:
                    raise ServerError("CONNECTION_ERROR", str(e)) from e
                await self._sleep(self._get_backoff_time(attempt, None))
                continue

            elapsed_ms = (time.monotonic() - started) * 1000
            log_http_response(response.status_code, str(response.request.url), _safe_body(response), elapsed_ms)

            if response.status_code < 400:
                return response

            error = self._parse_error_response(response)

            if not self._should_retry(response.status_code, attempt, max_retries):
                raise error

            retry_after = response.headers.get("Retry-After")
            await self._sleep(self._get_backoff_time(attempt, retry_after))

        # Unreachable: the final attempt always returns or raises
        raise ServerError("MAX_RETRIES_EXCEEDED", f"{operation} failed after {max_retries + 1} attempts")

    def _should_retry(self, status_code: int, attempt: int, max_retries: int | None = None) -> bool:
        """
        Determine if a request should be retried.

        Args:
            status_code: HTTP status code
            attempt: Current attempt number (0-indexed)
            max_retries: Retry budget for this request (default: configured budget)

        Returns:
            True if the request should be retried
        """
        if max_retries is None:
            max_retries = self.retry_config.max_retries

        if attempt >= max_retries:
            return False

        return status_code in self.retry_config.retry_on

    def _get_backoff_time(self, attempt: int, retry_after: str | None) -> float:
        """
        Calculate backoff time for retry.

        Uses exponential backoff with jitter, respecting Retry-After header
        if present.

        Args:
            attempt: Current attempt number (0-indexed)
            retry_after: Value of Retry-After header (if present)

        Returns:
            Time to wait in seconds
        """
        if retry_after and self.retry_config.respect_retry_after:
            try:
                return min(float(retry_after), self.retry_config.max_backoff)
            except ValueError:
                pass  # Fall through to exponential backoff

        base_wait = self.retry_config.backoff_factor ** attempt

        jitter_range = base_wait * self.retry_config.jitter
        jitter = random.uniform(-jitter_range, jitter_range)
        wait_time = base_wait + jitter

        return min(wait_time, self.retry_config.max_backoff)

    def _parse_error_response(self, response: httpx.Response) -> APIError:
        """
        Parse an error response into a typed exception.

        Understands the Git host's ``{"message": ...}`` bodies, PostgREST's
        ``{"code", "message", "details"}`` bodies and the object store's
        ``{"statusCode", "error", "message"}`` bodies.

        Args:
            response: HTTP response with error status

        Returns:
            Appropriate APIError subclass
        """
        data = _safe_body(response)
        if not isinstance(data, dict):
            data = {"message": data} if data else {}

        status_code = response.status_code
        code = str(data.get("code") or data.get("error") or f"HTTP_{status_code}")
        message = str(data.get("message") or data.get("error") or f"HTTP {status_code}")
        request_id = response.headers.get("X-GitHub-Request-Id") or response.headers.get("X-Request-Id")

        if status_code == 401:
            return AuthenticationError(code, message, status_code, request_id, data)
        elif status_code == 403:
            return AuthorizationError(code, message, status_code, request_id, data)
        elif status_code == 404:
            return ResourceNotFoundError(code, message, status_code, request_id, data)
        elif status_code == 409:
            return ResourceConflictError(code, message, status_code, request_id, data)
        elif status_code == 422:
            return UnprocessableError(code, message, status_code, request_id, data)
        elif status_code == 429:
            retry_after_str = response.headers.get("Retry-After", "60")
            try:
                retry_after = int(retry_after_str)
            except ValueError:
                retry_after = 60
            return RateLimitedError(code, message, retry_after, status_code, request_id, data)
        elif status_code >= 500:
            return ServerError(code, message, status_code, request_id, data)
        else:
            return BadRequestError(code, message, status_code, request_id, data)


def _safe_body(response: httpx.Response) -> Any:
    """Decode a response body for logging and error parsing without raising."""
    if not response.content:
        return None
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            return response.text[:500]
    if content_type.startswith("text/"):
        return response.text[:500]
    return None
