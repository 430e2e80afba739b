from __future__ import annotations

from typing import Any

import httpx
import structlog
from circuitbreaker import CircuitBreaker, CircuitBreakerError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pactlayer.core.errors import ExitCode, PactLayerError, TransportError

logger = structlog.get_logger()


class RetryableHTTPError(TransportError):
    """Network failures and HTTP errors that may succeed on retry."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, {"status": status_code} if status_code else None)
        self.status_code = status_code


class PermanentHTTPError(PactLayerError):
    """HTTP errors that should not be retried."""

    exit_code = ExitCode.TRANSPORT_ERROR

    def __init__(self, message: str, status_code: int, body: Any = None):
        super().__init__(message, {"status": status_code})
        self.status_code = status_code
        self.body = body


def is_retryable_status(status_code: int) -> bool:
    """Determine if HTTP status code is retryable."""
    return status_code in (408, 429, 500, 502, 503, 504)


class BaseHTTPClient:
    """
    Base HTTP client with a circuit breaker.

    Reads (``get``) retry with exponential backoff; writes are sent exactly
    once, since a write that failed ambiguously may still have been applied.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_factor: float = 2.0,
        circuit_failure_threshold: int = 5,
        circuit_recovery_timeout: int = 60,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._backoff_factor = backoff_factor
        self._breaker = CircuitBreaker(
            failure_threshold=circuit_failure_threshold,
            recovery_timeout=circuit_recovery_timeout,
            expected_exception=RetryableHTTPError,
            name=f"{type(self).__name__}:{self._base_url}",
        )
        self._guarded_send = self._breaker(self._send)

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self) -> dict[str, str]:
        """Override to provide custom headers."""
        return {"Content-Type": "application/json", "Accept": "application/json"}

    def _auth(self) -> httpx.Auth | tuple[str, str] | None:
        """Override to provide request authentication."""
        return None

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Execute a single HTTP request."""
        url = path if path.startswith(("http://", "https://")) else f"{self._base_url}{path}"
        req_headers = self._headers()
        if headers:
            req_headers.update(headers)

        try:
            async with httpx.AsyncClient(timeout=self._timeout, auth=self._auth()) as client:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=req_headers,
                )
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            logger.warning("http_network_error", method=method, url=url, error=str(exc))
            raise RetryableHTTPError(f"{method} {url} failed: {exc}") from exc

        if is_retryable_status(response.status_code):
            logger.warning(
                "http_retryable_error",
                status=response.status_code,
                method=method,
                url=url,
            )
            raise RetryableHTTPError(
                f"HTTP {response.status_code}: {response.text}", response.status_code
            )

        if response.is_error:
            body = _safe_json(response)
            logger.error(
                "http_permanent_error",
                status=response.status_code,
                method=method,
                url=url,
            )
            raise PermanentHTTPError(
                f"HTTP {response.status_code} from {method} {url}", response.status_code, body
            )

        return _safe_json(response) or {}

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Execute HTTP request once, through the circuit breaker."""
        try:
            return await self._guarded_send(method, path, **kwargs)
        except CircuitBreakerError as exc:
            raise TransportError(f"Circuit open for {self._base_url}: {exc}") from exc

    async def _request_with_retry(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Execute an idempotent HTTP request with retry and backoff."""
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(RetryableHTTPError),
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=self._backoff_factor, max=30),
            reraise=True,
        ):
            with attempt:
                return await self._request(method, path, **kwargs)
        raise AssertionError("unreachable")  # pragma: no cover

    async def get(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Execute GET request (retried)."""
        return await self._request_with_retry("GET", path, params=params, headers=headers)

    async def post(
        self,
        path: str,
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Execute POST request (never retried)."""
        return await self._request("POST", path, json=json, headers=headers)

    async def put(
        self,
        path: str,
        *,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Execute PUT request (never retried)."""
        return await self._request("PUT", path, json=json, headers=headers)


def _safe_json(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
