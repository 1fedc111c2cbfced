"""Resilient HTTP Client: httpx.AsyncClient with retry, backoff and error mapping.

Invariants:
    - Rate limits (429): exponential backoff with jitter, respects Retry-After header
    - Transient errors (5xx, connect/read errors): max_retries retries with exponential backoff
    - Client errors (4xx except 429): immediate failure, no retry
    - Timeouts after the last attempt map to api_error_type "timeout"
    - All failures mapped to ExternalServiceError (core/errors.py), tagged with the service name

Design Decisions:
    - One wrapper shared by WhatsApp, PDFShift, storage and Resend clients: retry policy is
      identical, only base URL and auth differ (ADR: single responsibility)
    - ±25% jitter on backoff: prevents thundering herd on shared rate limits
    - transport injectable: tests pass httpx.MockTransport instead of patching
"""

import asyncio
import logging
import random

import httpx

from tistis.core.errors import ErrorContext, ExternalServiceError

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = frozenset({500, 502, 503, 504})


class ResilientHttpClient:
    """Wraps httpx.AsyncClient with retry logic, timeouts, and error mapping."""

    def __init__(
        self,
        service: str,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        auth: httpx.Auth | tuple[str, str] | None = None,
        max_retries: int = 3,
        base_delay_ms: int = 500,
        max_delay_ms: int = 10_000,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.service = service
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            auth=auth,
            timeout=timeout_seconds,
            transport=transport,
        )

    async def request(
        self,
        method: str,
        url: str,
        *,
        context: ErrorContext | None = None,
        **kwargs,
    ) -> httpx.Response:
        """Send request with automatic retry on transient failures."""
        for attempt in range(self.max_retries + 1):
            try:
                response = await self.client.request(method, url, **kwargs)
            except httpx.TimeoutException:
                if attempt >= self.max_retries:
                    raise ExternalServiceError(
                        self.service, "request timed out", "timeout", context=context,
                    )
                await self._sleep_before_retry(attempt, "timeout")
                continue
            except httpx.TransportError as e:
                if attempt >= self.max_retries:
                    raise ExternalServiceError(
                        self.service,
                        f"Transient failure after {self.max_retries} retries: {e}",
                        "connection_error", context=context,
                    )
                await self._sleep_before_retry(attempt, str(e))
                continue

            if response.status_code == 429:
                retry_after_ms = self._extract_retry_after(response)
                if attempt >= self.max_retries:
                    raise ExternalServiceError(
                        self.service, "Rate limit exceeded after retries",
                        "rate_limit", status_code=429,
                        retry_after_ms=retry_after_ms, context=context,
                    )
                delay = retry_after_ms or self._backoff(attempt)
                logger.warning(
                    f"{self.service} rate limit hit, retry after {delay}ms (attempt {attempt + 1})",
                    extra={"service": self.service, "attempt": attempt + 1},
                )
                await asyncio.sleep(delay / 1000)
                continue

            if response.status_code in _RETRYABLE_STATUS:
                if attempt >= self.max_retries:
                    raise ExternalServiceError(
                        self.service,
                        f"HTTP {response.status_code} after {self.max_retries} retries",
                        "server_error", status_code=response.status_code, context=context,
                    )
                await self._sleep_before_retry(attempt, f"HTTP {response.status_code}")
                continue

            if response.is_error:
                raise ExternalServiceError(
                    self.service, self._error_message(response), "client_error",
                    status_code=response.status_code, context=context,
                )

            logger.info(
                f"{self.service} {method} {url} succeeded",
                extra={
                    "service": self.service,
                    "attempt": attempt + 1,
                    "status_code": response.status_code,
                },
            )
            return response

        raise ExternalServiceError(self.service, "retries exhausted", "unknown", context=context)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _sleep_before_retry(self, attempt: int, reason: str) -> None:
        delay = self._backoff(attempt)
        logger.warning(
            f"{self.service} transient error, retry after {delay}ms: {reason}",
            extra={"service": self.service, "attempt": attempt + 1},
        )
        await asyncio.sleep(delay / 1000)

    def _backoff(self, attempt: int) -> int:
        """Exponential backoff with ±25% jitter."""
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311

    @staticmethod
    def _extract_retry_after(response: httpx.Response) -> int | None:
        """Extract Retry-After header (returns milliseconds)."""
        val = response.headers.get("retry-after")
        if val and val.isdigit():
            return int(val) * 1000
        return None

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Best-effort error text from a JSON or plain body, truncated."""
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}: {response.text[:200]}"
        if isinstance(body, dict):
            error = body.get("error") or body.get("message") or body
            if isinstance(error, dict):
                error = error.get("message") or error
            return f"HTTP {response.status_code}: {str(error)[:200]}"
        return f"HTTP {response.status_code}"
