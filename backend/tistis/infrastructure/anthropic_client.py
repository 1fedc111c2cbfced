"""Report Narrative Client: asks Claude for a short executive summary of aggregated report stats.

Invariants:
    - The prompt carries tenant name, period label and aggregated numbers only (no PII)
    - 429 honours Retry-After; 5xx, 529 overloaded and connection errors back off and retry
    - Other 4xx and timeouts fail immediately
    - Every failure surfaces as AnthropicAPIError with api_error_type set

Design Decisions:
    - One classification table instead of per-error handlers: there is a single call site
    - SDK retries disabled (max_retries=0); this client owns the retry budget
    - ±25% jitter on backoff so concurrent report jobs don't retry in lockstep
"""

import asyncio
import json
import logging
import random

import anthropic
from anthropic import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    RateLimitError,
)

from tistis.core.errors import AnthropicAPIError, ErrorContext

logger = logging.getLogger(__name__)

NARRATIVE_SYSTEM_PROMPT = (
    "Eres un analista de negocio para pequeñas empresas en México. "
    "Recibes métricas agregadas del asistente de IA de un negocio y escribes un "
    "resumen ejecutivo breve en español: tres a cinco oraciones, sin viñetas, "
    "con una recomendación concreta al final. No inventes cifras."
)

_RETRYABLE_STATUS = {500, 502, 503, 504, 529}


def narrative_prompt(tenant_name: str, period_label: str, stats: dict) -> str:
    return (
        f"Negocio: {tenant_name}\nPeriodo: {period_label}\n"
        f"Métricas:\n{json.dumps(stats, ensure_ascii=False, indent=2)}"
    )


def classify_error(e: APIError) -> tuple[str, bool]:
    """(api_error_type, retryable) for an SDK exception."""
    if isinstance(e, RateLimitError):
        return "rate_limit", True
    if isinstance(e, APITimeoutError):
        return "timeout", False
    if isinstance(e, APIConnectionError):
        return "connection_error", True
    if isinstance(e, APIStatusError):
        if e.status_code == 529:
            return "overloaded", True
        if e.status_code in _RETRYABLE_STATUS:
            return "server_error", True
        return "client_error", False
    return "unknown", False


def retry_after_ms(e: APIError) -> int | None:
    response = getattr(e, "response", None)
    if response is None:
        return None
    value = response.headers.get("retry-after")
    return int(value) * 1000 if value and value.isdigit() else None


class ReportNarrativeClient:
    def __init__(
        self,
        api_key: str,
        model: str,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        max_delay_ms: int = 30_000,
        timeout_seconds: int = 60,
        max_tokens: int = 600,
    ):
        self.client = anthropic.AsyncAnthropic(
            api_key=api_key, timeout=timeout_seconds, max_retries=0,
        )
        self.model = model
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self.max_tokens = max_tokens

    async def write_narrative(
        self, tenant_name: str, period_label: str, stats: dict,
        context: ErrorContext | None = None,
    ) -> str:
        """Return the summary text, or raise AnthropicAPIError once retries run out."""
        prompt = narrative_prompt(tenant_name, period_label, stats)
        attempt = 0
        while True:
            try:
                response = await self.client.messages.create(
                    model=self.model,
                    max_tokens=self.max_tokens,
                    system=NARRATIVE_SYSTEM_PROMPT,
                    messages=[{"role": "user", "content": prompt}],
                )
            except APIError as e:
                error_type, retryable = classify_error(e)
                wait_ms = retry_after_ms(e)
                if not retryable or attempt >= self.max_retries:
                    raise AnthropicAPIError(
                        str(e), error_type, retry_after_ms=wait_ms, context=context,
                    )
                delay = wait_ms or self._backoff(attempt)
                logger.warning(
                    f"Anthropic {error_type}, retry in {delay}ms (attempt {attempt + 1})",
                )
                await asyncio.sleep(delay / 1000)
                attempt += 1
                continue

            logger.info(
                "Report narrative written",
                extra={
                    "attempt": attempt + 1,
                    "input_tokens": response.usage.input_tokens,
                    "output_tokens": response.usage.output_tokens,
                },
            )
            return "".join(
                block.text for block in response.content
                if getattr(block, "type", None) == "text"
            ).strip()

    async def aclose(self) -> None:
        await self.client.close()

    def _backoff(self, attempt: int) -> int:
        delay = min(self.max_delay_ms, (2 ** attempt) * self.base_delay_ms)
        return int(delay * random.uniform(0.75, 1.25))  # nosec B311
