"""Resend Client: transactional email delivery.

Invariants:
    - Without an API key, send() is a logged no-op returning None (email is never critical path)
    - Returns Resend's message id on success
"""

import logging

from tistis.core.errors import ErrorContext
from tistis.infrastructure.resilient_http import ResilientHttpClient

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


class ResendClient:
    def __init__(
        self, api_key: str, sender: str, http: ResilientHttpClient | None = None,
    ):
        self.api_key = api_key
        self.sender = sender
        self.http = http or ResilientHttpClient("resend")

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def send(
        self,
        to: list[str],
        subject: str,
        html: str,
        context: ErrorContext | None = None,
    ) -> str | None:
        if not self.configured:
            logger.warning(f"Resend not configured, skipping email: {subject}")
            return None
        response = await self.http.post(
            RESEND_URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={"from": self.sender, "to": to, "subject": subject, "html": html},
            context=context,
        )
        return response.json().get("id")
