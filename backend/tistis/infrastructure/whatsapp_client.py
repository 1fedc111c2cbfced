"""WhatsApp Cloud API Client: outbound text messages via the Graph API.

Invariants:
    - Recipient is sent without the leading "+" (Graph API expects bare digits)
    - Returns the provider message id (wamid) used later to match status webhooks
"""

import logging

from tistis.core.errors import ErrorContext, ExternalServiceError
from tistis.infrastructure.resilient_http import ResilientHttpClient

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.facebook.com"


class WhatsAppClient:
    """Sends messages on behalf of a tenant's connected phone number."""

    def __init__(
        self, graph_version: str = "v18.0", http: ResilientHttpClient | None = None,
    ):
        self.graph_version = graph_version
        self.http = http or ResilientHttpClient("whatsapp", base_url=GRAPH_BASE_URL)

    async def send_text(
        self,
        phone_number_id: str,
        access_token: str,
        to: str,
        text: str,
        context: ErrorContext | None = None,
    ) -> str:
        response = await self.http.post(
            f"/{self.graph_version}/{phone_number_id}/messages",
            headers={"Authorization": f"Bearer {access_token}"},
            json={
                "messaging_product": "whatsapp",
                "recipient_type": "individual",
                "to": to.replace("+", ""),
                "type": "text",
                "text": {"preview_url": False, "body": text},
            },
            context=context,
        )
        messages = response.json().get("messages") or []
        if not messages:
            raise ExternalServiceError(
                "whatsapp", "response carried no message id", "invalid_response",
                context=context,
            )
        message_id = messages[0]["id"]
        logger.info(f"WhatsApp message sent: {message_id}")
        return message_id
