"""WhatsApp Webhook Routes: Meta verification handshake and inbound events.

Invariants:
    - GET echoes hub.challenge only for mode=subscribe with the configured verify token
    - POST verifies X-Hub-Signature-256 against the raw body when an app secret is set
    - POST answers 200 for every well-formed delivery, reporting per-item errors in the body
"""

import json
import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from tistis.config import Settings, get_settings
from tistis.core.errors import ErrorContext, ValidationFailedError, WebhookSignatureError
from tistis.core.whatsapp_payload import WHATSAPP_OBJECT, verify_signature
from tistis.infrastructure.database import get_db
from tistis.schemas.whatsapp import WebhookProcessResult
from tistis.services.whatsapp_ingest import process_webhook

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/webhooks/whatsapp", tags=["webhooks"])


@router.get("/{tenant_slug}")
async def verify_webhook(
    tenant_slug: str,
    mode: str | None = Query(None, alias="hub.mode"),
    token: str | None = Query(None, alias="hub.verify_token"),
    challenge: str | None = Query(None, alias="hub.challenge"),
    settings: Settings = Depends(get_settings),
):
    """Meta subscription handshake."""
    if (
        mode == "subscribe"
        and settings.whatsapp_verify_token
        and token == settings.whatsapp_verify_token
    ):
        logger.info(f"WhatsApp webhook verified for {tenant_slug}")
        return PlainTextResponse(challenge or "")
    logger.warning(f"WhatsApp webhook verification failed for {tenant_slug}")
    return PlainTextResponse("Forbidden", status_code=403)


@router.post("/{tenant_slug}", response_model=WebhookProcessResult)
async def receive_webhook(
    tenant_slug: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    body = await request.body()
    if settings.whatsapp_app_secret:
        signature = request.headers.get("x-hub-signature-256")
        if not verify_signature(body, signature, settings.whatsapp_app_secret):
            raise WebhookSignatureError(ErrorContext(resource_id=tenant_slug))

    try:
        payload = json.loads(body)
    except ValueError:
        raise ValidationFailedError("Webhook body must be JSON", "body")
    if not isinstance(payload, dict) or payload.get("object") != WHATSAPP_OBJECT:
        return WebhookProcessResult(success=False, errors=["Unsupported webhook object"])

    result = await process_webhook(db, tenant_slug, payload)
    if result.errors:
        logger.warning(
            f"WhatsApp webhook for {tenant_slug} finished with {len(result.errors)} errors",
        )
    return result
