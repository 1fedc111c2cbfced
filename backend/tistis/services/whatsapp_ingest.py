"""WhatsApp Ingest: turns Cloud API webhook payloads into leads, conversations and messages.

Invariants:
    - Tenant context requires an active tenant AND a connected WhatsApp channel for the
      payload's phone_number_id; without both, the change is skipped and reported
    - Leads are unique per (tenant, normalized phone); a lead named "Unknown" adopts the
      WhatsApp profile name when one arrives
    - Each message/status is its own unit of work: one failure never rolls back another
    - An ai_response job is enqueued only when AI is enabled and the message has content
    - A wamid is stored once per tenant: redeliveries create no message, lead or job

Design Decisions:
    - Errors are collected per item instead of raised: the route must answer 200 so
      Meta does not redeliver the whole batch
    - Status webhooks match outbound messages by external_id (the wamid)
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tistis.core.clock import utc_now
from tistis.core.domain_types import MessageStatus
from tistis.core.whatsapp_payload import (
    ParsedMessage, iter_message_changes, parse_message, should_apply_status,
)
from tistis.models.channel_connection import ChannelConnection
from tistis.models.conversation import Conversation
from tistis.models.job import Job
from tistis.models.lead import Lead
from tistis.models.message import Message
from tistis.models.tenant import Tenant
from tistis.schemas.whatsapp import WebhookProcessResult

logger = logging.getLogger(__name__)

UNKNOWN_LEAD_NAME = "Unknown"
AI_RESPONSE_JOB = "ai_response"
AI_JOB_PRIORITY = 1
AI_JOB_MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class TenantChannelContext:
    tenant_id: UUID
    tenant_slug: str
    branch_id: UUID | None
    channel_connection_id: UUID
    ai_enabled: bool


async def resolve_tenant_context(
    db: AsyncSession, tenant_slug: str, phone_number_id: str | None,
) -> TenantChannelContext | None:
    tenant = await db.scalar(
        select(Tenant).where(Tenant.slug == tenant_slug, Tenant.status == "active"),
    )
    if tenant is None:
        logger.warning(f"WhatsApp webhook for unknown tenant: {tenant_slug}")
        return None
    if not phone_number_id:
        return None
    connection = await db.scalar(
        select(ChannelConnection).where(
            ChannelConnection.tenant_id == tenant.id,
            ChannelConnection.channel == "whatsapp",
            ChannelConnection.whatsapp_phone_number_id == phone_number_id,
            ChannelConnection.status == "connected",
        ),
    )
    if connection is None:
        logger.warning(
            f"No connected WhatsApp channel for {tenant_slug}/{phone_number_id}",
            extra={"tenant_id": tenant.id},
        )
        return None
    return TenantChannelContext(
        tenant_id=tenant.id,
        tenant_slug=tenant.slug,
        branch_id=connection.branch_id,
        channel_connection_id=connection.id,
        ai_enabled=connection.ai_enabled,
    )


# ─── Inbound messages ───────────────────────────────────────────

async def find_or_create_lead(
    db: AsyncSession, ctx: TenantChannelContext, parsed: ParsedMessage,
) -> Lead:
    lead = await db.scalar(
        select(Lead).where(
            Lead.tenant_id == ctx.tenant_id,
            Lead.phone_normalized == parsed.phone_normalized,
        ),
    )
    now = utc_now()
    if lead is not None:
        if parsed.contact_name and lead.name == UNKNOWN_LEAD_NAME:
            lead.name = parsed.contact_name
        lead.last_interaction_at = now
        return lead

    lead = Lead(
        tenant_id=ctx.tenant_id,
        branch_id=ctx.branch_id,
        phone=parsed.phone,
        phone_normalized=parsed.phone_normalized,
        name=parsed.contact_name or UNKNOWN_LEAD_NAME,
        source="whatsapp",
        status="new",
        classification="warm",
        score=50,
        last_interaction_at=now,
    )
    db.add(lead)
    await db.flush()
    logger.info("New lead from WhatsApp", extra={"tenant_id": ctx.tenant_id})
    return lead


async def find_or_create_conversation(
    db: AsyncSession, ctx: TenantChannelContext, lead: Lead,
) -> Conversation:
    conversation = await db.scalar(
        select(Conversation)
        .where(
            Conversation.lead_id == lead.id,
            Conversation.channel == "whatsapp",
            Conversation.status.in_(["active", "pending"]),
        )
        .order_by(Conversation.created_at.desc())
        .limit(1),
    )
    if conversation is not None:
        return conversation
    conversation = Conversation(
        tenant_id=ctx.tenant_id,
        branch_id=ctx.branch_id,
        lead_id=lead.id,
        channel="whatsapp",
        channel_connection_id=ctx.channel_connection_id,
        status="active",
        ai_handling=ctx.ai_enabled,
    )
    db.add(conversation)
    await db.flush()
    return conversation


async def save_incoming_message(
    db: AsyncSession, ctx: TenantChannelContext,
    conversation: Conversation, lead: Lead, parsed: ParsedMessage,
) -> Message:
    message = Message(
        conversation_id=conversation.id,
        tenant_id=ctx.tenant_id,
        branch_id=ctx.branch_id,
        sender_type="lead",
        sender_id=lead.id,
        content=parsed.content,
        message_type=parsed.message_type,
        channel="whatsapp",
        media_id=parsed.media_id,
        media_type=parsed.media_type,
        status=MessageStatus.RECEIVED.value,
        external_id=parsed.message_id,
        meta={"whatsapp_message_id": parsed.message_id, **parsed.metadata},
        created_at=parsed.timestamp,
    )
    db.add(message)
    conversation.last_message_at = utc_now()
    conversation.message_count = (conversation.message_count or 0) + 1
    await db.flush()
    return message


async def enqueue_ai_response(
    db: AsyncSession, ctx: TenantChannelContext,
    conversation: Conversation, lead: Lead, message: Message,
) -> Job:
    job = Job(
        tenant_id=ctx.tenant_id,
        job_type=AI_RESPONSE_JOB,
        payload={
            "conversation_id": str(conversation.id),
            "message_id": str(message.id),
            "lead_id": str(lead.id),
            "tenant_id": str(ctx.tenant_id),
            "channel": "whatsapp",
            "channel_connection_id": str(ctx.channel_connection_id),
        },
        status="pending",
        priority=AI_JOB_PRIORITY,
        max_attempts=AI_JOB_MAX_ATTEMPTS,
        scheduled_for=utc_now(),
    )
    db.add(job)
    await db.flush()
    return job


async def find_delivered_message(
    db: AsyncSession, tenant_id: UUID, external_id: str | None,
) -> Message | None:
    if not external_id:
        return None
    return await db.scalar(
        select(Message).where(
            Message.tenant_id == tenant_id, Message.external_id == external_id,
        ),
    )


async def process_incoming_message(
    db: AsyncSession, ctx: TenantChannelContext, parsed: ParsedMessage,
) -> Message | None:
    """Store the message and queue the AI reply. None when the wamid was already stored."""
    if await find_delivered_message(db, ctx.tenant_id, parsed.message_id):
        logger.info(
            f"WhatsApp redelivery ignored: {parsed.message_id}",
            extra={"tenant_id": ctx.tenant_id},
        )
        return None

    lead = await find_or_create_lead(db, ctx, parsed)
    conversation = await find_or_create_conversation(db, ctx, lead)
    message = await save_incoming_message(db, ctx, conversation, lead, parsed)
    ai_queued = ctx.ai_enabled and bool(parsed.content.strip())
    if ai_queued:
        await enqueue_ai_response(db, ctx, conversation, lead, message)
    logger.info(
        f"WhatsApp message stored (type={parsed.message_type}, ai_queued={ai_queued})",
        extra={"tenant_id": ctx.tenant_id},
    )
    return message


# ─── Delivery statuses ──────────────────────────────────────────

async def apply_status_update(db: AsyncSession, tenant_id: UUID, status: dict) -> bool:
    """Move an outbound message forward. Returns False when nothing changed."""
    new_status = status.get("status", "")
    message = await db.scalar(
        select(Message).where(
            Message.tenant_id == tenant_id, Message.external_id == status.get("id"),
        ),
    )
    if message is None:
        logger.warning(
            f"Status update for unknown message {status.get('id')}",
            extra={"tenant_id": tenant_id},
        )
        return False
    if not should_apply_status(message.status, new_status):
        return False

    message.status = new_status
    meta = dict(message.meta or {})
    meta["whatsapp_status"] = new_status
    meta[f"{new_status}_at"] = status.get("timestamp")
    errors = status.get("errors") or []
    if new_status == MessageStatus.FAILED.value and errors:
        message.error_message = errors[0].get("message") or errors[0].get("title")
        meta["whatsapp_errors"] = errors
    message.meta = meta
    await db.flush()
    return True


# ─── Webhook entry point ────────────────────────────────────────

async def process_webhook(
    db: AsyncSession, tenant_slug: str, payload: dict,
) -> WebhookProcessResult:
    result = WebhookProcessResult()

    for value in iter_message_changes(payload):
        phone_number_id = (value.get("metadata") or {}).get("phone_number_id")
        ctx = await resolve_tenant_context(db, tenant_slug, phone_number_id)
        if ctx is None:
            result.errors.append(
                f"Tenant context not found for {tenant_slug}/{phone_number_id}",
            )
            continue

        for raw in value.get("messages") or []:
            try:
                stored = await process_incoming_message(db, ctx, parse_message(raw, value))
                await db.commit()
                if stored is None:
                    result.messages_duplicate += 1
                else:
                    result.messages_processed += 1
            except Exception as e:
                await db.rollback()
                logger.error(
                    f"Failed to process WhatsApp message {raw.get('id')}: {e}",
                    exc_info=True, extra={"tenant_id": ctx.tenant_id},
                )
                result.errors.append(f"Message {raw.get('id')}: {e}")

        for status in value.get("statuses") or []:
            try:
                await apply_status_update(db, ctx.tenant_id, status)
                await db.commit()
                result.statuses_processed += 1
            except Exception as e:
                await db.rollback()
                logger.error(
                    f"Failed to process WhatsApp status {status.get('id')}: {e}",
                    extra={"tenant_id": ctx.tenant_id},
                )
                result.errors.append(f"Status {status.get('id')}: {e}")

    result.success = not result.errors
    return result
