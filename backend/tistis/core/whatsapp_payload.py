"""WhatsApp Payload: signature verification and Cloud API message parsing (pure).

Invariants:
    - verify_signature is constant-time and returns False (never raises) on missing input
    - normalize_phone output is "+" followed by digits only
    - parse_message always yields non-None content (placeholder for media/unknown types)
    - Status changes only move forward (pending < sent < delivered < read); "failed" always applies

Design Decisions:
    - Content placeholders are in Spanish: they are shown verbatim in the tenant inbox
    - ParsedMessage is a dataclass, not the raw dict: handlers never index into Meta's JSON
"""

import hashlib
import hmac
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

SIGNATURE_PREFIX = "sha256="
WHATSAPP_OBJECT = "whatsapp_business_account"

_STATUS_ORDER = ["pending", "sent", "delivered", "read"]

_MEDIA_DEFAULTS = {
    "image": ("[Imagen recibida]", "image/jpeg"),
    "audio": ("[Audio recibido]", "audio/ogg"),
    "video": ("[Video recibido]", "video/mp4"),
    "document": ("[Documento recibido]", "application/pdf"),
}


@dataclass
class ParsedMessage:
    message_id: str
    phone: str
    phone_normalized: str
    timestamp: datetime
    message_type: str
    content: str
    contact_name: str | None = None
    media_id: str | None = None
    media_type: str | None = None
    metadata: dict = field(default_factory=dict)


def verify_signature(payload: bytes, signature: str | None, app_secret: str | None) -> bool:
    """Validate X-Hub-Signature-256 (HMAC-SHA256 of the raw body)."""
    if not signature or not app_secret:
        return False
    received = signature[len(SIGNATURE_PREFIX):] if signature.startswith(SIGNATURE_PREFIX) else signature
    expected = hmac.new(app_secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, received)


def normalize_phone(phone: str) -> str:
    cleaned = re.sub(r"[^\d+]", "", phone or "")
    digits = cleaned.replace("+", "")
    return f"+{digits}"


def _message_content(message: dict) -> tuple[str, str | None, str | None]:
    """(content, media_id, media_type) for one inbound message."""
    msg_type = message.get("type", "")
    body = message.get(msg_type) or {}

    if msg_type == "text":
        return body.get("body", ""), None, None

    if msg_type in _MEDIA_DEFAULTS:
        placeholder, default_mime = _MEDIA_DEFAULTS[msg_type]
        if msg_type == "audio":
            content = placeholder
        elif msg_type == "document":
            content = body.get("filename") or placeholder
        else:
            content = body.get("caption") or placeholder
        return content, body.get("id"), body.get("mime_type") or default_mime

    if msg_type == "location":
        if not body:
            return "", None, None
        name, address = body.get("name"), body.get("address")
        if name:
            suffix = f" - {address}" if address else ""
            return f"[Ubicacion: {name}{suffix}]", None, None
        return f"[Ubicacion: {body.get('latitude')}, {body.get('longitude')}]", None, None

    if msg_type == "contacts":
        contacts = message.get("contacts") or []
        if not contacts:
            return "", None, None
        names = ", ".join(c.get("name", {}).get("formatted_name", "") for c in contacts)
        return f"[Contactos compartidos: {names}]", None, None

    if msg_type == "interactive":
        reply = body.get("button_reply") or body.get("list_reply") or {}
        return reply.get("title", ""), None, None

    if msg_type == "button":
        return body.get("text") or "[Boton presionado]", None, None

    if msg_type == "sticker":
        return "[Sticker recibido]", body.get("id"), body.get("mime_type")

    return f"[Mensaje tipo {msg_type}]", None, None


def parse_message(message: dict, value: dict) -> ParsedMessage:
    """Flatten one entry of value.messages into a ParsedMessage."""
    phone = message.get("from", "")
    contacts = value.get("contacts") or []
    contact = next(
        (c for c in contacts if c.get("wa_id") in (phone, phone.replace("+", ""))),
        None,
    )
    metadata = value.get("metadata") or {}
    reply_context = message.get("context")
    content, media_id, media_type = _message_content(message)

    return ParsedMessage(
        message_id=message.get("id", ""),
        phone=phone,
        phone_normalized=normalize_phone(phone),
        timestamp=datetime.fromtimestamp(int(message.get("timestamp", 0)), tz=timezone.utc),
        message_type=message.get("type", ""),
        content=content,
        contact_name=(contact or {}).get("profile", {}).get("name"),
        media_id=media_id,
        media_type=media_type,
        metadata={
            "phone_number_id": metadata.get("phone_number_id"),
            "display_phone_number": metadata.get("display_phone_number"),
            "is_reply": bool(reply_context),
            "reply_to_message_id": (reply_context or {}).get("id"),
        },
    )


def should_apply_status(current: str | None, new: str) -> bool:
    if new == "failed":
        return True
    if new not in _STATUS_ORDER:
        return False
    current_index = _STATUS_ORDER.index(current) if current in _STATUS_ORDER else -1
    return _STATUS_ORDER.index(new) > current_index


def iter_message_changes(payload: dict):
    """Yield each `value` of changes whose field is "messages"."""
    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            if change.get("field") == "messages":
                yield change.get("value") or {}
