"""WhatsApp Schemas: webhook processing result returned to Meta."""

from pydantic import BaseModel, Field


class WebhookProcessResult(BaseModel):
    """Always returned with 200; errors are reported per item, not as an HTTP failure."""
    success: bool = True
    messages_processed: int = 0
    messages_duplicate: int = 0
    statuses_processed: int = 0
    errors: list[str] = Field(default_factory=list)
