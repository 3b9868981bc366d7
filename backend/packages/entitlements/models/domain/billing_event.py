"""
Domain models for the billing event log.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from packages.entitlements.models.domain.enums import EventOutcome


class BillingEvent(BaseModel):
    id: int
    event_id: str
    event_type: str
    received_at: datetime
    claimed_at: Optional[datetime] = None
    processed: bool = False
    processed_at: Optional[datetime] = None
    outcome: Optional[EventOutcome] = None
    error_message: Optional[str] = None
    user_id: Optional[str] = None
    raw_payload: dict[str, Any] = Field(default_factory=dict)

    class Config:
        from_attributes = True


class WebhookResult(BaseModel):
    """What the processor reports back to the delivery endpoint."""

    event_id: str
    event_type: str
    outcome: EventOutcome
    duplicate: bool = False
    user_id: Optional[str] = None
    message: Optional[str] = None
