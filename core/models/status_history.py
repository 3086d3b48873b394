"""Booking status history (append-only audit of transitions)."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from core.models.actor import ActorRole
from core.models.booking import BookingStatus


class StatusHistoryEntry(BaseModel):
    """One transition. from_status is None only for the creation row."""

    id: UUID
    booking_id: UUID
    from_status: BookingStatus | None
    to_status: BookingStatus
    actor: str
    actor_role: ActorRole
    reason: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
