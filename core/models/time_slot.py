"""Bookable time slot domain models."""

from datetime import date, datetime, time
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class ClaimOutcome(str, Enum):
    """Result of trying to claim a slot for a booking."""

    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already_claimed"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"


class TimeSlotCreate(BaseModel):
    """A slot published by schedule administration."""

    slot_date: date
    start_time: time
    duration_minutes: int = Field(120, ge=15, le=600)


class TimeSlot(BaseModel):
    """
    Full time slot entity as stored.

    slot_date and start_time are wall-clock values in the business
    timezone. A slot is either available with no reference, or claimed by
    exactly one booking reference.
    """

    id: UUID
    slot_date: date
    start_time: time
    duration_minutes: int
    is_available: bool
    booking_reference: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def validate_claim_pairing(self) -> "TimeSlot":
        if self.is_available != (self.booking_reference is None):
            raise ValueError("is_available must be true exactly when booking_reference is empty")
        return self

    @property
    def is_claimed(self) -> bool:
        return not self.is_available
