"""Customer requests to move a booking, reviewed by staff."""

from datetime import date, datetime, time
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class RescheduleRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RescheduleRequest(BaseModel):
    """
    A request to move a booking to another slot.

    At most one request per booking is pending at a time. Approval moves
    the booking; the requested slot is not held while the request waits.
    """

    id: UUID
    booking_id: UUID
    customer_id: UUID
    requested_slot_id: UUID
    requested_date: date
    requested_start_time: time
    reason: str = Field(..., min_length=1, max_length=1000)
    status: RescheduleRequestStatus = RescheduleRequestStatus.PENDING
    requested_by: str
    responded_by: str | None = None
    admin_response: str | None = Field(None, max_length=1000)
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_open(self) -> bool:
        return self.status == RescheduleRequestStatus.PENDING
