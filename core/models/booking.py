"""Booking domain models and the booking status machine."""

from datetime import date, datetime, time
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from core.models.address import AddressDetails, AddressSnapshot
from core.models.customer import CustomerContact
from core.models.pricing import PricingBreakdown
from core.models.vehicle import VehicleDetails, VehicleSnapshot
from utils.timezone import add_minutes


class BookingStatus(str, Enum):
    """Booking lifecycle status."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    RESCHEDULED = "rescheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment state. Capture itself happens outside this system."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.DECLINED,
        BookingStatus.CANCELLED,
        BookingStatus.RESCHEDULED,
    }),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.IN_PROGRESS,
        BookingStatus.CANCELLED,
        BookingStatus.RESCHEDULED,
    }),
    BookingStatus.RESCHEDULED: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.IN_PROGRESS,
        BookingStatus.CANCELLED,
        BookingStatus.RESCHEDULED,
    }),
    BookingStatus.IN_PROGRESS: frozenset({BookingStatus.COMPLETED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset({BookingStatus.PENDING}),
    BookingStatus.DECLINED: frozenset({BookingStatus.PENDING}),
}

# Statuses that no longer hold a slot
SLOT_RELEASING_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.DECLINED})

# Reactivation re-claims the slot and is admin only
REACTIVATION_SOURCES = frozenset({BookingStatus.CANCELLED, BookingStatus.DECLINED})

CANCELLABLE_STATUSES = frozenset({
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.RESCHEDULED,
})

# The only move a customer makes on their own booking; the rest is staff work
CUSTOMER_TARGETS = frozenset({BookingStatus.CANCELLED})


def can_transition(from_status: BookingStatus, to_status: BookingStatus) -> bool:
    """Whether the status machine has an edge from_status -> to_status."""
    return to_status in ALLOWED_TRANSITIONS[from_status]


def is_reactivation(from_status: BookingStatus, to_status: BookingStatus) -> bool:
    return from_status in REACTIVATION_SOURCES and to_status == BookingStatus.PENDING


class BookingRequest(BaseModel):
    """Everything the booking form submits."""

    customer: CustomerContact
    vehicle: VehicleDetails
    address: AddressDetails
    service_id: UUID
    slot_id: UUID
    special_instructions: str | None = Field(None, max_length=2000)
    distance_km: float | None = Field(
        None,
        ge=0,
        description="Precomputed distance from base; skips geocoding when set",
    )


class Booking(BaseModel):
    """Full booking entity as stored."""

    id: UUID
    booking_reference: str
    customer_id: UUID
    vehicle: VehicleSnapshot
    service_address: AddressSnapshot
    service_id: UUID
    time_slot_id: UUID
    scheduled_date: date
    scheduled_start_time: time
    scheduled_end_time: time
    estimated_duration_minutes: int = Field(..., ge=1)
    base_price_cents: int = Field(..., ge=0)
    distance_surcharge_cents: int = Field(..., ge=0)
    total_price_cents: int = Field(..., ge=0)
    pricing_breakdown: PricingBreakdown
    status: BookingStatus
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_deadline: datetime | None = None
    special_instructions: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def validate_totals_and_window(self) -> "Booking":
        if self.total_price_cents != self.base_price_cents + self.distance_surcharge_cents:
            raise ValueError("total_price_cents must equal base_price_cents + distance_surcharge_cents")
        expected_end = add_minutes(self.scheduled_start_time, self.estimated_duration_minutes)
        if self.scheduled_end_time != expected_end:
            raise ValueError("scheduled_end_time must equal scheduled_start_time + estimated_duration_minutes")
        return self

    @property
    def holds_slot(self) -> bool:
        """Whether this booking should currently own its time slot."""
        return self.status not in SLOT_RELEASING_STATUSES

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self.status]


class CancellationPolicy(BaseModel):
    """Whether a booking can be cancelled now, and on what terms."""

    can_cancel: bool
    refund_eligible: bool
    hours_until_service: float
    notice_hours: int
    message: str
