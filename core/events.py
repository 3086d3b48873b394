"""
Domain events for the booking engine.

Immutable event objects published after a booking change has been
persisted. Notification handlers subscribe to them; the publisher never
knows who is listening and never waits on a handler's outcome.

Events carry the full domain object so handlers don't need to re-fetch
state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class BookingEvent:
    """Base class for all booking domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


@dataclass(frozen=True)
class BookingCreated(BookingEvent):
    """A booking was persisted and its slot is held."""
    booking: Any = None  # Booking - Any to avoid circular import
    customer: Any = None  # Customer

    @classmethod
    def create(cls, booking: Any, customer: Any) -> "BookingCreated":
        return cls(booking=booking, customer=customer)


@dataclass(frozen=True)
class BookingStatusChanged(BookingEvent):
    """A booking moved between statuses."""
    booking: Any = None
    from_status: str = ""
    to_status: str = ""
    actor_id: str = ""
    reason: str | None = None

    @classmethod
    def create(
        cls, booking: Any, from_status: str, to_status: str, actor_id: str, reason: str | None = None
    ) -> "BookingStatusChanged":
        return cls(
            booking=booking,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor_id,
            reason=reason,
        )


@dataclass(frozen=True)
class BookingCancelled(BookingEvent):
    """A booking was cancelled or declined and its slot released."""
    booking: Any = None
    reason: str | None = None

    @classmethod
    def create(cls, booking: Any, reason: str | None = None) -> "BookingCancelled":
        return cls(booking=booking, reason=reason)


@dataclass(frozen=True)
class BookingRescheduled(BookingEvent):
    """A booking moved to a different slot."""
    booking: Any = None
    previous_slot_id: Any = None  # UUID

    @classmethod
    def create(cls, booking: Any, previous_slot_id: Any) -> "BookingRescheduled":
        return cls(booking=booking, previous_slot_id=previous_slot_id)
