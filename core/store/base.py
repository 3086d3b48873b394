"""
Storage contract for the booking engine.

Services talk to a BookingStore, never to a database driver. Two
implementations exist: PostgresBookingStore (production) and
InMemoryBookingStore (tests, local development). Both provide the same
compare-and-set guarantees:

- claim_slot only succeeds on an available slot, in one write.
- release_slot with a reference only frees a slot bound to that reference.
- apply_status_change only succeeds if the booking is still in the expected
  status, and writes the history row in the same unit of work.
- a booking has at most one pending reschedule request, and
  update_reschedule_request only succeeds while the request is still in
  the expected status.

Implementations raise core.exceptions.StorageError (StorageTimeout when a
time budget is exceeded) for infrastructure failures.
"""

from datetime import date, datetime
from typing import Any, Protocol
from uuid import UUID

from core.models import (
    Booking,
    BookingStatus,
    Customer,
    RescheduleRequest,
    RescheduleRequestStatus,
    Service,
    ServicePricing,
    StatusHistoryEntry,
    TimeSlot,
)


class BookingStore(Protocol):
    # Customers

    def get_customer(self, customer_id: UUID) -> Customer | None: ...

    def get_customer_by_email(self, email: str) -> Customer | None: ...

    def insert_customer(self, customer: Customer) -> Customer:
        """Insert, or return the existing row if the email is already taken."""
        ...

    # Catalog

    def get_service(self, service_id: UUID) -> Service | None: ...

    def insert_service(self, service: Service) -> Service: ...

    def get_service_pricing(self, service_id: UUID) -> ServicePricing | None: ...

    def upsert_service_pricing(self, pricing: ServicePricing) -> ServicePricing: ...

    # Slots

    def insert_slots(self, slots: list[TimeSlot]) -> list[TimeSlot]: ...

    def get_slot(self, slot_id: UUID) -> TimeSlot | None: ...

    def claim_slot(self, slot_id: UUID, booking_reference: str, now: datetime) -> TimeSlot | None:
        """Bind an available slot to a reference. None if nothing was claimed."""
        ...

    def release_slot(
        self, slot_id: UUID, booking_reference: str | None, now: datetime
    ) -> TimeSlot | None:
        """Make a claimed slot available. None if nothing was released."""
        ...

    def list_available_slots(self, date_from: date, date_to: date) -> list[TimeSlot]: ...

    # Bookings

    def insert_booking(self, booking: Booking) -> Booking: ...

    def get_booking(self, booking_id: UUID) -> Booking | None: ...

    def get_booking_by_reference(self, booking_reference: str) -> Booking | None: ...

    def apply_status_change(
        self,
        booking_id: UUID,
        expected_status: BookingStatus,
        changes: dict[str, Any],
        entry: StatusHistoryEntry,
    ) -> Booking | None:
        """
        Update the booking if its status is still expected_status, and append
        the history entry in the same unit of work.

        None if the booking is missing or its status moved on.
        """
        ...

    # History

    def insert_status_history(self, entry: StatusHistoryEntry) -> StatusHistoryEntry: ...

    def list_status_history(self, booking_id: UUID) -> list[StatusHistoryEntry]:
        """Oldest first."""
        ...

    # Reschedule requests

    def insert_reschedule_request(self, request: RescheduleRequest) -> RescheduleRequest | None:
        """Store a pending request. None if the booking already has one pending."""
        ...

    def get_reschedule_request(self, request_id: UUID) -> RescheduleRequest | None: ...

    def list_reschedule_requests(
        self,
        status: RescheduleRequestStatus | None = None,
        booking_id: UUID | None = None,
    ) -> list[RescheduleRequest]:
        """Oldest first."""
        ...

    def update_reschedule_request(
        self,
        request_id: UUID,
        expected_status: RescheduleRequestStatus,
        changes: dict[str, Any],
    ) -> RescheduleRequest | None:
        """Update the request if it is still in expected_status. None otherwise."""
        ...
