"""
In-process BookingStore.

Holds everything in dicts guarded by one lock. The lock gives the same
compare-and-set semantics as the conditional UPDATEs in the Postgres store,
so concurrency tests against this store exercise the real service code.
"""

import logging
import threading
from datetime import date, datetime
from typing import Any
from uuid import UUID

from core.exceptions import StorageError
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

logger = logging.getLogger(__name__)

_MUTABLE_BOOKING_FIELDS = {
    "status",
    "cancellation_reason",
    "time_slot_id",
    "scheduled_date",
    "scheduled_start_time",
    "scheduled_end_time",
    "payment_status",
    "updated_at",
}

_MUTABLE_REQUEST_FIELDS = {"status", "responded_by", "admin_response", "updated_at"}


class InMemoryBookingStore:
    """BookingStore backed by dictionaries."""

    def __init__(self):
        self._lock = threading.Lock()
        self._customers: dict[UUID, Customer] = {}
        self._services: dict[UUID, Service] = {}
        self._pricing: dict[UUID, ServicePricing] = {}
        self._slots: dict[UUID, TimeSlot] = {}
        self._bookings: dict[UUID, Booking] = {}
        self._history: dict[UUID, list[StatusHistoryEntry]] = {}
        self._reschedule_requests: dict[UUID, RescheduleRequest] = {}

    # -------------------------------------------------------------------------
    # Customers
    # -------------------------------------------------------------------------

    def get_customer(self, customer_id: UUID) -> Customer | None:
        with self._lock:
            return self._customers.get(customer_id)

    def get_customer_by_email(self, email: str) -> Customer | None:
        with self._lock:
            return self._find_customer(email)

    def insert_customer(self, customer: Customer) -> Customer:
        with self._lock:
            existing = self._find_customer(customer.email)
            if existing is not None:
                return existing
            self._customers[customer.id] = customer
            return customer

    def _find_customer(self, email: str) -> Customer | None:
        wanted = email.strip().lower()
        for customer in self._customers.values():
            if customer.email.lower() == wanted:
                return customer
        return None

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    def get_service(self, service_id: UUID) -> Service | None:
        with self._lock:
            return self._services.get(service_id)

    def insert_service(self, service: Service) -> Service:
        with self._lock:
            self._services[service.id] = service
            return service

    def get_service_pricing(self, service_id: UUID) -> ServicePricing | None:
        with self._lock:
            return self._pricing.get(service_id)

    def upsert_service_pricing(self, pricing: ServicePricing) -> ServicePricing:
        with self._lock:
            self._pricing[pricing.service_id] = pricing
            return pricing

    # -------------------------------------------------------------------------
    # Slots
    # -------------------------------------------------------------------------

    def insert_slots(self, slots: list[TimeSlot]) -> list[TimeSlot]:
        with self._lock:
            for slot in slots:
                self._slots[slot.id] = slot
            return list(slots)

    def get_slot(self, slot_id: UUID) -> TimeSlot | None:
        with self._lock:
            return self._slots.get(slot_id)

    def claim_slot(self, slot_id: UUID, booking_reference: str, now: datetime) -> TimeSlot | None:
        with self._lock:
            slot = self._slots.get(slot_id)
            if slot is None or not slot.is_available:
                return None
            claimed = slot.model_copy(update={
                "is_available": False,
                "booking_reference": booking_reference,
                "updated_at": now,
            })
            self._slots[slot_id] = claimed
            return claimed

    def release_slot(
        self, slot_id: UUID, booking_reference: str | None, now: datetime
    ) -> TimeSlot | None:
        with self._lock:
            slot = self._slots.get(slot_id)
            if slot is None or slot.is_available:
                return None
            if booking_reference is not None and slot.booking_reference != booking_reference:
                return None
            released = slot.model_copy(update={
                "is_available": True,
                "booking_reference": None,
                "updated_at": now,
            })
            self._slots[slot_id] = released
            return released

    def list_available_slots(self, date_from: date, date_to: date) -> list[TimeSlot]:
        with self._lock:
            slots = [
                s for s in self._slots.values()
                if s.is_available and date_from <= s.slot_date <= date_to
            ]
        return sorted(slots, key=lambda s: (s.slot_date, s.start_time))

    # -------------------------------------------------------------------------
    # Bookings
    # -------------------------------------------------------------------------

    def insert_booking(self, booking: Booking) -> Booking:
        with self._lock:
            for existing in self._bookings.values():
                if existing.booking_reference == booking.booking_reference:
                    raise StorageError(f"Duplicate booking reference {booking.booking_reference}")
            self._bookings[booking.id] = booking
            return booking

    def get_booking(self, booking_id: UUID) -> Booking | None:
        with self._lock:
            return self._bookings.get(booking_id)

    def get_booking_by_reference(self, booking_reference: str) -> Booking | None:
        with self._lock:
            for booking in self._bookings.values():
                if booking.booking_reference == booking_reference:
                    return booking
            return None

    def apply_status_change(
        self,
        booking_id: UUID,
        expected_status: BookingStatus,
        changes: dict[str, Any],
        entry: StatusHistoryEntry,
    ) -> Booking | None:
        unknown = set(changes) - _MUTABLE_BOOKING_FIELDS
        if unknown:
            raise ValueError(f"Cannot update booking fields: {sorted(unknown)}")

        with self._lock:
            booking = self._bookings.get(booking_id)
            if booking is None or booking.status != expected_status:
                return None
            # Re-validate so window and totals invariants still hold
            updated = Booking.model_validate({**booking.model_dump(), **changes})
            self._bookings[booking_id] = updated
            self._history.setdefault(booking_id, []).append(entry)
            return updated

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    def insert_status_history(self, entry: StatusHistoryEntry) -> StatusHistoryEntry:
        with self._lock:
            self._history.setdefault(entry.booking_id, []).append(entry)
            return entry

    def list_status_history(self, booking_id: UUID) -> list[StatusHistoryEntry]:
        with self._lock:
            return list(self._history.get(booking_id, []))

    # -------------------------------------------------------------------------
    # Reschedule requests
    # -------------------------------------------------------------------------

    def insert_reschedule_request(self, request: RescheduleRequest) -> RescheduleRequest | None:
        with self._lock:
            for existing in self._reschedule_requests.values():
                if existing.booking_id == request.booking_id and existing.is_open:
                    return None
            self._reschedule_requests[request.id] = request
            return request

    def get_reschedule_request(self, request_id: UUID) -> RescheduleRequest | None:
        with self._lock:
            return self._reschedule_requests.get(request_id)

    def list_reschedule_requests(
        self,
        status: RescheduleRequestStatus | None = None,
        booking_id: UUID | None = None,
    ) -> list[RescheduleRequest]:
        with self._lock:
            found = [
                r for r in self._reschedule_requests.values()
                if (status is None or r.status == status)
                and (booking_id is None or r.booking_id == booking_id)
            ]
        return sorted(found, key=lambda r: r.created_at)

    def update_reschedule_request(
        self,
        request_id: UUID,
        expected_status: RescheduleRequestStatus,
        changes: dict[str, Any],
    ) -> RescheduleRequest | None:
        unknown = set(changes) - _MUTABLE_REQUEST_FIELDS
        if unknown:
            raise ValueError(f"Cannot update reschedule request fields: {sorted(unknown)}")

        with self._lock:
            request = self._reschedule_requests.get(request_id)
            if request is None or request.status != expected_status:
                return None
            updated = request.model_copy(update=changes)
            self._reschedule_requests[request_id] = updated
            return updated
