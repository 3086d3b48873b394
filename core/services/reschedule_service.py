"""
Reschedule requests.

Customers ask to move a booking; staff approve or decline. Approval runs
the lifecycle manager's reschedule (claim new slot, move, release old), so
the request itself never holds a slot. Deciding a request is a
compare-and-set on its pending status, so two admins cannot both act on it.
"""

import logging
from datetime import datetime
from typing import Callable
from uuid import UUID, uuid4

from core.exceptions import (
    BookingValidationError,
    RescheduleRequestConflict,
    RescheduleRequestNotFound,
    SlotConflict,
    SlotUnavailable,
    StorageError,
    TransitionNotPermitted,
)
from core.models import Actor, Booking, RescheduleRequest, RescheduleRequestStatus
from core.services.booking_service import BookingLifecycleManager
from core.store.base import BookingStore
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise TransitionNotPermitted("Only an admin can decide reschedule requests")


class RescheduleRequestService:
    """File, list and decide reschedule requests."""

    def __init__(
        self,
        store: BookingStore,
        bookings: BookingLifecycleManager,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.store = store
        self.bookings = bookings
        self.clock = clock

    def request_reschedule(
        self,
        booking_id: UUID,
        slot_id: UUID,
        actor: Actor,
        reason: str,
    ) -> RescheduleRequest:
        """
        File a request to move a booking to slot_id.

        The slot must be free and in the future now, but is not held; an
        admin approving later may still find it taken.

        Raises:
            BookingNotFound, InvalidStatusTransition, BookingValidationError,
            SlotUnavailable, SlotConflict, RescheduleRequestConflict, StorageError
        """
        booking = self.bookings.get_booking(booking_id)
        slot, _ = self.bookings.check_reschedule_target(booking, slot_id)
        if self.bookings.slots.is_expired(slot):
            raise SlotUnavailable(f"Time slot {slot_id} is no longer in the future", reason="expired")
        if not slot.is_available:
            raise SlotConflict(f"Time slot {slot_id} is already booked")

        now = self.clock()
        request = RescheduleRequest(
            id=uuid4(),
            booking_id=booking.id,
            customer_id=booking.customer_id,
            requested_slot_id=slot.id,
            requested_date=slot.slot_date,
            requested_start_time=slot.start_time,
            reason=reason,
            requested_by=actor.id,
            created_at=now,
            updated_at=now,
        )
        stored = self.store.insert_reschedule_request(request)
        if stored is None:
            raise RescheduleRequestConflict(
                f"Booking {booking.booking_reference} already has a pending reschedule request"
            )

        self._note(
            booking,
            actor,
            f"Reschedule requested for {slot.slot_date} {slot.start_time.strftime('%H:%M')}: {reason}",
        )
        logger.info(
            "Reschedule request %s filed for booking %s by %s", stored.id, booking.booking_reference, actor.id
        )
        return stored

    def get_request(self, request_id: UUID) -> RescheduleRequest:
        request = self.store.get_reschedule_request(request_id)
        if request is None:
            raise RescheduleRequestNotFound(f"Reschedule request {request_id} not found")
        return request

    def list_requests(
        self,
        status: RescheduleRequestStatus | str | None = None,
        booking_id: UUID | None = None,
    ) -> list[RescheduleRequest]:
        """Requests oldest first, optionally filtered."""
        if status is not None:
            try:
                status = RescheduleRequestStatus(status)
            except ValueError:
                raise BookingValidationError(f"Unknown reschedule request status '{status}'", field="status")
        return self.store.list_reschedule_requests(status=status, booking_id=booking_id)

    def approve(self, request_id: UUID, actor: Actor, response: str | None = None) -> Booking:
        """
        Approve a pending request and move the booking.

        If the move fails (slot taken meanwhile, booking no longer movable)
        the request goes back to pending and the error propagates.

        Raises:
            TransitionNotPermitted, RescheduleRequestNotFound,
            RescheduleRequestConflict, plus anything reschedule() raises
        """
        _require_admin(actor)
        request = self._decide(request_id, RescheduleRequestStatus.APPROVED, actor, response)

        moved = False
        try:
            booking = self.bookings.reschedule(
                request.booking_id,
                request.requested_slot_id,
                actor,
                reason=f"Reschedule request approved: {request.reason}",
            )
            moved = True
        finally:
            if not moved:
                self._reopen(request)

        logger.info("Reschedule request %s approved by %s", request.id, actor.id)
        return booking

    def decline(self, request_id: UUID, actor: Actor, response: str | None = None) -> RescheduleRequest:
        """
        Reject a pending request. The booking keeps its slot.

        Raises:
            TransitionNotPermitted, RescheduleRequestNotFound, RescheduleRequestConflict
        """
        _require_admin(actor)
        request = self._decide(request_id, RescheduleRequestStatus.REJECTED, actor, response)

        booking = self.bookings.get_booking(request.booking_id)
        self._note(booking, actor, f"Reschedule request declined: {response or 'no reason given'}")
        logger.info("Reschedule request %s declined by %s", request.id, actor.id)
        return request

    def _decide(
        self,
        request_id: UUID,
        decision: RescheduleRequestStatus,
        actor: Actor,
        response: str | None,
    ) -> RescheduleRequest:
        self.get_request(request_id)
        updated = self.store.update_reschedule_request(
            request_id,
            RescheduleRequestStatus.PENDING,
            {
                "status": decision,
                "responded_by": actor.id,
                "admin_response": response,
                "updated_at": self.clock(),
            },
        )
        if updated is None:
            raise RescheduleRequestConflict(
                f"Reschedule request {request_id} is no longer pending"
            )
        return updated

    def _reopen(self, request: RescheduleRequest) -> None:
        """Put an approved request back to pending after its move failed."""
        try:
            self.store.update_reschedule_request(
                request.id,
                RescheduleRequestStatus.APPROVED,
                {
                    "status": RescheduleRequestStatus.PENDING,
                    "responded_by": None,
                    "admin_response": None,
                    "updated_at": self.clock(),
                },
            )
        except StorageError:
            logger.exception("Reschedule request %s left approved after its move failed", request.id)

    def _note(self, booking: Booking, actor: Actor, reason: str) -> None:
        # Same status on both sides: an audit note, not a transition
        try:
            self.bookings.history.record(booking.id, booking.status, booking.status, actor, reason)
        except StorageError as e:
            logger.warning("History note not recorded for booking %s: %s", booking.booking_reference, e)
