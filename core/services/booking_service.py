"""
Booking lifecycle manager.

Creates bookings and moves them through the status machine. Creation runs
validate -> price -> claim slot -> insert -> record history -> publish, and
the slot claim is the commit point: nothing is written before it, and any
failure after it (including the caller going away) releases the claim
before the error reaches the caller.
"""

import logging
import secrets
import string
from contextlib import contextmanager
from datetime import datetime, time, timedelta
from typing import Any, Callable
from uuid import UUID, uuid4

from pydantic import ValidationError

from core.config import BookingConfig
from core.event_bus import EventBus
from core.events import BookingCancelled, BookingCreated, BookingRescheduled, BookingStatusChanged
from core.exceptions import (
    BookingNotFound,
    BookingTimeout,
    BookingValidationError,
    InvalidStatusTransition,
    PaymentStatusConflict,
    PersistenceError,
    SlotConflict,
    SlotUnavailable,
    StorageError,
    StorageTimeout,
    TransitionNotPermitted,
)
from core.models import (
    Actor,
    ActorRole,
    AddressSnapshot,
    Booking,
    BookingRequest,
    BookingStatus,
    CancellationPolicy,
    ClaimOutcome,
    Customer,
    PaymentStatus,
    StatusHistoryEntry,
    TimeSlot,
    VehicleSnapshot,
)
from core.models.booking import (
    CANCELLABLE_STATUSES,
    CUSTOMER_TARGETS,
    SLOT_RELEASING_STATUSES,
    can_transition,
    is_reactivation,
)
from core.services.customer_service import CustomerService
from core.services.pricing_service import PricingService, parse_size_class
from core.services.slot_ledger import SlotLedger
from core.services.status_history_service import StatusHistoryRecorder
from core.store.base import BookingStore
from utils.actor_context import get_optional_actor
from utils.timezone import add_minutes, local_to_utc, now_utc

logger = logging.getLogger(__name__)

_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits
_REFERENCE_LENGTH = 8
_REFERENCE_ATTEMPTS = 5


@contextmanager
def _storage_errors():
    """Surface store failures as booking persistence errors."""
    try:
        yield
    except StorageTimeout as e:
        raise BookingTimeout(str(e)) from e
    except StorageError as e:
        raise PersistenceError(str(e)) from e


def _raise_for_claim(outcome: ClaimOutcome, slot_id: UUID) -> None:
    if outcome == ClaimOutcome.CLAIMED:
        return
    if outcome == ClaimOutcome.ALREADY_CLAIMED:
        raise SlotConflict(f"Time slot {slot_id} has just been booked by someone else")
    if outcome == ClaimOutcome.EXPIRED:
        raise SlotUnavailable(f"Time slot {slot_id} is no longer in the future", reason="expired")
    raise SlotUnavailable(f"Time slot {slot_id} does not exist", reason="not_found")


class BookingLifecycleManager:
    """Create bookings and apply status transitions."""

    def __init__(
        self,
        store: BookingStore,
        config: BookingConfig,
        pricing: PricingService,
        slots: SlotLedger,
        history: StatusHistoryRecorder,
        customers: CustomerService,
        event_bus: EventBus,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.store = store
        self.config = config
        self.pricing = pricing
        self.slots = slots
        self.history = history
        self.customers = customers
        self.event_bus = event_bus
        self.clock = clock

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def _random_reference(self) -> str:
        suffix = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(_REFERENCE_LENGTH))
        return f"{self.config.reference_prefix}-{suffix}"

    def generate_reference(self) -> str:
        """
        Unused human-readable booking reference, e.g. LFD-7K2Q9XWD.

        Raises:
            StorageError: Every attempt collided with an existing booking
        """
        for _ in range(_REFERENCE_ATTEMPTS):
            reference = self._random_reference()
            if self.store.get_booking_by_reference(reference) is None:
                return reference
            logger.warning("Booking reference %s already in use, drawing another", reference)
        raise StorageError(f"No unused booking reference after {_REFERENCE_ATTEMPTS} attempts")

    def create_booking(self, request: BookingRequest | dict[str, Any]) -> Booking:
        """
        Create a booking and claim its time slot.

        Args:
            request: BookingRequest, or the raw request body

        Returns:
            The persisted booking, in the configured initial status

        Raises:
            BookingValidationError: Request malformed; nothing persisted
            PricingError: Price could not be resolved; nothing persisted
            SlotConflict: Slot was claimed by a concurrent booking
            SlotUnavailable: Slot is past or does not exist
            PersistenceError: Storage failed; any claim has been released
            BookingTimeout: A storage or geocoding call timed out
        """
        request = self._validate(request)

        size = parse_size_class(request.vehicle.size)
        with _storage_errors():
            service, base_price = self.pricing.resolve_base_price(request.service_id, size)
            distance = self.pricing.distance.quote(
                postcode=request.address.postcode,
                distance_km=request.distance_km,
            )
            breakdown = self.pricing.build_breakdown(service, size, base_price, distance)

            slot = self.slots.get_slot(request.slot_id)
            if slot is None:
                raise SlotUnavailable(f"Time slot {request.slot_id} does not exist", reason="not_found")
            end_time = self._end_time(slot, service.duration_minutes)

            customer = self.customers.resolve_or_create_customer(request.customer)
            reference = self.generate_reference()
            outcome = self.slots.try_claim(request.slot_id, reference)
        _raise_for_claim(outcome, request.slot_id)

        inserted = False
        try:
            now = self.clock()
            booking = Booking(
                id=uuid4(),
                booking_reference=reference,
                customer_id=customer.id,
                vehicle=VehicleSnapshot.capture(request.vehicle, size),
                service_address=AddressSnapshot.capture(request.address),
                service_id=service.id,
                time_slot_id=slot.id,
                scheduled_date=slot.slot_date,
                scheduled_start_time=slot.start_time,
                scheduled_end_time=end_time,
                estimated_duration_minutes=service.duration_minutes,
                base_price_cents=breakdown.base_price_cents,
                distance_surcharge_cents=breakdown.distance_surcharge_cents,
                total_price_cents=breakdown.total_price_cents,
                pricing_breakdown=breakdown,
                status=BookingStatus(self.config.initial_status),
                payment_status=PaymentStatus.PENDING,
                payment_deadline=now + timedelta(hours=self.config.payment_deadline_hours),
                special_instructions=request.special_instructions,
                cancellation_reason=None,
                created_at=now,
                updated_at=now,
            )
            with _storage_errors():
                booking = self.store.insert_booking(booking)
            inserted = True
        finally:
            # Also runs on KeyboardInterrupt / worker shutdown
            if not inserted:
                self._compensate(request.slot_id, reference)

        logger.info(
            "Booking %s created for slot %s (%s, total %d)",
            booking.booking_reference, slot.id, booking.status.value, booking.total_price_cents,
        )

        self._record_creation(booking, customer)
        self.event_bus.publish(BookingCreated.create(booking, customer))
        return booking

    def _validate(self, request: BookingRequest | dict[str, Any]) -> BookingRequest:
        if isinstance(request, BookingRequest):
            return request
        try:
            return BookingRequest.model_validate(request)
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first["loc"])
            raise BookingValidationError(f"{field}: {first['msg']}", field=field) from e

    def _end_time(self, slot: TimeSlot, duration_minutes: int):
        try:
            return add_minutes(slot.start_time, duration_minutes)
        except ValueError as e:
            raise BookingValidationError(
                f"A {duration_minutes} minute service starting at {slot.start_time.strftime('%H:%M')} "
                "would run past midnight",
                field="slot_id",
            ) from e

    def _compensate(self, slot_id: UUID, reference: str) -> None:
        """Release a claim made by a booking that was never persisted."""
        try:
            released = self.slots.release(slot_id, reference)
        except StorageError:
            logger.exception(
                "Compensating release failed: slot %s may still be held by %s", slot_id, reference
            )
            return
        if released:
            logger.warning("Released slot %s after failed booking %s", slot_id, reference)

    def _record_creation(self, booking: Booking, customer: Customer) -> None:
        actor = get_optional_actor() or Actor(id=str(customer.id), role=ActorRole.CUSTOMER)
        try:
            self.history.record(booking.id, None, booking.status, actor, "Booking created")
        except StorageError as e:
            # Booking stays valid; history gap is repaired out of band
            logger.warning(
                "Creation history not recorded for booking %s: %s", booking.booking_reference, e
            )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_booking(self, booking_id: UUID) -> Booking:
        """
        Raises:
            BookingNotFound: No booking with this id
        """
        booking = self.store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {booking_id} not found")
        return booking

    def get_booking_by_reference(self, booking_reference: str) -> Booking:
        booking = self.store.get_booking_by_reference(booking_reference.strip().upper())
        if booking is None:
            raise BookingNotFound(f"Booking {booking_reference} not found")
        return booking

    def get_status_history(self, booking_id: UUID) -> list[StatusHistoryEntry]:
        self.get_booking(booking_id)
        return self.history.history(booking_id)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def transition_status(
        self,
        booking_id: UUID,
        new_status: BookingStatus | str,
        actor: Actor,
        reason: str | None = None,
    ) -> Booking:
        """
        Move a booking to a new status.

        Customers may only cancel; every other move is staff work. Cancelling
        or declining releases the slot. Reactivating a cancelled or declined
        booking (admin only) re-claims its original slot first.

        Raises:
            BookingNotFound: Unknown booking
            InvalidStatusTransition: Edge not in the status machine, or the
                booking changed status concurrently
            TransitionNotPermitted: Customer asking for anything but a
                cancellation, or non-admin reactivation
            SlotConflict / SlotUnavailable: Reactivation could not get the slot back
            StorageError: Store failed
        """
        booking = self.get_booking(booking_id)
        try:
            target = BookingStatus(new_status)
        except ValueError:
            raise InvalidStatusTransition(booking.status.value, str(new_status), f"Unknown status '{new_status}'")

        if not can_transition(booking.status, target):
            raise InvalidStatusTransition(booking.status.value, target.value)

        reactivating = is_reactivation(booking.status, target)
        if reactivating and not actor.is_admin:
            raise TransitionNotPermitted(
                f"Only an admin can reactivate a {booking.status.value} booking"
            )
        if not actor.is_staff and target not in CUSTOMER_TARGETS:
            raise TransitionNotPermitted(
                f"Only staff can move a booking to {target.value}"
            )
        if reactivating:
            self._reclaim(booking)

        changes: dict[str, Any] = {}
        if target in SLOT_RELEASING_STATUSES:
            changes["cancellation_reason"] = reason
        elif reactivating:
            changes["cancellation_reason"] = None

        applied = False
        try:
            updated = self.history.apply(booking, target, actor, reason, changes)
            if updated is None:
                raise InvalidStatusTransition(
                    booking.status.value,
                    target.value,
                    f"Booking {booking.booking_reference} changed status concurrently; reload and retry",
                )
            applied = True
        finally:
            if reactivating and not applied:
                self._compensate(booking.time_slot_id, booking.booking_reference)

        if target in SLOT_RELEASING_STATUSES:
            try:
                self.slots.release(updated.time_slot_id, updated.booking_reference)
            except StorageError as e:
                # Status change is committed; the slot is freed by a later release_slot()
                logger.warning(
                    "Booking %s is %s but slot %s is still bound (%s); run release_slot(%s)",
                    updated.booking_reference, target.value, updated.time_slot_id, e, updated.id,
                )

        self.event_bus.publish(BookingStatusChanged.create(
            updated, booking.status.value, target.value, actor.id, reason
        ))
        if target in SLOT_RELEASING_STATUSES:
            self.event_bus.publish(BookingCancelled.create(updated, reason))
        return updated

    def _reclaim(self, booking: Booking) -> None:
        outcome = self.slots.try_claim(booking.time_slot_id, booking.booking_reference)
        if outcome == ClaimOutcome.ALREADY_CLAIMED:
            slot = self.slots.get_slot(booking.time_slot_id)
            if slot is not None and slot.booking_reference == booking.booking_reference:
                # Never released; still ours
                return
        _raise_for_claim(outcome, booking.time_slot_id)

    def release_slot(self, booking_id: UUID) -> None:
        """
        Release the slot held by a cancelled or declined booking. Idempotent.

        Raises:
            BookingNotFound: Unknown booking
            InvalidStatusTransition: Booking is still active and owns its slot
        """
        booking = self.get_booking(booking_id)
        if booking.holds_slot:
            raise InvalidStatusTransition(
                booking.status.value,
                booking.status.value,
                f"Booking {booking.booking_reference} is {booking.status.value} and still holds its slot",
            )
        self.slots.release(booking.time_slot_id, booking.booking_reference)

    def check_reschedule_target(self, booking: Booking, new_slot_id: UUID) -> tuple[TimeSlot, time]:
        """
        The slot a booking would move to, and the service end time in it.

        Does not look at whether the slot is free; claiming decides that.
        """
        if not can_transition(booking.status, BookingStatus.RESCHEDULED):
            raise InvalidStatusTransition(booking.status.value, BookingStatus.RESCHEDULED.value)
        if new_slot_id == booking.time_slot_id:
            raise BookingValidationError("Booking is already in this time slot", field="slot_id")

        new_slot = self.slots.get_slot(new_slot_id)
        if new_slot is None:
            raise SlotUnavailable(f"Time slot {new_slot_id} does not exist", reason="not_found")
        return new_slot, self._end_time(new_slot, booking.estimated_duration_minutes)

    def reschedule(
        self,
        booking_id: UUID,
        new_slot_id: UUID,
        actor: Actor,
        reason: str | None = None,
    ) -> Booking:
        """
        Move a booking to a different slot and mark it rescheduled.

        Staff only; customers go through a reschedule request. The new slot
        is claimed before the booking changes and the old slot is released
        after, so the booking always holds at least one slot.

        Raises:
            BookingNotFound, InvalidStatusTransition, TransitionNotPermitted,
            BookingValidationError, SlotConflict, SlotUnavailable, StorageError
        """
        if not actor.is_staff:
            raise TransitionNotPermitted("Customers request a reschedule; staff apply it")
        booking = self.get_booking(booking_id)
        new_slot, end_time = self.check_reschedule_target(booking, new_slot_id)

        _raise_for_claim(self.slots.try_claim(new_slot_id, booking.booking_reference), new_slot_id)

        moved = False
        try:
            updated = self.history.apply(
                booking,
                BookingStatus.RESCHEDULED,
                actor,
                reason,
                changes={
                    "time_slot_id": new_slot.id,
                    "scheduled_date": new_slot.slot_date,
                    "scheduled_start_time": new_slot.start_time,
                    "scheduled_end_time": end_time,
                },
            )
            if updated is None:
                raise InvalidStatusTransition(
                    booking.status.value,
                    BookingStatus.RESCHEDULED.value,
                    f"Booking {booking.booking_reference} changed concurrently; reload and retry",
                )
            moved = True
        finally:
            if not moved:
                self._compensate(new_slot_id, booking.booking_reference)

        try:
            self.slots.release(booking.time_slot_id, booking.booking_reference)
        except StorageError as e:
            logger.warning(
                "Booking %s moved to slot %s but old slot %s is still bound (%s)",
                booking.booking_reference, new_slot_id, booking.time_slot_id, e,
            )

        self.event_bus.publish(BookingRescheduled.create(updated, booking.time_slot_id))
        self.event_bus.publish(BookingStatusChanged.create(
            updated, booking.status.value, BookingStatus.RESCHEDULED.value, actor.id, reason
        ))
        return updated

    # -------------------------------------------------------------------------
    # Payment state
    # -------------------------------------------------------------------------

    def update_payment_status(
        self,
        booking_id: UUID,
        payment_status: PaymentStatus | str,
        actor: Actor,
        reason: str | None = None,
    ) -> Booking:
        """
        Record a payment state change made outside this system (admin only).

        Marking a pending booking paid also confirms it. Every change leaves a
        history row; when the booking status stays put the row goes from the
        current status to itself.

        Raises:
            BookingNotFound: Unknown booking
            TransitionNotPermitted: Actor is not an admin
            PaymentStatusConflict: Unknown value, no change, or a refund of an
                unpaid booking
            InvalidStatusTransition: Booking changed concurrently
            StorageError: Store failed
        """
        if not actor.is_admin:
            raise TransitionNotPermitted("Only an admin can change payment status")
        booking = self.get_booking(booking_id)
        current = booking.payment_status.value
        try:
            target = PaymentStatus(payment_status)
        except ValueError:
            raise PaymentStatusConflict(current, str(payment_status), f"Unknown payment status '{payment_status}'")

        if target == booking.payment_status:
            raise PaymentStatusConflict(current, target.value, f"Payment is already {target.value}")
        if target == PaymentStatus.REFUNDED and booking.payment_status != PaymentStatus.PAID:
            raise PaymentStatusConflict(current, target.value, "Only a paid booking can be refunded")

        new_status = booking.status
        if target == PaymentStatus.PAID and booking.status == BookingStatus.PENDING:
            new_status = BookingStatus.CONFIRMED

        updated = self.history.apply(
            booking,
            new_status,
            actor,
            reason or f"Payment {current} -> {target.value}",
            changes={"payment_status": target},
        )
        if updated is None:
            raise InvalidStatusTransition(
                booking.status.value,
                new_status.value,
                f"Booking {booking.booking_reference} changed concurrently; reload and retry",
            )

        logger.info(
            "Booking %s payment %s -> %s by %s", booking.booking_reference, current, target.value, actor.id
        )
        if new_status != booking.status:
            self.event_bus.publish(BookingStatusChanged.create(
                updated, booking.status.value, new_status.value, actor.id, reason
            ))
        return updated

    def check_cancellation_policy(self, booking_id: UUID) -> CancellationPolicy:
        """Whether the booking can be cancelled now, and whether a refund applies."""
        booking = self.get_booking(booking_id)
        notice = self.config.cancellation_notice_hours
        starts_at = local_to_utc(
            booking.scheduled_date, booking.scheduled_start_time, self.config.business_timezone
        )
        hours_until = round((starts_at - self.clock()).total_seconds() / 3600, 2)

        if booking.status not in CANCELLABLE_STATUSES:
            return CancellationPolicy(
                can_cancel=False,
                refund_eligible=False,
                hours_until_service=hours_until,
                notice_hours=notice,
                message=f"A {booking.status.value} booking cannot be cancelled",
            )
        if hours_until <= 0:
            return CancellationPolicy(
                can_cancel=False,
                refund_eligible=False,
                hours_until_service=hours_until,
                notice_hours=notice,
                message="The service time has already passed",
            )
        if hours_until < notice:
            return CancellationPolicy(
                can_cancel=True,
                refund_eligible=False,
                hours_until_service=hours_until,
                notice_hours=notice,
                message=f"Cancellations with less than {notice} hours notice are not refunded",
            )
        return CancellationPolicy(
            can_cancel=True,
            refund_eligible=True,
            hours_until_service=hours_until,
            notice_hours=notice,
            message="Free cancellation",
        )
