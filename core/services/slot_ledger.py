"""
Slot ledger: exclusive claims over bookable time slots.

The claim is the only synchronization point between concurrent bookings.
It is a single conditional write in the store, so of any number of
requests racing for one slot exactly one gets CLAIMED.
"""

import logging
from datetime import date, datetime
from typing import Callable
from uuid import UUID, uuid4

from core.config import BookingConfig
from core.models import ClaimOutcome, TimeSlot, TimeSlotCreate
from core.store.base import BookingStore
from utils.timezone import local_to_utc, now_utc

logger = logging.getLogger(__name__)


class SlotLedger:
    """Claim and release time slots."""

    def __init__(
        self,
        store: BookingStore,
        config: BookingConfig,
        clock: Callable[[], datetime] = now_utc,
    ):
        self.store = store
        self.config = config
        self.clock = clock

    def starts_at(self, slot: TimeSlot) -> datetime:
        """Slot start as a UTC instant."""
        return local_to_utc(slot.slot_date, slot.start_time, self.config.business_timezone)

    def is_expired(self, slot: TimeSlot) -> bool:
        """A slot is bookable only while its start is strictly in the future."""
        return self.starts_at(slot) <= self.clock()

    def get_slot(self, slot_id: UUID) -> TimeSlot | None:
        return self.store.get_slot(slot_id)

    def try_claim(self, slot_id: UUID, booking_reference: str) -> ClaimOutcome:
        """
        Bind a slot to a booking reference.

        The time check comes first: a past slot is EXPIRED even if it still
        shows as available.

        Returns:
            CLAIMED, ALREADY_CLAIMED, NOT_FOUND or EXPIRED
        """
        slot = self.store.get_slot(slot_id)
        if slot is None:
            return ClaimOutcome.NOT_FOUND
        if self.is_expired(slot):
            logger.info("Slot %s is in the past, not claimable", slot_id)
            return ClaimOutcome.EXPIRED

        claimed = self.store.claim_slot(slot_id, booking_reference, self.clock())
        if claimed is not None:
            logger.info("Slot %s claimed by %s", slot_id, booking_reference)
            return ClaimOutcome.CLAIMED

        # Zero rows: someone else holds it, or it vanished in between
        if self.store.get_slot(slot_id) is None:
            return ClaimOutcome.NOT_FOUND
        logger.info("Slot %s already claimed, %s lost the race", slot_id, booking_reference)
        return ClaimOutcome.ALREADY_CLAIMED

    def release(self, slot_id: UUID, booking_reference: str | None = None) -> bool:
        """
        Make a slot available again. Idempotent.

        With booking_reference, only a slot still bound to that reference is
        released, so compensation can never free another booking's claim.

        Returns:
            True if this call released the slot
        """
        released = self.store.release_slot(slot_id, booking_reference, self.clock())
        if released is not None:
            logger.info("Slot %s released (was %s)", slot_id, booking_reference or "any")
            return True
        return False

    def seed_slots(self, slots: list[TimeSlotCreate]) -> list[TimeSlot]:
        """Publish new available slots."""
        now = self.clock()
        created = self.store.insert_slots([
            TimeSlot(
                id=uuid4(),
                slot_date=s.slot_date,
                start_time=s.start_time,
                duration_minutes=s.duration_minutes,
                is_available=True,
                booking_reference=None,
                created_at=now,
                updated_at=now,
            )
            for s in slots
        ])
        logger.info("Seeded %d time slots", len(created))
        return created

    def list_available(self, date_from: date, date_to: date) -> list[TimeSlot]:
        """Available slots in the date range whose start is still in the future."""
        if date_to < date_from:
            raise ValueError("date_to must not be before date_from")
        return [
            slot for slot in self.store.list_available_slots(date_from, date_to)
            if not self.is_expired(slot)
        ]
