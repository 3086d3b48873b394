"""
Status history recorder.

Append-only log of booking status transitions. apply() is the only code
path that changes Booking.status: the status compare-and-set and the
history row are one unit of work in the store.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Iterable
from uuid import UUID, uuid4

from core.models import Actor, Booking, BookingStatus, StatusHistoryEntry
from core.store.base import BookingStore
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class StatusHistoryRecorder:
    """Write and read booking status history."""

    def __init__(self, store: BookingStore, clock: Callable[[], datetime] = now_utc):
        self.store = store
        self.clock = clock

    def _entry(
        self,
        booking_id: UUID,
        from_status: BookingStatus | None,
        to_status: BookingStatus,
        actor: Actor,
        reason: str | None,
    ) -> StatusHistoryEntry:
        return StatusHistoryEntry(
            id=uuid4(),
            booking_id=booking_id,
            from_status=from_status,
            to_status=to_status,
            actor=actor.id,
            actor_role=actor.role,
            reason=reason,
            created_at=self.clock(),
        )

    def record(
        self,
        booking_id: UUID,
        from_status: BookingStatus | None,
        to_status: BookingStatus,
        actor: Actor,
        reason: str | None = None,
    ) -> StatusHistoryEntry:
        """
        Append a history row without touching the booking.

        Used for the creation row and for transitions applied out of band
        (e.g. an admin correcting a status directly in the database).
        """
        entry = self.store.insert_status_history(
            self._entry(booking_id, from_status, to_status, actor, reason)
        )
        logger.info(
            "Status history: booking %s %s -> %s by %s",
            booking_id,
            from_status.value if from_status else None,
            to_status.value,
            actor.id,
        )
        return entry

    def apply(
        self,
        booking: Booking,
        new_status: BookingStatus,
        actor: Actor,
        reason: str | None = None,
        changes: dict[str, Any] | None = None,
    ) -> Booking | None:
        """
        Move a booking to new_status and append its history row atomically.

        The write only succeeds if the booking is still in booking.status.

        Args:
            booking: Booking as last read by the caller
            new_status: Target status
            actor: Who is making the change
            reason: Free-text reason, stored on the history row
            changes: Other booking fields to update in the same write

        Returns:
            Updated booking, or None if another writer changed the status first
        """
        now = self.clock()
        update = dict(changes or {})
        update["status"] = new_status
        update["updated_at"] = now

        entry = self._entry(booking.id, booking.status, new_status, actor, reason)
        updated = self.store.apply_status_change(booking.id, booking.status, update, entry)
        if updated is None:
            logger.info(
                "Status change %s -> %s on booking %s lost to a concurrent update",
                booking.status.value, new_status.value, booking.id,
            )
            return None

        logger.info(
            "Booking %s: %s -> %s by %s (%s)",
            booking.booking_reference, booking.status.value, new_status.value,
            actor.id, actor.role.value,
        )
        return updated

    def history(self, booking_id: UUID) -> list[StatusHistoryEntry]:
        """History rows for a booking, oldest first."""
        return self.store.list_status_history(booking_id)

    @staticmethod
    def replay(entries: Iterable[StatusHistoryEntry]) -> BookingStatus | None:
        """
        Status a booking ends up in after applying entries in order.

        Raises:
            ValueError: If an entry does not start where the previous one ended
        """
        status = None
        for entry in entries:
            if entry.from_status != status:
                raise ValueError(
                    f"History entry {entry.id} starts at "
                    f"{entry.from_status.value if entry.from_status else None}, "
                    f"expected {status.value if status else None}"
                )
            status = entry.to_status
        return status
