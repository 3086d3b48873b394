"""Tests for StatusHistoryRecorder."""

from uuid import uuid4

import pytest

from core.models import Actor, ActorRole, BookingStatus
from core.services.status_history_service import StatusHistoryRecorder


class TestRecord:
    """Tests for StatusHistoryRecorder.record."""

    def test_appends_row_without_touching_booking(self, history_recorder, manager, booking, system_actor):
        """record() only writes history; the booking keeps its status."""
        history_recorder.record(
            booking.id, BookingStatus.PENDING, BookingStatus.CONFIRMED, system_actor, "Imported"
        )

        assert manager.get_booking(booking.id).status == BookingStatus.PENDING
        rows = history_recorder.history(booking.id)
        assert len(rows) == 2
        assert rows[1].actor == "system"
        assert rows[1].actor_role == ActorRole.SYSTEM

    def test_uses_injected_clock(self, history_recorder, clock, admin_actor):
        entry = history_recorder.record(uuid4(), None, BookingStatus.PENDING, admin_actor)

        assert entry.created_at == clock.now


class TestApply:
    """Tests for StatusHistoryRecorder.apply."""

    def test_returns_updated_booking(self, history_recorder, booking, admin_actor):
        updated = history_recorder.apply(booking, BookingStatus.CONFIRMED, admin_actor)

        assert updated.status == BookingStatus.CONFIRMED
        assert history_recorder.history(booking.id)[-1].from_status == BookingStatus.PENDING

    def test_stale_booking_returns_none(self, history_recorder, booking, admin_actor):
        """Second writer from the same snapshot loses and writes no history."""
        history_recorder.apply(booking, BookingStatus.CONFIRMED, admin_actor)

        assert history_recorder.apply(booking, BookingStatus.DECLINED, admin_actor) is None
        assert len(history_recorder.history(booking.id)) == 2

    def test_unknown_field_change_rejected(self, history_recorder, booking, admin_actor):
        with pytest.raises(ValueError):
            history_recorder.apply(
                booking, BookingStatus.CONFIRMED, admin_actor, changes={"total_price_cents": 1}
            )


class TestReplay:
    """History must reconstruct the booking's current status."""

    def test_replay_matches_current_status(self, manager, booking, admin_actor):
        manager.transition_status(booking.id, "confirmed", admin_actor)
        manager.transition_status(booking.id, "cancelled", admin_actor)
        manager.transition_status(booking.id, "pending", admin_actor)

        history = manager.get_status_history(booking.id)

        assert StatusHistoryRecorder.replay(history) == manager.get_booking(booking.id).status

    def test_empty_history(self):
        assert StatusHistoryRecorder.replay([]) is None

    def test_gap_in_chain_raises(self, history_recorder, booking):
        actor = Actor(id="admin-1", role=ActorRole.ADMIN)
        history_recorder.record(booking.id, BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS, actor)

        with pytest.raises(ValueError, match="expected pending"):
            StatusHistoryRecorder.replay(history_recorder.history(booking.id))
