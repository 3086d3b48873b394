"""Tests for SlotLedger claim/release semantics."""

import threading
from datetime import time, timedelta
from uuid import uuid4

import pytest

from core.models import ClaimOutcome, TimeSlotCreate
from tests.conftest import FUTURE_DAY


class TestTryClaim:

    def test_claims_available_slot(self, slot_ledger, slots):
        outcome = slot_ledger.try_claim(slots["morning"].id, "LFD-AAAAAAAA")

        assert outcome == ClaimOutcome.CLAIMED
        slot = slot_ledger.get_slot(slots["morning"].id)
        assert slot.is_available is False
        assert slot.booking_reference == "LFD-AAAAAAAA"

    def test_second_claim_loses(self, slot_ledger, slots):
        slot_ledger.try_claim(slots["morning"].id, "LFD-AAAAAAAA")

        outcome = slot_ledger.try_claim(slots["morning"].id, "LFD-BBBBBBBB")

        assert outcome == ClaimOutcome.ALREADY_CLAIMED
        assert slot_ledger.get_slot(slots["morning"].id).booking_reference == "LFD-AAAAAAAA"

    def test_unknown_slot(self, slot_ledger):
        assert slot_ledger.try_claim(uuid4(), "LFD-AAAAAAAA") == ClaimOutcome.NOT_FOUND

    def test_past_slot_is_expired_even_if_available(self, slot_ledger, slots):
        assert slots["past"].is_available is True

        outcome = slot_ledger.try_claim(slots["past"].id, "LFD-AAAAAAAA")

        assert outcome == ClaimOutcome.EXPIRED
        assert slot_ledger.get_slot(slots["past"].id).is_available is True

    def test_slot_starting_now_is_expired(self, slot_ledger, slots, clock):
        # Morning slot is 10:00 London (09:00 UTC in June)
        clock.now = slot_ledger.starts_at(slots["morning"])

        assert slot_ledger.try_claim(slots["morning"].id, "LFD-AAAAAAAA") == ClaimOutcome.EXPIRED

    def test_slot_start_uses_business_timezone(self, slot_ledger, slots):
        starts = slot_ledger.starts_at(slots["morning"])

        assert starts.utcoffset() == timedelta(0)
        assert starts.hour == 9

    def test_concurrent_claims_have_exactly_one_winner(self, slot_ledger, slots):
        slot_id = slots["afternoon"].id
        barrier = threading.Barrier(8)
        outcomes = {}

        def claim(n):
            barrier.wait()
            outcomes[n] = slot_ledger.try_claim(slot_id, f"LFD-RACE000{n}")

        threads = [threading.Thread(target=claim, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        winners = [n for n, o in outcomes.items() if o == ClaimOutcome.CLAIMED]
        assert len(winners) == 1
        assert sum(o == ClaimOutcome.ALREADY_CLAIMED for o in outcomes.values()) == 7
        assert slot_ledger.get_slot(slot_id).booking_reference == f"LFD-RACE000{winners[0]}"


class TestRelease:

    def test_release_frees_slot(self, slot_ledger, slots):
        slot_ledger.try_claim(slots["morning"].id, "LFD-AAAAAAAA")

        assert slot_ledger.release(slots["morning"].id) is True

        slot = slot_ledger.get_slot(slots["morning"].id)
        assert slot.is_available is True
        assert slot.booking_reference is None

    def test_release_is_idempotent(self, slot_ledger, slots):
        slot_ledger.try_claim(slots["morning"].id, "LFD-AAAAAAAA")
        slot_ledger.release(slots["morning"].id, "LFD-AAAAAAAA")

        assert slot_ledger.release(slots["morning"].id, "LFD-AAAAAAAA") is False
        assert slot_ledger.get_slot(slots["morning"].id).is_available is True

    def test_release_with_reference_never_frees_another_claim(self, slot_ledger, slots):
        slot_ledger.try_claim(slots["morning"].id, "LFD-WINNER00")

        assert slot_ledger.release(slots["morning"].id, "LFD-LOSER000") is False
        assert slot_ledger.get_slot(slots["morning"].id).booking_reference == "LFD-WINNER00"

    def test_release_unknown_slot(self, slot_ledger):
        assert slot_ledger.release(uuid4()) is False


class TestSchedule:

    def test_seed_slots_are_available(self, slot_ledger):
        created = slot_ledger.seed_slots([
            TimeSlotCreate(slot_date=FUTURE_DAY, start_time=time(16, 0), duration_minutes=90),
        ])

        assert len(created) == 1
        assert created[0].is_available is True
        assert created[0].duration_minutes == 90

    def test_list_available_excludes_claimed_and_past(self, slot_ledger, slots):
        slot_ledger.try_claim(slots["morning"].id, "LFD-AAAAAAAA")

        found = slot_ledger.list_available(slots["past"].slot_date, FUTURE_DAY + timedelta(days=7))

        ids = [s.id for s in found]
        assert ids == [slots["afternoon"].id, slots["next_day"].id]

    def test_list_available_rejects_inverted_range(self, slot_ledger):
        with pytest.raises(ValueError):
            slot_ledger.list_available(FUTURE_DAY, FUTURE_DAY - timedelta(days=1))
