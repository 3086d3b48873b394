"""Tests for PostgresBookingStore error translation.

These run without a database: the PostgresClient is a mock.
"""

from unittest.mock import Mock
from uuid import uuid4

import psycopg2
import psycopg2.errors
import pytest

from clients.postgres_client import PostgresClient
from core.exceptions import StorageError, StorageTimeout
from core.models import BookingStatus, RescheduleRequestStatus
from core.store.postgres_store import SCHEMA, PostgresBookingStore, _value
from tests.conftest import NOW


@pytest.fixture
def postgres():
    return Mock(spec=PostgresClient)


@pytest.fixture
def pg_store(postgres):
    return PostgresBookingStore(postgres)


class TestErrorTranslation:

    def test_statement_timeout_becomes_storage_timeout(self, postgres, pg_store):
        postgres.execute_single.side_effect = psycopg2.errors.QueryCanceled("canceling statement")

        with pytest.raises(StorageTimeout, match="get_slot timed out"):
            pg_store.get_slot(uuid4())

    def test_driver_error_becomes_storage_error(self, postgres, pg_store):
        postgres.execute_returning.side_effect = psycopg2.OperationalError("server closed the connection")

        with pytest.raises(StorageError, match="claim_slot failed") as exc:
            pg_store.claim_slot(uuid4(), "LFD-A0000001", NOW)
        assert not isinstance(exc.value, StorageTimeout)

    def test_unlisted_column_is_programming_error(self, postgres, pg_store):
        with pytest.raises(ValueError, match="total_price_cents"):
            pg_store.apply_status_change(uuid4(), BookingStatus.PENDING, {"total_price_cents": 0}, Mock())
        postgres.transaction.assert_not_called()


class TestQueries:

    def test_claim_is_conditional_update(self, postgres, pg_store):
        postgres.execute_returning.return_value = []

        assert pg_store.claim_slot(uuid4(), "LFD-A0000001", NOW) is None
        sql = postgres.execute_returning.call_args.args[0]
        assert "is_available = true" in sql

    def test_release_without_reference_is_unguarded(self, postgres, pg_store):
        postgres.execute_returning.return_value = []

        pg_store.release_slot(uuid4(), None, NOW)

        sql = postgres.execute_returning.call_args.args[0]
        assert "booking_reference = %s" not in sql

    def test_pending_request_insert_skips_on_conflict(self, postgres, pg_store):
        postgres.execute_returning.return_value = []

        assert pg_store.insert_reschedule_request(Mock(status=RescheduleRequestStatus.PENDING)) is None
        sql = postgres.execute_returning.call_args.args[0]
        assert "ON CONFLICT (booking_id) WHERE status = 'pending' DO NOTHING" in sql

    def test_request_decision_is_conditional_update(self, postgres, pg_store):
        postgres.execute_returning.return_value = []
        request_id = uuid4()

        decided = pg_store.update_reschedule_request(
            request_id,
            RescheduleRequestStatus.PENDING,
            {"status": RescheduleRequestStatus.REJECTED, "updated_at": NOW},
        )

        assert decided is None
        sql, params = postgres.execute_returning.call_args.args
        assert "WHERE id = %s AND status = %s" in sql
        assert params == ["rejected", NOW, str(request_id), "pending"]

    def test_request_update_rejects_unlisted_columns(self, postgres, pg_store):
        with pytest.raises(ValueError, match="reason"):
            pg_store.update_reschedule_request(uuid4(), RescheduleRequestStatus.PENDING, {"reason": "x"})
        postgres.execute_returning.assert_not_called()

    def test_list_requests_passes_filters(self, postgres, pg_store):
        postgres.execute.return_value = []
        booking_id = uuid4()

        pg_store.list_reschedule_requests(status=RescheduleRequestStatus.PENDING, booking_id=booking_id)

        sql, params = postgres.execute.call_args.args
        assert "ORDER BY created_at" in sql
        assert params == ("pending", "pending", str(booking_id), str(booking_id))

    def test_create_schema(self, postgres, pg_store):
        pg_store.create_schema()

        postgres.execute.assert_called_once_with(SCHEMA)


class TestSchema:

    def test_schema_enforces_claim_pairing(self):
        assert "is_available = (booking_reference IS NULL)" in SCHEMA

    def test_schema_enforces_one_active_booking_per_slot(self):
        assert "bookings_active_slot_key" in SCHEMA

    def test_schema_allows_one_pending_request_per_booking(self):
        assert "reschedule_requests_open_key" in SCHEMA

    def test_value_adapts_enums_and_uuids(self):
        booking_id = uuid4()

        assert _value(BookingStatus.CANCELLED) == "cancelled"
        assert _value(booking_id) == str(booking_id)
        assert _value(None) is None
