"""
PostgreSQL BookingStore.

Slot claims and status changes are single conditional UPDATEs; the row
count tells the caller whether it won. The schema backs the same rules with
constraints, so a bug in application code cannot produce a slot that is
both available and bound, or two active bookings on one slot.
"""

import functools
import logging
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

import psycopg2
import psycopg2.errors
import psycopg2.extras

from clients.postgres_client import PostgresClient
from core.exceptions import StorageError, StorageTimeout
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

# uuid.UUID parameters adapt to the uuid type
psycopg2.extras.register_uuid()

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS customers (
    id UUID PRIMARY KEY,
    email TEXT NOT NULL,
    first_name TEXT NOT NULL,
    last_name TEXT NOT NULL,
    phone TEXT,
    role TEXT NOT NULL DEFAULT 'customer' CHECK (role IN ('customer', 'admin')),
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS customers_email_key ON customers (lower(email));

CREATE TABLE IF NOT EXISTS services (
    id UUID PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    duration_minutes INTEGER NOT NULL CHECK (duration_minutes > 0),
    is_active BOOLEAN NOT NULL DEFAULT true,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS service_pricing (
    service_id UUID PRIMARY KEY REFERENCES services (id),
    small_cents INTEGER CHECK (small_cents >= 0),
    medium_cents INTEGER CHECK (medium_cents >= 0),
    large_cents INTEGER CHECK (large_cents >= 0),
    extra_large_cents INTEGER CHECK (extra_large_cents >= 0),
    updated_at TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS time_slots (
    id UUID PRIMARY KEY,
    slot_date DATE NOT NULL,
    start_time TIME NOT NULL,
    duration_minutes INTEGER NOT NULL CHECK (duration_minutes > 0),
    is_available BOOLEAN NOT NULL DEFAULT true,
    booking_reference TEXT,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL,
    CONSTRAINT time_slots_claim_pairing
        CHECK (is_available = (booking_reference IS NULL)),
    CONSTRAINT time_slots_date_time_key UNIQUE (slot_date, start_time)
);

CREATE TABLE IF NOT EXISTS bookings (
    id UUID PRIMARY KEY,
    booking_reference TEXT NOT NULL UNIQUE,
    customer_id UUID NOT NULL REFERENCES customers (id),
    vehicle JSONB NOT NULL,
    service_address JSONB NOT NULL,
    service_id UUID NOT NULL REFERENCES services (id),
    time_slot_id UUID NOT NULL REFERENCES time_slots (id),
    scheduled_date DATE NOT NULL,
    scheduled_start_time TIME NOT NULL,
    scheduled_end_time TIME NOT NULL,
    estimated_duration_minutes INTEGER NOT NULL,
    base_price_cents INTEGER NOT NULL CHECK (base_price_cents >= 0),
    distance_surcharge_cents INTEGER NOT NULL CHECK (distance_surcharge_cents >= 0),
    total_price_cents INTEGER NOT NULL,
    pricing_breakdown JSONB NOT NULL,
    status TEXT NOT NULL,
    payment_status TEXT NOT NULL DEFAULT 'pending',
    payment_deadline TIMESTAMPTZ,
    special_instructions TEXT,
    cancellation_reason TEXT,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL,
    CONSTRAINT bookings_total_check
        CHECK (total_price_cents = base_price_cents + distance_surcharge_cents)
);
CREATE UNIQUE INDEX IF NOT EXISTS bookings_active_slot_key
    ON bookings (time_slot_id)
    WHERE status NOT IN ('cancelled', 'declined');

CREATE TABLE IF NOT EXISTS booking_status_history (
    id UUID PRIMARY KEY,
    seq BIGSERIAL,
    booking_id UUID NOT NULL REFERENCES bookings (id),
    from_status TEXT,
    to_status TEXT NOT NULL,
    actor TEXT NOT NULL,
    actor_role TEXT NOT NULL,
    reason TEXT,
    created_at TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS booking_status_history_booking_idx
    ON booking_status_history (booking_id, seq);

CREATE TABLE IF NOT EXISTS reschedule_requests (
    id UUID PRIMARY KEY,
    booking_id UUID NOT NULL REFERENCES bookings (id),
    customer_id UUID NOT NULL REFERENCES customers (id),
    requested_slot_id UUID NOT NULL REFERENCES time_slots (id),
    requested_date DATE NOT NULL,
    requested_start_time TIME NOT NULL,
    reason TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'approved', 'rejected')),
    requested_by TEXT NOT NULL,
    responded_by TEXT,
    admin_response TEXT,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS reschedule_requests_open_key
    ON reschedule_requests (booking_id)
    WHERE status = 'pending';
"""

_MUTABLE_BOOKING_COLUMNS = {
    "status",
    "cancellation_reason",
    "time_slot_id",
    "scheduled_date",
    "scheduled_start_time",
    "scheduled_end_time",
    "payment_status",
    "updated_at",
}

_MUTABLE_REQUEST_COLUMNS = {"status", "responded_by", "admin_response", "updated_at"}


def _translate_errors(operation: str):
    """Turn psycopg2 failures into StorageError / StorageTimeout."""

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except psycopg2.errors.QueryCanceled as e:
                logger.error("%s exceeded statement timeout", operation)
                raise StorageTimeout(f"{operation} timed out") from e
            except psycopg2.Error as e:
                logger.error("%s failed: %s", operation, e)
                raise StorageError(f"{operation} failed: {e}") from e
        return wrapper

    return decorator


def _value(value: Any) -> Any:
    """Adapt enums and UUIDs for psycopg2."""
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


class PostgresBookingStore:
    """BookingStore on PostgreSQL."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    def create_schema(self) -> None:
        """Create tables, constraints and indexes if missing."""
        self.postgres.execute(SCHEMA)
        logger.info("Booking schema ensured")

    # -------------------------------------------------------------------------
    # Customers
    # -------------------------------------------------------------------------

    @_translate_errors("get_customer")
    def get_customer(self, customer_id: UUID) -> Customer | None:
        row = self.postgres.execute_single(
            "SELECT * FROM customers WHERE id = %s", (customer_id,)
        )
        return Customer.model_validate(row) if row else None

    @_translate_errors("get_customer_by_email")
    def get_customer_by_email(self, email: str) -> Customer | None:
        row = self.postgres.execute_single(
            "SELECT * FROM customers WHERE lower(email) = lower(%s)", (email.strip(),)
        )
        return Customer.model_validate(row) if row else None

    @_translate_errors("insert_customer")
    def insert_customer(self, customer: Customer) -> Customer:
        rows = self.postgres.execute_returning(
            """
            INSERT INTO customers (
                id, email, first_name, last_name, phone, role, created_at, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT DO NOTHING
            RETURNING *
            """,
            (
                customer.id, customer.email, customer.first_name, customer.last_name,
                customer.phone, customer.role.value, customer.created_at, customer.updated_at,
            ),
        )
        if rows:
            return Customer.model_validate(rows[0])
        # Lost an insert race on the email; the winner's row is the customer
        return self.get_customer_by_email(customer.email)

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    @_translate_errors("get_service")
    def get_service(self, service_id: UUID) -> Service | None:
        row = self.postgres.execute_single(
            "SELECT * FROM services WHERE id = %s", (service_id,)
        )
        return Service.model_validate(row) if row else None

    @_translate_errors("insert_service")
    def insert_service(self, service: Service) -> Service:
        row = self.postgres.execute_returning(
            """
            INSERT INTO services (
                id, name, description, duration_minutes, is_active, created_at, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                service.id, service.name, service.description, service.duration_minutes,
                service.is_active, service.created_at, service.updated_at,
            ),
        )[0]
        return Service.model_validate(row)

    @_translate_errors("get_service_pricing")
    def get_service_pricing(self, service_id: UUID) -> ServicePricing | None:
        row = self.postgres.execute_single(
            "SELECT * FROM service_pricing WHERE service_id = %s", (service_id,)
        )
        return ServicePricing.model_validate(row) if row else None

    @_translate_errors("upsert_service_pricing")
    def upsert_service_pricing(self, pricing: ServicePricing) -> ServicePricing:
        row = self.postgres.execute_returning(
            """
            INSERT INTO service_pricing (
                service_id, small_cents, medium_cents, large_cents, extra_large_cents, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (service_id) DO UPDATE SET
                small_cents = EXCLUDED.small_cents,
                medium_cents = EXCLUDED.medium_cents,
                large_cents = EXCLUDED.large_cents,
                extra_large_cents = EXCLUDED.extra_large_cents,
                updated_at = EXCLUDED.updated_at
            RETURNING *
            """,
            (
                pricing.service_id, pricing.small_cents, pricing.medium_cents,
                pricing.large_cents, pricing.extra_large_cents, pricing.updated_at,
            ),
        )[0]
        return ServicePricing.model_validate(row)

    # -------------------------------------------------------------------------
    # Slots
    # -------------------------------------------------------------------------

    @_translate_errors("insert_slots")
    def insert_slots(self, slots: list[TimeSlot]) -> list[TimeSlot]:
        created = []
        with self.postgres.transaction() as cur:
            for slot in slots:
                cur.execute(
                    """
                    INSERT INTO time_slots (
                        id, slot_date, start_time, duration_minutes,
                        is_available, booking_reference, created_at, updated_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                    """,
                    (
                        str(slot.id), slot.slot_date, slot.start_time, slot.duration_minutes,
                        slot.is_available, slot.booking_reference, slot.created_at, slot.updated_at,
                    ),
                )
                created.append(TimeSlot.model_validate(dict(cur.fetchone())))
        return created

    @_translate_errors("get_slot")
    def get_slot(self, slot_id: UUID) -> TimeSlot | None:
        row = self.postgres.execute_single(
            "SELECT * FROM time_slots WHERE id = %s", (slot_id,)
        )
        return TimeSlot.model_validate(row) if row else None

    @_translate_errors("claim_slot")
    def claim_slot(self, slot_id: UUID, booking_reference: str, now: datetime) -> TimeSlot | None:
        rows = self.postgres.execute_returning(
            """
            UPDATE time_slots
            SET is_available = false, booking_reference = %s, updated_at = %s
            WHERE id = %s AND is_available = true
            RETURNING *
            """,
            (booking_reference, now, slot_id),
        )
        return TimeSlot.model_validate(rows[0]) if rows else None

    @_translate_errors("release_slot")
    def release_slot(
        self, slot_id: UUID, booking_reference: str | None, now: datetime
    ) -> TimeSlot | None:
        if booking_reference is None:
            rows = self.postgres.execute_returning(
                """
                UPDATE time_slots
                SET is_available = true, booking_reference = NULL, updated_at = %s
                WHERE id = %s AND is_available = false
                RETURNING *
                """,
                (now, slot_id),
            )
        else:
            rows = self.postgres.execute_returning(
                """
                UPDATE time_slots
                SET is_available = true, booking_reference = NULL, updated_at = %s
                WHERE id = %s AND is_available = false AND booking_reference = %s
                RETURNING *
                """,
                (now, slot_id, booking_reference),
            )
        return TimeSlot.model_validate(rows[0]) if rows else None

    @_translate_errors("list_available_slots")
    def list_available_slots(self, date_from: date, date_to: date) -> list[TimeSlot]:
        rows = self.postgres.execute(
            """
            SELECT * FROM time_slots
            WHERE is_available = true AND slot_date BETWEEN %s AND %s
            ORDER BY slot_date, start_time
            """,
            (date_from, date_to),
        )
        return [TimeSlot.model_validate(row) for row in rows]

    # -------------------------------------------------------------------------
    # Bookings
    # -------------------------------------------------------------------------

    @_translate_errors("insert_booking")
    def insert_booking(self, booking: Booking) -> Booking:
        row = self.postgres.execute_returning(
            """
            INSERT INTO bookings (
                id, booking_reference, customer_id, vehicle, service_address,
                service_id, time_slot_id, scheduled_date, scheduled_start_time,
                scheduled_end_time, estimated_duration_minutes,
                base_price_cents, distance_surcharge_cents, total_price_cents,
                pricing_breakdown, status, payment_status, payment_deadline,
                special_instructions, cancellation_reason, created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s, %s,
                %s, %s, %s, %s,
                %s, %s,
                %s, %s, %s,
                %s, %s, %s, %s,
                %s, %s, %s, %s
            )
            RETURNING *
            """,
            (
                booking.id, booking.booking_reference, booking.customer_id,
                psycopg2.extras.Json(booking.vehicle.model_dump(mode="json")),
                psycopg2.extras.Json(booking.service_address.model_dump(mode="json")),
                booking.service_id, booking.time_slot_id, booking.scheduled_date,
                booking.scheduled_start_time, booking.scheduled_end_time,
                booking.estimated_duration_minutes,
                booking.base_price_cents, booking.distance_surcharge_cents, booking.total_price_cents,
                psycopg2.extras.Json(booking.pricing_breakdown.model_dump(mode="json")),
                booking.status.value, booking.payment_status.value, booking.payment_deadline,
                booking.special_instructions, booking.cancellation_reason,
                booking.created_at, booking.updated_at,
            ),
        )[0]
        return Booking.model_validate(row)

    @_translate_errors("get_booking")
    def get_booking(self, booking_id: UUID) -> Booking | None:
        row = self.postgres.execute_single(
            "SELECT * FROM bookings WHERE id = %s", (booking_id,)
        )
        return Booking.model_validate(row) if row else None

    @_translate_errors("get_booking_by_reference")
    def get_booking_by_reference(self, booking_reference: str) -> Booking | None:
        row = self.postgres.execute_single(
            "SELECT * FROM bookings WHERE booking_reference = %s", (booking_reference,)
        )
        return Booking.model_validate(row) if row else None

    @_translate_errors("apply_status_change")
    def apply_status_change(
        self,
        booking_id: UUID,
        expected_status: BookingStatus,
        changes: dict[str, Any],
        entry: StatusHistoryEntry,
    ) -> Booking | None:
        unknown = set(changes) - _MUTABLE_BOOKING_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update booking columns: {sorted(unknown)}")

        # Column names come from the whitelist above, never from input
        set_clause = ", ".join(f"{column} = %s" for column in changes)
        params = [_value(v) for v in changes.values()]
        params.extend([str(booking_id), expected_status.value])

        with self.postgres.transaction() as cur:
            cur.execute(
                f"""
                UPDATE bookings SET {set_clause}
                WHERE id = %s AND status = %s
                RETURNING *
                """,
                params,
            )
            row = cur.fetchone()
            if row is None:
                return None
            self._insert_history(cur, entry)
            return Booking.model_validate(dict(row))

    # -------------------------------------------------------------------------
    # Reschedule requests
    # -------------------------------------------------------------------------

    @_translate_errors("insert_reschedule_request")
    def insert_reschedule_request(self, request: RescheduleRequest) -> RescheduleRequest | None:
        rows = self.postgres.execute_returning(
            """
            INSERT INTO reschedule_requests (
                id, booking_id, customer_id, requested_slot_id, requested_date,
                requested_start_time, reason, status, requested_by, responded_by,
                admin_response, created_at, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (booking_id) WHERE status = 'pending' DO NOTHING
            RETURNING *
            """,
            (
                request.id, request.booking_id, request.customer_id, request.requested_slot_id,
                request.requested_date, request.requested_start_time, request.reason,
                request.status.value, request.requested_by, request.responded_by,
                request.admin_response, request.created_at, request.updated_at,
            ),
        )
        return RescheduleRequest.model_validate(rows[0]) if rows else None

    @_translate_errors("get_reschedule_request")
    def get_reschedule_request(self, request_id: UUID) -> RescheduleRequest | None:
        row = self.postgres.execute_single(
            "SELECT * FROM reschedule_requests WHERE id = %s", (request_id,)
        )
        return RescheduleRequest.model_validate(row) if row else None

    @_translate_errors("list_reschedule_requests")
    def list_reschedule_requests(
        self,
        status: RescheduleRequestStatus | None = None,
        booking_id: UUID | None = None,
    ) -> list[RescheduleRequest]:
        rows = self.postgres.execute(
            """
            SELECT * FROM reschedule_requests
            WHERE (%s::text IS NULL OR status = %s)
              AND (%s::uuid IS NULL OR booking_id = %s)
            ORDER BY created_at
            """,
            (_value(status), _value(status), _value(booking_id), _value(booking_id)),
        )
        return [RescheduleRequest.model_validate(row) for row in rows]

    @_translate_errors("update_reschedule_request")
    def update_reschedule_request(
        self,
        request_id: UUID,
        expected_status: RescheduleRequestStatus,
        changes: dict[str, Any],
    ) -> RescheduleRequest | None:
        unknown = set(changes) - _MUTABLE_REQUEST_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update reschedule request columns: {sorted(unknown)}")

        # Column names come from the whitelist above, never from input
        set_clause = ", ".join(f"{column} = %s" for column in changes)
        params = [_value(v) for v in changes.values()]
        params.extend([str(request_id), expected_status.value])

        rows = self.postgres.execute_returning(
            f"""
            UPDATE reschedule_requests SET {set_clause}
            WHERE id = %s AND status = %s
            RETURNING *
            """,
            params,
        )
        return RescheduleRequest.model_validate(rows[0]) if rows else None

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    @_translate_errors("insert_status_history")
    def insert_status_history(self, entry: StatusHistoryEntry) -> StatusHistoryEntry:
        with self.postgres.transaction() as cur:
            self._insert_history(cur, entry)
        return entry

    @_translate_errors("list_status_history")
    def list_status_history(self, booking_id: UUID) -> list[StatusHistoryEntry]:
        rows = self.postgres.execute(
            """
            SELECT * FROM booking_status_history
            WHERE booking_id = %s
            ORDER BY seq
            """,
            (booking_id,),
        )
        return [StatusHistoryEntry.model_validate(row) for row in rows]

    def _insert_history(self, cur, entry: StatusHistoryEntry) -> None:
        cur.execute(
            """
            INSERT INTO booking_status_history (
                id, booking_id, from_status, to_status, actor, actor_role, reason, created_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                str(entry.id), str(entry.booking_id),
                entry.from_status.value if entry.from_status else None,
                entry.to_status.value, entry.actor, entry.actor_role.value,
                entry.reason, entry.created_at,
            ),
        )
