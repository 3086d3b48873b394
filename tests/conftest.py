"""Shared test fixtures for the booking engine test suite."""

import os
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from api.app import build_services
from clients.postgres_client import PostgresClient
from core.config import BookingConfig, RoleAssignmentPolicy
from core.event_bus import EventBus
from core.models import (
    Actor,
    ActorRole,
    ServiceCreate,
    ServicePricingUpdate,
    TimeSlotCreate,
)
from core.store.memory_store import InMemoryBookingStore
from core.store.postgres_store import PostgresBookingStore
from utils.actor_context import clear_current_actor


# =============================================================================
# CONSTANTS
# =============================================================================

# 09:00 in London (BST)
NOW = datetime(2026, 6, 1, 8, 0, tzinfo=timezone.utc)

FUTURE_DAY = date(2026, 6, 10)
PAST_DAY = date(2026, 5, 28)

ADMIN_EMAIL = "owner@lfdetailing.co.uk"


class FrozenClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# =============================================================================
# CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_actor_context():
    """Ensure clean actor context before and after each test."""
    clear_current_actor()
    yield
    clear_current_actor()


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def admin_actor() -> Actor:
    return Actor(id="admin-1", role=ActorRole.ADMIN)


@pytest.fixture
def system_actor() -> Actor:
    return Actor.system()


# =============================================================================
# ENGINE FIXTURES
# =============================================================================


@pytest.fixture
def config() -> BookingConfig:
    return BookingConfig()


@pytest.fixture
def store():
    return InMemoryBookingStore()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def published(event_bus):
    """Every event published on the bus, in order."""
    events = []
    for name in ("BookingCreated", "BookingStatusChanged", "BookingCancelled", "BookingRescheduled"):
        event_bus.subscribe(name, events.append)
    return events


@pytest.fixture
def services(store, config, event_bus, clock):
    return build_services(
        store,
        config=config,
        roles=RoleAssignmentPolicy(admin_emails=ADMIN_EMAIL),
        event_bus=event_bus,
        clock=clock,
    )


@pytest.fixture
def manager(services):
    return services["bookings"]


@pytest.fixture
def slot_ledger(services):
    return services["slots"]


@pytest.fixture
def pricing_service(services):
    return services["pricing"]


@pytest.fixture
def history_recorder(services):
    return services["history"]


# =============================================================================
# CATALOG & SCHEDULE FIXTURES
# =============================================================================


@pytest.fixture
def detail_service(pricing_service):
    """A 2 hour full valet priced for every size class."""
    service = pricing_service.create_service(ServiceCreate(name="Full Valet", duration_minutes=120))
    pricing_service.update_service_pricing(service.id, ServicePricingUpdate(
        small_cents=4500,
        medium_cents=5500,
        large_cents=6500,
        extra_large_cents=7500,
    ))
    return service


@pytest.fixture
def slots(slot_ledger):
    """Three future slots and one past slot."""
    created = slot_ledger.seed_slots([
        TimeSlotCreate(slot_date=FUTURE_DAY, start_time=time(10, 0)),
        TimeSlotCreate(slot_date=FUTURE_DAY, start_time=time(13, 0)),
        TimeSlotCreate(slot_date=FUTURE_DAY + timedelta(days=1), start_time=time(10, 0)),
        TimeSlotCreate(slot_date=PAST_DAY, start_time=time(10, 0)),
    ])
    return {
        "morning": created[0],
        "afternoon": created[1],
        "next_day": created[2],
        "past": created[3],
    }


@pytest.fixture
def make_request(detail_service, slots):
    """Factory for booking request bodies."""

    def _make(slot_key: str = "morning", **overrides) -> dict:
        body = {
            "customer": {
                "email": "jane@example.com",
                "first_name": "Jane",
                "last_name": "Driver",
                "phone": "07700 900123",
            },
            "vehicle": {
                "make": "Volkswagen",
                "model": "Golf",
                "year": 2019,
                "color": "Blue",
                "registration": "ab19 xyz",
                "size": "M",
            },
            "address": {
                "address_line_1": "12 Brixton Road",
                "city": "London",
                "postcode": "sw9 6bu",
            },
            "service_id": str(detail_service.id),
            "slot_id": str(slots[slot_key].id),
            "distance_km": 3.2,
        }
        body.update(overrides)
        return body

    return _make


@pytest.fixture
def booking(manager, make_request):
    """A freshly created pending booking on the morning slot."""
    return manager.create_booking(make_request())


# =============================================================================
# POSTGRES FIXTURES (skipped without DATABASE_URL)
# =============================================================================


@pytest.fixture(scope="session")
def database_url():
    url = os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("DATABASE_URL not set")
    return url


@pytest.fixture
def postgres(database_url):
    client = PostgresClient(database_url, statement_timeout_ms=2000)
    yield client
    client.close()


@pytest.fixture
def pg_store(postgres):
    """Empty booking schema on the test database."""
    store = PostgresBookingStore(postgres)
    store.create_schema()
    postgres.execute(
        "TRUNCATE reschedule_requests, booking_status_history, bookings, time_slots, service_pricing, services, customers"
    )
    return store
