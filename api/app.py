"""
Application assembly.

build_services() wires the engine around any BookingStore; create_app()
puts the HTTP surface on top. create_production_app() reads secrets from
Vault and connects PostgreSQL, Valkey and the email gateway.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Callable

import redis
from dotenv import load_dotenv
from fastapi import FastAPI
from starlette.requests import Request

from api.base import success_response
from api.bookings import create_bookings_router
from api.errors import register_error_handlers
from api.middleware import ActorMiddleware, RequestIDMiddleware, SignedHeaderAuthenticator
from clients.email_client import EmailGatewayClient
from clients.geocoding_client import GeocodingClient
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import get_database_url, get_email_config, get_valkey_url
from core.config import BookingConfig, RoleAssignmentPolicy, load_booking_config
from core.event_bus import EventBus
from core.handlers.booking_notification_handler import register_notification_handlers
from core.models import Actor
from core.notifications import EmailNotificationDispatcher
from core.services.booking_service import BookingLifecycleManager
from core.services.customer_service import CustomerService
from core.services.distance_service import DistanceCalculator
from core.services.pricing_service import PricingService
from core.services.reschedule_service import RescheduleRequestService
from core.services.slot_ledger import SlotLedger
from core.services.status_history_service import StatusHistoryRecorder
from core.store.base import BookingStore
from core.store.postgres_store import PostgresBookingStore
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def build_services(
    store: BookingStore,
    config: BookingConfig | None = None,
    geocoder: GeocodingClient | None = None,
    roles: RoleAssignmentPolicy | None = None,
    event_bus: EventBus | None = None,
    notifier=None,
    clock: Callable[[], datetime] = now_utc,
) -> dict:
    """
    Construct the engine's services around a store.

    Returns:
        Dict with keys: store, config, event_bus, customers, pricing,
        slots, history, bookings, reschedule_requests
    """
    config = config or BookingConfig()
    roles = roles or RoleAssignmentPolicy()
    event_bus = event_bus or EventBus()

    customers = CustomerService(store, roles)
    pricing = PricingService(store, DistanceCalculator(config, geocoder))
    slots = SlotLedger(store, config, clock)
    history = StatusHistoryRecorder(store, clock)
    bookings = BookingLifecycleManager(
        store=store,
        config=config,
        pricing=pricing,
        slots=slots,
        history=history,
        customers=customers,
        event_bus=event_bus,
        clock=clock,
    )

    if notifier is not None:
        register_notification_handlers(event_bus, notifier, customers)

    return {
        "store": store,
        "config": config,
        "event_bus": event_bus,
        "customers": customers,
        "pricing": pricing,
        "slots": slots,
        "history": history,
        "bookings": bookings,
        "reschedule_requests": RescheduleRequestService(store, bookings, clock),
    }


def create_app(
    services: dict,
    authenticate: Callable[[Request], Actor | None] | None = None,
) -> FastAPI:
    """FastAPI app with middleware, error handlers and booking routes."""
    app = FastAPI(title="Detailing Booking Engine")
    app.add_middleware(ActorMiddleware, authenticate=authenticate or (lambda request: None))
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    @app.get("/health")
    def health(request: Request):
        return success_response(
            {"status": "ok"}, getattr(request.state, "request_id", None)
        ).model_dump(mode="json")

    app.include_router(create_bookings_router(services), prefix="/api")
    return app


def create_production_app() -> FastAPI:
    """
    App wired to real infrastructure.

    Requires VAULT_ADDR, VAULT_ROLE_ID, VAULT_SECRET_ID and
    ACTOR_SIGNING_SECRET. The Valkey geocode cache is optional.
    """
    load_dotenv()
    config = load_booking_config()

    store = PostgresBookingStore(PostgresClient(get_database_url()))
    store.create_schema()

    cache = None
    try:
        cache = ValkeyClient(get_valkey_url())
    except redis.RedisError as e:
        logger.warning("Valkey unavailable, geocoding without cache: %s", e)

    geocoder = GeocodingClient(
        base_url=os.getenv("GEOCODING_BASE_URL", "https://api.postcodes.io"),
        cache=cache,
    )
    notifier = EmailNotificationDispatcher(
        EmailGatewayClient(**get_email_config()),
        admin_email=config.admin_notification_email,
    )

    services = build_services(
        store,
        config=config,
        geocoder=geocoder,
        roles=RoleAssignmentPolicy.from_env(),
        event_bus=EventBus(executor=ThreadPoolExecutor(max_workers=4, thread_name_prefix="notify")),
        notifier=notifier,
    )
    return create_app(services, authenticate=SignedHeaderAuthenticator(os.environ["ACTOR_SIGNING_SECRET"]))
