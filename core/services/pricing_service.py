"""
Price resolver.

Looks up a service's base price for a vehicle size class and combines it
with the travel surcharge into a PricingBreakdown. The breakdown is a
snapshot: bookings store it and never recompute it.
"""

import logging
from uuid import UUID, uuid4

from core.exceptions import InvalidSizeClass, PricingNotConfigured, ServiceNotFound
from core.models import (
    DistanceQuote,
    PricingBreakdown,
    Service,
    ServiceCreate,
    ServicePricing,
    ServicePricingUpdate,
    VehicleSize,
)
from core.models.pricing import format_pounds
from core.services.distance_service import DistanceCalculator
from core.store.base import BookingStore
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


def parse_size_class(size: str | VehicleSize) -> VehicleSize:
    """
    Parse S/M/L/XL (case-insensitive).

    Raises:
        InvalidSizeClass: For anything else
    """
    if isinstance(size, VehicleSize):
        return size
    try:
        return VehicleSize(str(size).strip().upper())
    except ValueError:
        raise InvalidSizeClass(f"Unknown vehicle size class '{size}'; expected S, M, L or XL")


class PricingService:
    """Service catalog pricing and quotes."""

    def __init__(self, store: BookingStore, distance: DistanceCalculator):
        self.store = store
        self.distance = distance

    def create_service(self, data: ServiceCreate) -> Service:
        """Add a service to the catalog. Prices are set separately."""
        now = now_utc()
        service = Service(
            id=uuid4(),
            name=data.name,
            description=data.description,
            duration_minutes=data.duration_minutes,
            is_active=data.is_active,
            created_at=now,
            updated_at=now,
        )
        created = self.store.insert_service(service)
        logger.info("Service created: %s (%s)", created.name, created.id)
        return created

    def get_service(self, service_id: UUID) -> Service:
        """
        Get a bookable service.

        Raises:
            ServiceNotFound: Unknown or inactive service
        """
        service = self.store.get_service(service_id)
        if service is None or not service.is_active:
            raise ServiceNotFound(f"Service {service_id} not found")
        return service

    def update_service_pricing(self, service_id: UUID, prices: ServicePricingUpdate) -> ServicePricing:
        """
        Replace a service's price table.

        Existing bookings are unaffected; they carry their own snapshot.

        Args:
            service_id: Service UUID
            prices: Per-size prices in pence; None leaves a size unpriced

        Returns:
            The stored price table

        Raises:
            ServiceNotFound: Unknown service
        """
        if self.store.get_service(service_id) is None:
            raise ServiceNotFound(f"Service {service_id} not found")

        pricing = ServicePricing(
            service_id=service_id,
            updated_at=now_utc(),
            **prices.model_dump(),
        )
        stored = self.store.upsert_service_pricing(pricing)
        logger.info("Pricing updated for service %s", service_id)
        return stored

    def resolve_base_price(self, service_id: UUID, size: str | VehicleSize) -> tuple[Service, int]:
        """
        Base price in pence for a service and vehicle size.

        0 is a valid (promotional) price. A missing price table or an empty
        cell is a configuration gap, not a free service.

        Raises:
            ServiceNotFound: Unknown or inactive service
            InvalidSizeClass: Size is not S/M/L/XL
            PricingNotConfigured: No price for this size
        """
        size_class = parse_size_class(size)
        service = self.get_service(service_id)

        pricing = self.store.get_service_pricing(service_id)
        price = pricing.price_for(size_class) if pricing is not None else None
        if price is None:
            logger.warning(
                "No %s price configured for service %s (%s)", size_class.value, service.name, service_id
            )
            raise PricingNotConfigured(
                f"No price configured for '{service.name}' and size {size_class.label}"
            )
        return service, price

    def build_breakdown(
        self,
        service: Service,
        size: VehicleSize,
        base_price_cents: int,
        distance: DistanceQuote,
    ) -> PricingBreakdown:
        total = base_price_cents + distance.surcharge_cents
        calculation = (
            f"{format_pounds(base_price_cents)} + {format_pounds(distance.surcharge_cents)}"
            f" = {format_pounds(total)}"
        )
        return PricingBreakdown(
            service_name=service.name,
            base_price_cents=base_price_cents,
            vehicle_size=size,
            vehicle_size_label=size.label,
            vehicle_size_multiplier=size.multiplier,
            distance_km=distance.distance_km,
            distance_miles=distance.distance_miles,
            within_free_radius=distance.within_free_radius,
            distance_surcharge_cents=distance.surcharge_cents,
            total_price_cents=total,
            calculation=calculation,
            calculated_at=now_utc(),
        )

    def quote(
        self,
        service_id: UUID,
        size: str | VehicleSize,
        postcode: str | None = None,
        distance_km: float | None = None,
    ) -> PricingBreakdown:
        """
        Full price for a service, size and location.

        Raises:
            PricingError subclasses, or BookingTimeout if geocoding timed out
        """
        size_class = parse_size_class(size)
        service, base = self.resolve_base_price(service_id, size_class)
        distance = self.distance.quote(postcode=postcode, distance_km=distance_km)
        return self.build_breakdown(service, size_class, base, distance)
