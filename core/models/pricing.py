"""Pricing snapshot stored on every booking.

A PricingBreakdown is computed once, at creation, and stored with the
booking. It is never recomputed from the current price table - it is the
record used for disputes and receipts.
"""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from core.models.vehicle import VehicleSize


def format_pounds(cents: int) -> str:
    """Render pence as '£12.50'."""
    return f"£{cents // 100}.{cents % 100:02d}"


class DistanceQuote(BaseModel):
    """Distance from base and the travel surcharge it implies."""

    distance_km: float = Field(..., ge=0)
    distance_miles: float = Field(..., ge=0)
    within_free_radius: bool
    surcharge_cents: int = Field(..., ge=0)

    model_config = {"frozen": True}


class PricingBreakdown(BaseModel):
    """How a booking's price was derived."""

    service_name: str
    base_price_cents: int = Field(..., ge=0)
    vehicle_size: VehicleSize
    vehicle_size_label: str
    vehicle_size_multiplier: float
    distance_km: float = Field(..., ge=0)
    distance_miles: float = Field(..., ge=0)
    within_free_radius: bool
    distance_surcharge_cents: int = Field(..., ge=0)
    total_price_cents: int = Field(..., ge=0)
    calculation: str
    calculated_at: datetime

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_total(self) -> "PricingBreakdown":
        """Total is always base + surcharge."""
        if self.total_price_cents != self.base_price_cents + self.distance_surcharge_cents:
            raise ValueError("total_price_cents must equal base_price_cents + distance_surcharge_cents")
        return self

    @property
    def total_pounds(self) -> str:
        return format_pounds(self.total_price_cents)
