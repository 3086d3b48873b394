"""Service catalog domain models.

All prices are stored in pence (integer) to avoid floating point issues.
£10.00 = 1000 pence. Field names keep the `_cents` suffix used across the
codebase for minor currency units.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.vehicle import VehicleSize


class ServiceCreate(BaseModel):
    """Data required to add a service to the catalog."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=1000)
    duration_minutes: int = Field(..., ge=15, le=600)
    is_active: bool = True


class Service(BaseModel):
    """Full service entity as stored."""

    id: UUID
    name: str
    description: str | None = None
    duration_minutes: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ServicePricingUpdate(BaseModel):
    """
    Per-size prices for a service.

    None means "not configured" for that size; 0 is a valid (promotional)
    price.
    """

    small_cents: int | None = Field(None, ge=0)
    medium_cents: int | None = Field(None, ge=0)
    large_cents: int | None = Field(None, ge=0)
    extra_large_cents: int | None = Field(None, ge=0)


class ServicePricing(ServicePricingUpdate):
    """Price table row as stored."""

    service_id: UUID
    updated_at: datetime

    model_config = {"from_attributes": True}

    def price_for(self, size: VehicleSize) -> int | None:
        """Price in pence for a size class, or None when not configured."""
        return getattr(self, size.price_column)
