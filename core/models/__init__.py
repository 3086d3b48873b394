"""Core domain models."""

from core.models.actor import Actor, ActorRole
from core.models.customer import Customer, CustomerContact, CustomerRole
from core.models.address import AddressDetails, AddressSnapshot
from core.models.vehicle import VehicleDetails, VehicleSnapshot, VehicleSize
from core.models.service import Service, ServiceCreate, ServicePricing, ServicePricingUpdate
from core.models.pricing import DistanceQuote, PricingBreakdown
from core.models.time_slot import TimeSlot, TimeSlotCreate, ClaimOutcome
from core.models.booking import (
    Booking,
    BookingRequest,
    BookingStatus,
    PaymentStatus,
    CancellationPolicy,
    ALLOWED_TRANSITIONS,
)
from core.models.status_history import StatusHistoryEntry
from core.models.reschedule_request import RescheduleRequest, RescheduleRequestStatus

__all__ = [
    # Actor
    "Actor", "ActorRole",
    # Customer
    "Customer", "CustomerContact", "CustomerRole",
    # Address
    "AddressDetails", "AddressSnapshot",
    # Vehicle
    "VehicleDetails", "VehicleSnapshot", "VehicleSize",
    # Service
    "Service", "ServiceCreate", "ServicePricing", "ServicePricingUpdate",
    # Pricing
    "DistanceQuote", "PricingBreakdown",
    # TimeSlot
    "TimeSlot", "TimeSlotCreate", "ClaimOutcome",
    # Booking
    "Booking", "BookingRequest", "BookingStatus", "PaymentStatus",
    "CancellationPolicy", "ALLOWED_TRANSITIONS",
    # History
    "StatusHistoryEntry",
    # Reschedule requests
    "RescheduleRequest", "RescheduleRequestStatus",
]
