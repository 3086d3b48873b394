"""Booking engine configuration.

Pricing constants are in their natural units: miles for distances, pence
for money (same integer-cents rule as the models).
"""

import logging
import os

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


class BookingConfig(BaseModel):
    """
    Booking engine configuration.

    Defaults describe the production deployment (SW9, London). Override via
    environment with load_booking_config().
    """

    # Travel surcharge
    free_radius_miles: float = Field(
        default=17.5,
        description="Distance from base with no travel charge",
        ge=0,
    )
    surcharge_per_mile_cents: int = Field(
        default=100,
        description="Charge per mile beyond the free radius",
        ge=0,
    )
    minimum_surcharge_cents: int = Field(
        default=500,
        description="Smallest non-zero travel charge",
        ge=0,
    )
    maximum_surcharge_cents: int = Field(
        default=2500,
        description="Travel charge cap",
        ge=0,
    )
    business_latitude: float = Field(default=51.4719, ge=-90, le=90)
    business_longitude: float = Field(default=-0.1162, ge=-180, le=180)
    business_postcode_area: str = Field(default="SW9")

    # Scheduling
    business_timezone: str = Field(
        default="Europe/London",
        description="Timezone slot dates and times are expressed in",
    )
    initial_status: str = Field(
        default="pending",
        description="Status new bookings are created in (pending or confirmed)",
    )
    payment_deadline_hours: int = Field(default=48, ge=1, le=720)
    cancellation_notice_hours: int = Field(
        default=24,
        description="Cancellations inside this window are not refund-eligible",
        ge=0,
        le=168,
    )

    # References
    reference_prefix: str = Field(default="LFD", min_length=1, max_length=8)

    # Notifications
    admin_notification_email: str | None = Field(
        default=None,
        description="Where new-booking alerts are sent; None disables them",
    )

    @field_validator("initial_status")
    @classmethod
    def validate_initial_status(cls, value: str) -> str:
        if value not in ("pending", "confirmed"):
            raise ValueError("initial_status must be 'pending' or 'confirmed'")
        return value

    @model_validator(mode="after")
    def validate_surcharge_bounds(self) -> "BookingConfig":
        if self.minimum_surcharge_cents > self.maximum_surcharge_cents:
            raise ValueError("minimum_surcharge_cents cannot exceed maximum_surcharge_cents")
        return self


class RoleAssignmentPolicy(BaseModel):
    """
    Which identities receive the admin role when their account is created.

    Configured outside the code (ADMIN_EMAILS) so the list is auditable and
    changeable without a deploy.
    """

    admin_emails: frozenset[str] = Field(default_factory=frozenset)

    @field_validator("admin_emails", mode="before")
    @classmethod
    def normalise_emails(cls, value) -> frozenset[str]:
        if isinstance(value, str):
            value = value.split(",")
        return frozenset(e.strip().lower() for e in value if e and e.strip())

    def role_for(self, email: str) -> str:
        """Role a newly created account with this email receives."""
        if email.strip().lower() in self.admin_emails:
            return "admin"
        return "customer"

    @classmethod
    def from_env(cls) -> "RoleAssignmentPolicy":
        """Build from the comma-separated ADMIN_EMAILS environment variable."""
        policy = cls(admin_emails=os.getenv("ADMIN_EMAILS", ""))
        logger.info("Role assignment policy loaded: %d admin identities", len(policy.admin_emails))
        return policy


_ENV_OVERRIDES = {
    "BOOKING_FREE_RADIUS_MILES": "free_radius_miles",
    "BOOKING_SURCHARGE_PER_MILE_CENTS": "surcharge_per_mile_cents",
    "BOOKING_MINIMUM_SURCHARGE_CENTS": "minimum_surcharge_cents",
    "BOOKING_MAXIMUM_SURCHARGE_CENTS": "maximum_surcharge_cents",
    "BOOKING_TIMEZONE": "business_timezone",
    "BOOKING_INITIAL_STATUS": "initial_status",
    "BOOKING_PAYMENT_DEADLINE_HOURS": "payment_deadline_hours",
    "BOOKING_CANCELLATION_NOTICE_HOURS": "cancellation_notice_hours",
    "BOOKING_REFERENCE_PREFIX": "reference_prefix",
    "BOOKING_ADMIN_EMAIL": "admin_notification_email",
}


def load_booking_config() -> BookingConfig:
    """
    Build BookingConfig from BOOKING_* environment variables.

    Unset variables keep their defaults. Invalid values fail fast with a
    pydantic ValidationError.
    """
    overrides = {
        field: os.environ[env_name]
        for env_name, field in _ENV_OVERRIDES.items()
        if os.getenv(env_name)
    }
    return BookingConfig(**overrides)
