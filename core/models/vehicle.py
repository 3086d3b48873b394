"""Vehicle domain models.

A booking carries a VehicleSnapshot by value: later edits to the
customer's saved vehicle must never rewrite booking history.
"""

from enum import Enum

from pydantic import BaseModel, Field, field_validator


class VehicleSize(str, Enum):
    """Vehicle size class used by the price table."""

    SMALL = "S"
    MEDIUM = "M"
    LARGE = "L"
    EXTRA_LARGE = "XL"

    @property
    def label(self) -> str:
        return _SIZE_LABELS[self]

    @property
    def multiplier(self) -> float:
        """Relative effort vs. a small car. Informational; prices come from the table."""
        return _SIZE_MULTIPLIERS[self]

    @property
    def price_column(self) -> str:
        """Column of service_pricing holding this size's price."""
        return _SIZE_COLUMNS[self]


_SIZE_LABELS = {
    VehicleSize.SMALL: "Small",
    VehicleSize.MEDIUM: "Medium",
    VehicleSize.LARGE: "Large",
    VehicleSize.EXTRA_LARGE: "Extra Large",
}

_SIZE_MULTIPLIERS = {
    VehicleSize.SMALL: 1.0,
    VehicleSize.MEDIUM: 1.2,
    VehicleSize.LARGE: 1.4,
    VehicleSize.EXTRA_LARGE: 1.6,
}

_SIZE_COLUMNS = {
    VehicleSize.SMALL: "small_cents",
    VehicleSize.MEDIUM: "medium_cents",
    VehicleSize.LARGE: "large_cents",
    VehicleSize.EXTRA_LARGE: "extra_large_cents",
}


class VehicleDetails(BaseModel):
    """
    Vehicle as entered on the booking form.

    size is kept as a plain string here; the price resolver decides whether
    it is a supported class so the caller gets InvalidSizeClass rather than
    a generic validation error.
    """

    make: str = Field(..., min_length=1, max_length=100)
    model: str = Field(..., min_length=1, max_length=100)
    year: int | None = Field(None, ge=1900, le=2100)
    color: str | None = Field(None, max_length=50)
    registration: str | None = Field(None, max_length=20)
    size: str = Field(..., min_length=1, max_length=4)

    @field_validator("size")
    @classmethod
    def normalise_size(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("registration")
    @classmethod
    def normalise_registration(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return " ".join(value.upper().split()) or None


class VehicleSnapshot(BaseModel):
    """Vehicle as it was when the booking was made."""

    make: str
    model: str
    year: int | None = None
    color: str | None = None
    registration: str | None = None
    size: VehicleSize
    size_label: str

    model_config = {"frozen": True}

    @classmethod
    def capture(cls, details: VehicleDetails, size: VehicleSize) -> "VehicleSnapshot":
        return cls(
            make=details.make,
            model=details.model,
            year=details.year,
            color=details.color,
            registration=details.registration,
            size=size,
            size_label=size.label,
        )
