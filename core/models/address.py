"""Service address domain models.

Bookings store an AddressSnapshot by value, not a reference to the
customer's saved address.
"""

import re

from pydantic import BaseModel, Field, field_validator

_UK_POSTCODE = re.compile(r"^[A-Z]{1,2}[0-9][A-Z0-9]?\s?[0-9][A-Z]{2}$")


def is_valid_uk_postcode(postcode: str) -> bool:
    """Whether the string is shaped like a UK postcode."""
    return bool(_UK_POSTCODE.match(postcode.strip().upper()))


def format_uk_postcode(postcode: str) -> str:
    """Canonical form: uppercase, single space before the inward code."""
    clean = "".join(postcode.split()).upper()
    if len(clean) >= 5:
        return f"{clean[:-3]} {clean[-3:]}"
    return clean


class AddressDetails(BaseModel):
    """Service address as entered on the booking form."""

    address_line_1: str = Field(..., min_length=1, max_length=255)
    address_line_2: str | None = Field(None, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    postcode: str = Field(..., min_length=1, max_length=10)
    county: str | None = Field(None, max_length=100)
    country: str = Field("GB", min_length=2, max_length=2)

    @field_validator("address_line_1", "city")
    @classmethod
    def reject_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("country")
    @classmethod
    def upper_country(cls, value: str) -> str:
        return value.upper()


class AddressSnapshot(BaseModel):
    """Address as it was when the booking was made."""

    address_line_1: str
    address_line_2: str | None = None
    city: str
    postcode: str
    county: str | None = None
    country: str = "GB"

    model_config = {"frozen": True}

    @classmethod
    def capture(cls, details: AddressDetails) -> "AddressSnapshot":
        return cls(
            address_line_1=details.address_line_1,
            address_line_2=details.address_line_2,
            city=details.city,
            postcode=format_uk_postcode(details.postcode),
            county=details.county,
            country=details.country,
        )

    @property
    def one_line(self) -> str:
        """Single-line address for display."""
        parts = [self.address_line_1]
        if self.address_line_2:
            parts.append(self.address_line_2)
        parts.append(f"{self.city} {self.postcode}")
        return ", ".join(parts)
