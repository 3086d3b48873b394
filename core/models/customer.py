"""Customer (booking contact) domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, EmailStr, field_validator


class CustomerRole(str, Enum):
    """Role assigned when the account is created."""

    CUSTOMER = "customer"
    ADMIN = "admin"


class CustomerContact(BaseModel):
    """Contact details captured on the booking form."""

    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    phone: str | None = Field(None, max_length=50)

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Customer(BaseModel):
    """Full customer entity as stored."""

    id: UUID
    email: str
    first_name: str
    last_name: str
    phone: str | None
    role: CustomerRole
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def display_name(self) -> str:
        """Human-readable name for display."""
        return f"{self.first_name} {self.last_name}"

    @property
    def contact(self) -> CustomerContact:
        return CustomerContact(
            email=self.email,
            first_name=self.first_name,
            last_name=self.last_name,
            phone=self.phone,
        )
