"""Who performed an action - recorded on every status history row."""

from enum import Enum

from pydantic import BaseModel, Field


class ActorRole(str, Enum):
    """Kind of identity acting on a booking."""

    CUSTOMER = "customer"
    ADMIN = "admin"
    SYSTEM = "system"


class Actor(BaseModel):
    """An authenticated identity, or the system itself."""

    id: str = Field(..., min_length=1, max_length=255)
    role: ActorRole

    model_config = {"frozen": True}

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

    @property
    def is_staff(self) -> bool:
        """Admins and the system itself manage bookings; customers only cancel."""
        return self.role in (ActorRole.ADMIN, ActorRole.SYSTEM)

    @classmethod
    def system(cls) -> "Actor":
        return cls(id="system", role=ActorRole.SYSTEM)
