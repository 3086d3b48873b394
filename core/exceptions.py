"""Typed exceptions for the booking engine.

Raised by core services and mapped to HTTP responses in api/errors.py.
Every class a caller might need to tell apart (e.g. "this slot was just
taken" vs. "please check your details") has its own type.
"""


class BookingError(Exception):
    """Base class for booking engine errors."""


# =============================================================================
# BOOKING CREATION
# =============================================================================


class BookingCreationError(BookingError):
    """Base class for failures of create_booking."""


class BookingValidationError(BookingCreationError):
    """
    Request is missing required data or is malformed.

    Nothing has been persisted.
    """

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class PricingError(BookingCreationError):
    """Price could not be resolved. Nothing has been persisted."""


class ServiceNotFound(PricingError):
    """Service does not exist or is not bookable."""


class InvalidSizeClass(PricingError):
    """Vehicle size class is not one of S/M/L/XL."""


class PricingNotConfigured(PricingError):
    """
    Service exists but has no price for the requested size.

    Operators fix this by completing the price table, not by creating
    the service - hence a separate type from ServiceNotFound.
    """


class InvalidPostcode(PricingError):
    """Postcode is not a well-formed UK postcode."""


class PostcodeNotFound(PricingError):
    """Well-formed postcode that the geocoder could not resolve."""


class SlotConflict(BookingCreationError):
    """
    Another booking claimed the slot first.

    The user should pick a different time rather than retry.
    """


class SlotUnavailable(BookingCreationError):
    """Slot does not exist or is no longer in the future."""

    def __init__(self, message: str, reason: str):
        self.reason = reason
        super().__init__(message)


class PersistenceError(BookingCreationError):
    """
    Storage failed after the slot was claimed.

    By the time this is raised the claim has already been released.
    """


class BookingTimeout(PersistenceError):
    """A storage or collaborator call exceeded its time budget."""


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================


class StatusTransitionError(BookingError):
    """Base class for failures of transition_status."""


class BookingNotFound(StatusTransitionError):
    """No booking with the given id or reference."""


class InvalidStatusTransition(StatusTransitionError):
    """Requested status is not reachable from the current one."""

    def __init__(self, from_status: str, to_status: str, message: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            message or f"Cannot transition from '{from_status}' to '{to_status}'"
        )


class TransitionNotPermitted(StatusTransitionError):
    """Actor's role does not allow this change (customers may only cancel)."""


class PaymentStatusConflict(InvalidStatusTransition):
    """Payment status cannot move from its current value to the requested one."""


# =============================================================================
# RESCHEDULE REQUESTS
# =============================================================================


class RescheduleRequestNotFound(BookingNotFound):
    """No reschedule request with the given id."""


class RescheduleRequestConflict(StatusTransitionError):
    """
    Booking already has a pending request, or the request was already
    approved or rejected.
    """


# =============================================================================
# INFRASTRUCTURE
# =============================================================================


class StorageError(Exception):
    """Backing store failed. Raised by store implementations."""


class StorageTimeout(StorageError):
    """Backing store did not answer within its statement timeout."""


class NotificationFailure(Exception):
    """
    Notification could not be delivered.

    Logged at the event bus boundary, never surfaced as a booking failure.
    """
