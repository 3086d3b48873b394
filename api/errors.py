"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from api.middleware import ActorRequired
from core.exceptions import (
    BookingError,
    BookingNotFound,
    BookingTimeout,
    BookingValidationError,
    InvalidPostcode,
    InvalidSizeClass,
    InvalidStatusTransition,
    PaymentStatusConflict,
    PersistenceError,
    PostcodeNotFound,
    PricingError,
    PricingNotConfigured,
    RescheduleRequestConflict,
    ServiceNotFound,
    SlotConflict,
    SlotUnavailable,
    StorageError,
    StorageTimeout,
    TransitionNotPermitted,
)

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins
_ERROR_MAP: list[tuple[type[Exception], int, str]] = [
    (BookingValidationError, 422, ErrorCodes.VALIDATION_ERROR),
    (ServiceNotFound, 404, ErrorCodes.SERVICE_NOT_FOUND),
    (InvalidSizeClass, 400, ErrorCodes.INVALID_SIZE_CLASS),
    (PricingNotConfigured, 400, ErrorCodes.PRICING_NOT_CONFIGURED),
    (InvalidPostcode, 400, ErrorCodes.INVALID_POSTCODE),
    (PostcodeNotFound, 400, ErrorCodes.POSTCODE_NOT_FOUND),
    (PricingError, 400, ErrorCodes.PRICING_ERROR),
    (SlotConflict, 409, ErrorCodes.SLOT_CONFLICT),
    (SlotUnavailable, 410, ErrorCodes.SLOT_UNAVAILABLE),
    (BookingTimeout, 504, ErrorCodes.TIMEOUT),
    (PersistenceError, 503, ErrorCodes.PERSISTENCE_ERROR),
    (BookingNotFound, 404, ErrorCodes.NOT_FOUND),
    (PaymentStatusConflict, 409, ErrorCodes.INVALID_PAYMENT_STATUS),
    (InvalidStatusTransition, 409, ErrorCodes.INVALID_STATUS_TRANSITION),
    (RescheduleRequestConflict, 409, ErrorCodes.RESCHEDULE_REQUEST_CONFLICT),
    (TransitionNotPermitted, 403, ErrorCodes.FORBIDDEN),
    (StorageTimeout, 504, ErrorCodes.TIMEOUT),
    (StorageError, 503, ErrorCodes.PERSISTENCE_ERROR),
]


def classify(exc: Exception) -> tuple[int, str]:
    """HTTP status and error code for a domain exception."""
    for exc_type, status, code in _ERROR_MAP:
        if isinstance(exc, exc_type):
            return status, code
    return 500, ErrorCodes.INTERNAL_ERROR


def _details(exc: Exception) -> dict | None:
    if isinstance(exc, BookingValidationError) and exc.field:
        return {"field": exc.field}
    if isinstance(exc, SlotUnavailable):
        return {"reason": exc.reason}
    if isinstance(exc, InvalidStatusTransition):
        return {"from_status": exc.from_status, "to_status": exc.to_status}
    return None


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    async def domain_error_handler(request: Request, exc: Exception):
        status, code = classify(exc)
        if status >= 500:
            logger.error("%s on %s %s: %s", code, request.method, request.url.path, exc)
        else:
            logger.info("%s on %s %s: %s", code, request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status,
            content=error_response(code, str(exc), _details(exc), _request_id(request)).model_dump(mode="json"),
        )

    app.add_exception_handler(BookingError, domain_error_handler)
    app.add_exception_handler(StorageError, domain_error_handler)

    @app.exception_handler(ActorRequired)
    async def actor_required_handler(request: Request, exc: ActorRequired):
        return JSONResponse(
            status_code=401,
            content=error_response(
                ErrorCodes.NOT_AUTHENTICATED, str(exc), request_id=_request_id(request)
            ).model_dump(mode="json"),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content=error_response(
                ErrorCodes.INVALID_REQUEST, str(exc), request_id=_request_id(request)
            ).model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {"loc": (), "msg": "Invalid request"}
        field = ".".join(str(part) for part in first["loc"] if part != "body")
        return JSONResponse(
            status_code=422,
            content=error_response(
                ErrorCodes.VALIDATION_ERROR,
                f"{field}: {first['msg']}" if field else first["msg"],
                {"field": field} if field else None,
                _request_id(request),
            ).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return JSONResponse(
            status_code=500,
            content=error_response(
                ErrorCodes.INTERNAL_ERROR,
                "An internal error occurred",
                request_id=_request_id(request),
            ).model_dump(mode="json"),
        )
