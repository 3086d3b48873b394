"""Booking, slot and pricing endpoints."""

from datetime import date, timedelta
from uuid import UUID

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from api.base import success_response
from api.middleware import require_actor
from core.exceptions import TransitionNotPermitted
from core.models import Actor, Booking, BookingRequest
from utils.timezone import to_local


class StatusChangeRequest(BaseModel):
    status: str = Field(..., min_length=1)
    reason: str | None = Field(None, max_length=1000)


class RescheduleRequest(BaseModel):
    slot_id: UUID
    reason: str | None = Field(None, max_length=1000)


class RescheduleRequestBody(BaseModel):
    slot_id: UUID
    reason: str = Field(..., min_length=1, max_length=1000)


class DecisionRequest(BaseModel):
    response: str | None = Field(None, max_length=1000)


class PaymentStatusRequest(BaseModel):
    payment_status: str = Field(..., min_length=1)
    reason: str | None = Field(None, max_length=1000)


class QuoteRequest(BaseModel):
    service_id: UUID
    vehicle_size: str = Field(..., min_length=1, max_length=4)
    postcode: str | None = None
    distance_km: float | None = Field(None, ge=0)


def _ensure_may_act(actor: Actor, booking: Booking) -> None:
    """Customers may only act on their own bookings."""
    if actor.is_staff:
        return
    if actor.id != str(booking.customer_id):
        raise TransitionNotPermitted("You can only change your own bookings")


def _ensure_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise TransitionNotPermitted("Admin access required")


def create_bookings_router(services: dict) -> APIRouter:
    router = APIRouter()

    manager = services["bookings"]
    slots = services["slots"]
    pricing = services["pricing"]
    reschedule_requests = services["reschedule_requests"]

    def _ok(request: Request, data, status_code: int = 200):
        body = success_response(data, getattr(request.state, "request_id", None)).model_dump(mode="json")
        if status_code == 200:
            return body
        return JSONResponse(status_code=status_code, content=body)

    # -------------------------------------------------------------------------
    # Bookings
    # -------------------------------------------------------------------------

    @router.post("/bookings")
    def create_booking(request: Request, body: BookingRequest):
        booking = manager.create_booking(body)
        return _ok(request, booking.model_dump(mode="json"), status_code=201)

    # Registered before /bookings/{booking_id} so "reference" is not parsed as a UUID
    @router.get("/bookings/reference/{booking_reference}")
    def get_booking_by_reference(request: Request, booking_reference: str):
        booking = manager.get_booking_by_reference(booking_reference)
        return _ok(request, booking.model_dump(mode="json"))

    @router.get("/bookings/{booking_id}")
    def get_booking(request: Request, booking_id: UUID):
        booking = manager.get_booking(booking_id)
        return _ok(request, booking.model_dump(mode="json"))

    @router.get("/bookings/{booking_id}/history")
    def get_history(request: Request, booking_id: UUID):
        entries = manager.get_status_history(booking_id)
        return _ok(request, [e.model_dump(mode="json") for e in entries])

    @router.post("/bookings/{booking_id}/status")
    def change_status(request: Request, booking_id: UUID, body: StatusChangeRequest):
        actor = require_actor(request)
        _ensure_may_act(actor, manager.get_booking(booking_id))
        booking = manager.transition_status(booking_id, body.status, actor, body.reason)
        return _ok(request, booking.model_dump(mode="json"))

    @router.post("/bookings/{booking_id}/reschedule")
    def reschedule(request: Request, booking_id: UUID, body: RescheduleRequest):
        actor = require_actor(request)
        _ensure_may_act(actor, manager.get_booking(booking_id))
        booking = manager.reschedule(booking_id, body.slot_id, actor, body.reason)
        return _ok(request, booking.model_dump(mode="json"))

    @router.post("/bookings/{booking_id}/payment-status")
    def change_payment_status(request: Request, booking_id: UUID, body: PaymentStatusRequest):
        actor = require_actor(request)
        booking = manager.update_payment_status(booking_id, body.payment_status, actor, body.reason)
        return _ok(request, booking.model_dump(mode="json"))

    @router.get("/bookings/{booking_id}/cancellation-policy")
    def cancellation_policy(request: Request, booking_id: UUID):
        policy = manager.check_cancellation_policy(booking_id)
        return _ok(request, policy.model_dump(mode="json"))

    # -------------------------------------------------------------------------
    # Reschedule requests
    # -------------------------------------------------------------------------

    @router.post("/bookings/{booking_id}/reschedule-requests")
    def request_reschedule(request: Request, booking_id: UUID, body: RescheduleRequestBody):
        actor = require_actor(request)
        _ensure_may_act(actor, manager.get_booking(booking_id))
        filed = reschedule_requests.request_reschedule(booking_id, body.slot_id, actor, body.reason)
        return _ok(request, filed.model_dump(mode="json"), status_code=201)

    @router.get("/reschedule-requests")
    def list_reschedule_requests(
        request: Request,
        status: str | None = Query(None),
        booking_id: UUID | None = Query(None),
    ):
        _ensure_admin(require_actor(request))
        found = reschedule_requests.list_requests(status=status, booking_id=booking_id)
        return _ok(request, [r.model_dump(mode="json") for r in found])

    @router.post("/reschedule-requests/{request_id}/approve")
    def approve_reschedule(request: Request, request_id: UUID, body: DecisionRequest):
        booking = reschedule_requests.approve(request_id, require_actor(request), body.response)
        return _ok(request, booking.model_dump(mode="json"))

    @router.post("/reschedule-requests/{request_id}/decline")
    def decline_reschedule(request: Request, request_id: UUID, body: DecisionRequest):
        declined = reschedule_requests.decline(request_id, require_actor(request), body.response)
        return _ok(request, declined.model_dump(mode="json"))

    # -------------------------------------------------------------------------
    # Slots & pricing
    # -------------------------------------------------------------------------

    @router.get("/slots/available")
    def available_slots(
        request: Request,
        date_from: date | None = Query(None),
        date_to: date | None = Query(None),
    ):
        start = date_from or to_local(slots.clock(), slots.config.business_timezone).date()
        end = date_to or start + timedelta(days=14)
        found = slots.list_available(start, end)
        return _ok(request, [s.model_dump(mode="json") for s in found])

    @router.post("/pricing/quote")
    def quote(request: Request, body: QuoteRequest):
        breakdown = pricing.quote(
            body.service_id,
            body.vehicle_size,
            postcode=body.postcode,
            distance_km=body.distance_km,
        )
        return _ok(request, breakdown.model_dump(mode="json"))

    return router
