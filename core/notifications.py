"""
Booking notifications.

NotificationDispatcher is the contract the engine depends on. The email
implementation sends plain-text messages through the email gateway;
delivery failures become NotificationFailure and never affect a booking.
"""

import logging
from typing import Protocol

from clients.email_client import EmailGatewayClient, EmailGatewayError
from core.exceptions import NotificationFailure
from core.models import Booking, CustomerContact
from core.models.pricing import format_pounds

logger = logging.getLogger(__name__)


class NotificationDispatcher(Protocol):
    def notify_booking_created(self, booking: Booking, contact: CustomerContact) -> None: ...

    def notify_admin(self, booking: Booking, contact: CustomerContact) -> None: ...

    def notify_booking_cancelled(
        self, booking: Booking, contact: CustomerContact, reason: str | None
    ) -> None: ...


def _when(booking: Booking) -> str:
    return (
        f"{booking.scheduled_date.strftime('%A %d %B %Y')} "
        f"{booking.scheduled_start_time.strftime('%H:%M')}-"
        f"{booking.scheduled_end_time.strftime('%H:%M')}"
    )


class EmailNotificationDispatcher:
    """NotificationDispatcher over the HMAC-signed email gateway."""

    def __init__(self, email: EmailGatewayClient, admin_email: str | None = None):
        self.email = email
        self.admin_email = admin_email

    def _send(self, to: str, subject: str, body: str, booking: Booking) -> None:
        try:
            self.email.send_email(to=to, subject=subject, body=body)
        except EmailGatewayError as e:
            raise NotificationFailure(
                f"Could not send '{subject}' for {booking.booking_reference}: {e}"
            ) from e

    def notify_booking_created(self, booking: Booking, contact: CustomerContact) -> None:
        breakdown = booking.pricing_breakdown
        body = "\n".join([
            f"Hi {contact.first_name},",
            "",
            f"Thanks for your booking. Your reference is {booking.booking_reference}.",
            "",
            f"Service: {breakdown.service_name}",
            f"Vehicle: {booking.vehicle.make} {booking.vehicle.model} ({booking.vehicle.size_label})",
            f"When: {_when(booking)}",
            f"Where: {booking.service_address.one_line}",
            f"Price: {breakdown.calculation}",
            "",
            f"Status: {booking.status.value}",
        ])
        self._send(
            contact.email,
            f"Booking received - {booking.booking_reference}",
            body,
            booking,
        )

    def notify_admin(self, booking: Booking, contact: CustomerContact) -> None:
        if not self.admin_email:
            logger.debug("No admin notification address configured")
            return
        body = "\n".join([
            f"New booking {booking.booking_reference}",
            f"Customer: {contact.full_name} <{contact.email}> {contact.phone or ''}".rstrip(),
            f"Service: {booking.pricing_breakdown.service_name}",
            f"When: {_when(booking)}",
            f"Where: {booking.service_address.one_line}",
            f"Total: {format_pounds(booking.total_price_cents)}",
        ])
        self._send(
            self.admin_email,
            f"New booking {booking.booking_reference}",
            body,
            booking,
        )

    def notify_booking_cancelled(
        self, booking: Booking, contact: CustomerContact, reason: str | None
    ) -> None:
        lines = [
            f"Hi {contact.first_name},",
            "",
            f"Your booking {booking.booking_reference} for {_when(booking)} has been cancelled.",
        ]
        if reason:
            lines.append(f"Reason: {reason}")
        self._send(
            contact.email,
            f"Booking cancelled - {booking.booking_reference}",
            "\n".join(lines),
            booking,
        )
