"""
Handlers that send booking notifications.

Subscribed to the event bus at startup. A failed notification is logged
and dropped: the booking it describes is already committed.
"""

import logging
from typing import Callable

from core.events import BookingCancelled, BookingCreated
from core.exceptions import NotificationFailure

logger = logging.getLogger(__name__)


def handle_booking_created_customer(dispatcher) -> Callable:
    """
    Factory that returns a BookingCreated handler emailing the customer.

    Args:
        dispatcher: NotificationDispatcher instance
    """

    def handler(event: BookingCreated):
        booking = event.booking
        try:
            dispatcher.notify_booking_created(booking, event.customer.contact)
        except NotificationFailure as e:
            logger.warning("Customer confirmation not sent for %s: %s", booking.booking_reference, e)

    return handler


def handle_booking_created_admin(dispatcher) -> Callable:
    """Factory that returns a BookingCreated handler alerting the admin inbox."""

    def handler(event: BookingCreated):
        booking = event.booking
        try:
            dispatcher.notify_admin(booking, event.customer.contact)
        except NotificationFailure as e:
            logger.warning("Admin alert not sent for %s: %s", booking.booking_reference, e)

    return handler


def handle_booking_cancelled(dispatcher, customer_service) -> Callable:
    """
    Factory that returns a BookingCancelled handler emailing the customer.

    Args:
        dispatcher: NotificationDispatcher instance
        customer_service: CustomerService, to look up the contact
    """

    def handler(event: BookingCancelled):
        booking = event.booking
        customer = customer_service.get_by_id(booking.customer_id)
        if customer is None:
            logger.warning("Customer %s missing for booking %s", booking.customer_id, booking.booking_reference)
            return
        try:
            dispatcher.notify_booking_cancelled(booking, customer.contact, event.reason)
        except NotificationFailure as e:
            logger.warning("Cancellation notice not sent for %s: %s", booking.booking_reference, e)

    return handler


def register_notification_handlers(event_bus, dispatcher, customer_service) -> None:
    """Subscribe all notification handlers."""
    event_bus.subscribe("BookingCreated", handle_booking_created_customer(dispatcher))
    event_bus.subscribe("BookingCreated", handle_booking_created_admin(dispatcher))
    event_bus.subscribe("BookingCancelled", handle_booking_cancelled(dispatcher, customer_service))
