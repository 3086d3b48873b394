"""Tests for EmailNotificationDispatcher."""

from unittest.mock import Mock

import pytest

from clients.email_client import EmailGatewayClient, EmailGatewayError
from core.exceptions import NotificationFailure
from core.models import CustomerContact
from core.notifications import EmailNotificationDispatcher


@pytest.fixture
def email():
    return Mock(spec=EmailGatewayClient)


@pytest.fixture
def contact():
    return CustomerContact(email="jane@example.com", first_name="Jane", last_name="Driver", phone="07700 900123")


class TestCustomerConfirmation:

    def test_sends_reference_and_price(self, email, contact, booking):
        EmailNotificationDispatcher(email).notify_booking_created(booking, contact)

        kwargs = email.send_email.call_args.kwargs
        assert kwargs["to"] == "jane@example.com"
        assert booking.booking_reference in kwargs["subject"]
        assert "Full Valet" in kwargs["body"]
        assert "£55.00 + £0.00 = £55.00" in kwargs["body"]
        assert "Wednesday 10 June 2026 10:00-12:00" in kwargs["body"]

    def test_gateway_error_becomes_notification_failure(self, email, contact, booking):
        email.send_email.side_effect = EmailGatewayError("Gateway error: down")

        with pytest.raises(NotificationFailure, match=booking.booking_reference):
            EmailNotificationDispatcher(email).notify_booking_created(booking, contact)


class TestAdminAlert:

    def test_sends_to_admin_inbox(self, email, contact, booking):
        EmailNotificationDispatcher(email, admin_email="ops@lfdetailing.co.uk").notify_admin(booking, contact)

        kwargs = email.send_email.call_args.kwargs
        assert kwargs["to"] == "ops@lfdetailing.co.uk"
        assert "Jane Driver <jane@example.com> 07700 900123" in kwargs["body"]
        assert "Total: £55.00" in kwargs["body"]

    def test_disabled_without_admin_address(self, email, contact, booking):
        EmailNotificationDispatcher(email).notify_admin(booking, contact)

        email.send_email.assert_not_called()


class TestCancellationNotice:

    def test_includes_reason(self, email, contact, booking):
        EmailNotificationDispatcher(email).notify_booking_cancelled(booking, contact, "Heavy rain")

        kwargs = email.send_email.call_args.kwargs
        assert "Reason: Heavy rain" in kwargs["body"]

    def test_no_reason_line_without_reason(self, email, contact, booking):
        EmailNotificationDispatcher(email).notify_booking_cancelled(booking, contact, None)

        assert "Reason" not in email.send_email.call_args.kwargs["body"]
