"""
Tests for EmailGatewayClient.

Tests verify the client's contract with calling code: what goes over the
wire and which failures surface as EmailGatewayError.
"""

import hashlib
import hmac
import json

import pytest
import requests
import responses

from clients.email_client import EmailGatewayClient, EmailGatewayError

GATEWAY_URL = "https://gateway.example.com/send"


@pytest.fixture
def client():
    """Create client with test credentials."""
    return EmailGatewayClient(
        gateway_url=GATEWAY_URL,
        api_key="test-api-key",
        hmac_secret="test-hmac-secret",
        timeout=3,
    )


class TestEmailGatewayClientInit:
    """Test client initialization - fail-fast on invalid config."""

    @pytest.mark.parametrize("field", ["gateway_url", "api_key", "hmac_secret"])
    def test_init_rejects_empty_credential(self, field):
        kwargs = {
            "gateway_url": GATEWAY_URL,
            "api_key": "test-api-key",
            "hmac_secret": "test-hmac-secret",
        }
        kwargs[field] = ""

        with pytest.raises(ValueError, match=field):
            EmailGatewayClient(**kwargs)


class TestSendEmail:
    """Test send_email - uses responses library for HTTP mocking."""

    @responses.activate
    def test_successful_send(self, client):
        responses.add(responses.POST, GATEWAY_URL, json={"success": True}, status=200)

        client.send_email(to="jane@example.com", subject="Booking received", body="Hi Jane")

        payload = json.loads(responses.calls[0].request.body)
        assert payload["email"] == "jane@example.com"
        assert payload["subject"] == "Booking received"
        assert payload["body"] == "Hi Jane"

    @responses.activate
    def test_request_is_signed(self, client):
        """X-Signature is HMAC-SHA256 of the exact body sent."""
        responses.add(responses.POST, GATEWAY_URL, json={"success": True}, status=200)

        client.send_email(to="jane@example.com", subject="s", body="b")

        request = responses.calls[0].request
        body = request.body if isinstance(request.body, str) else request.body.decode()
        expected = hmac.new(b"test-hmac-secret", body.encode(), hashlib.sha256).hexdigest()
        assert request.headers["X-Signature"] == expected
        assert request.headers["X-API-Key"] == "test-api-key"

    @responses.activate
    def test_gateway_rejection(self, client):
        responses.add(
            responses.POST, GATEWAY_URL,
            json={"success": False, "message": "Recipient blocked"}, status=400,
        )

        with pytest.raises(EmailGatewayError, match="Recipient blocked"):
            client.send_email(to="jane@example.com", subject="s", body="b")

    @responses.activate
    def test_invalid_json_response(self, client):
        responses.add(responses.POST, GATEWAY_URL, body="<html>502</html>", status=502)

        with pytest.raises(EmailGatewayError, match="Invalid response"):
            client.send_email(to="jane@example.com", subject="s", body="b")

    @responses.activate
    def test_timeout(self, client):
        responses.add(responses.POST, GATEWAY_URL, body=requests.exceptions.ReadTimeout("slow"))

        with pytest.raises(EmailGatewayError, match="Timed out after 3s"):
            client.send_email(to="jane@example.com", subject="s", body="b")

    @responses.activate
    def test_connection_error(self, client):
        responses.add(responses.POST, GATEWAY_URL, body=requests.exceptions.ConnectionError("refused"))

        with pytest.raises(EmailGatewayError, match="Connection failed"):
            client.send_email(to="jane@example.com", subject="s", body="b")
