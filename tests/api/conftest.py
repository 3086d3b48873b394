"""API test fixtures - TestClient over the in-memory engine with signed actor headers."""

import pytest
from starlette.testclient import TestClient

from api.app import create_app
from api.middleware import SignedHeaderAuthenticator

ACTOR_SECRET = "test-actor-secret"


@pytest.fixture
def authenticator():
    return SignedHeaderAuthenticator(ACTOR_SECRET)


@pytest.fixture
def app(services, authenticator):
    return create_app(services, authenticate=authenticator)


@pytest.fixture
def client(app):
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def actor_headers(authenticator):
    """Factory for signed identity headers."""

    def _headers(actor_id: str, role: str) -> dict:
        return {
            "X-Actor-Id": actor_id,
            "X-Actor-Role": role,
            "X-Actor-Signature": authenticator.sign(actor_id, role),
        }

    return _headers


@pytest.fixture
def admin_headers(actor_headers):
    return actor_headers("admin-1", "admin")


@pytest.fixture
def created(client, make_request):
    """Booking created through the API, as returned in the response body."""
    response = client.post("/api/bookings", json=make_request())
    assert response.status_code == 201
    return response.json()["data"]


@pytest.fixture
def owner_headers(actor_headers, created):
    return actor_headers(created["customer_id"], "customer")
