"""Request-scoped middleware for API requests."""

import hashlib
import hmac
import logging
from typing import Callable
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from core.models import Actor, ActorRole
from utils.actor_context import clear_current_actor, set_current_actor

logger = logging.getLogger(__name__)


class ActorRequired(Exception):
    """Endpoint needs an authenticated actor and the request has none."""


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a unique request ID to every request."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class SignedHeaderAuthenticator:
    """
    Resolve the actor from headers set by the identity provider's gateway.

    The gateway sends X-Actor-Id, X-Actor-Role and X-Actor-Signature, the
    hex HMAC-SHA256 of "<id>:<role>" under a shared secret. Unsigned or
    badly signed headers are treated as anonymous.
    """

    def __init__(self, shared_secret: str):
        if not shared_secret:
            raise ValueError("shared_secret is required")
        self._secret = shared_secret.encode("utf-8")

    def sign(self, actor_id: str, role: str) -> str:
        return hmac.new(self._secret, f"{actor_id}:{role}".encode("utf-8"), hashlib.sha256).hexdigest()

    def __call__(self, request: Request) -> Actor | None:
        actor_id = request.headers.get("X-Actor-Id")
        role = request.headers.get("X-Actor-Role")
        signature = request.headers.get("X-Actor-Signature")
        if not actor_id or not role or not signature:
            return None

        if not hmac.compare_digest(self.sign(actor_id, role), signature):
            logger.warning("Rejected actor headers with bad signature for %s", actor_id)
            return None

        try:
            return Actor(id=actor_id, role=ActorRole(role))
        except ValueError:
            logger.warning("Rejected actor headers with unknown role %r", role)
            return None


class ActorMiddleware(BaseHTTPMiddleware):
    """
    Sets the acting identity for the request.

    Anonymous requests pass through (guest checkout); endpoints that need
    an actor call require_actor().
    """

    def __init__(self, app, authenticate: Callable[[Request], Actor | None]):
        super().__init__(app)
        self._authenticate = authenticate

    async def dispatch(self, request: Request, call_next):
        actor = self._authenticate(request)
        request.state.actor = actor
        if actor is not None:
            set_current_actor(actor)

        try:
            return await call_next(request)
        finally:
            # Always clear context
            clear_current_actor()


def require_actor(request: Request) -> Actor:
    """
    Actor for this request.

    Raises:
        ActorRequired: Request is anonymous
    """
    actor = getattr(request.state, "actor", None)
    if actor is None:
        raise ActorRequired("Authentication required")
    return actor
