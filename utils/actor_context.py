"""Propagate the acting identity through the call stack using contextvars."""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from core.models.actor import Actor

_current_actor: ContextVar["Actor | None"] = ContextVar("current_actor", default=None)


def get_current_actor() -> "Actor":
    """
    Get the current actor from context.

    Raises RuntimeError if no actor context is set.
    This is fail-fast behavior - status changes must always be attributable,
    so reaching one without an actor is a bug.
    """
    actor = _current_actor.get()
    if actor is None:
        raise RuntimeError(
            "No actor context set. This usually means you're calling "
            "attributed code outside of an authenticated request."
        )
    return actor


def get_optional_actor() -> "Actor | None":
    """Current actor, or None for anonymous requests (guest checkout)."""
    return _current_actor.get()


def set_current_actor(actor: "Actor") -> None:
    """
    Set current actor in context.

    Called by the actor middleware after the identity provider resolved
    the request.
    """
    _current_actor.set(actor)


def clear_current_actor() -> None:
    """
    Clear actor context.

    Must be called in finally block to prevent context leakage.
    """
    _current_actor.set(None)


@contextmanager
def actor_context(actor: "Actor"):
    """
    Context manager for temporarily setting the actor.

    Useful for:
    - Tests
    - Background jobs (payment deadline sweeps act as the system actor)
    - Admin operations on behalf of a customer

    Example:
        with actor_context(Actor.system()):
            manager.transition_status(booking_id, BookingStatus.CANCELLED, get_current_actor())
    """
    previous = _current_actor.get()
    set_current_actor(actor)
    try:
        yield
    finally:
        if previous is None:
            clear_current_actor()
        else:
            set_current_actor(previous)
