"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, to_utc, to_local, local_to_utc, add_minutes, parse_iso
from utils.actor_context import (
    get_current_actor,
    get_optional_actor,
    set_current_actor,
    clear_current_actor,
    actor_context,
)
