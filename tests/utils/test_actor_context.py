"""Tests for utils/actor_context.py."""

import pytest

from core.models import Actor, ActorRole
from utils.actor_context import actor_context, get_current_actor, get_optional_actor, set_current_actor


class TestActorContext:

    def test_get_current_actor_fails_fast(self):
        with pytest.raises(RuntimeError, match="No actor context"):
            get_current_actor()

    def test_optional_actor_is_none_by_default(self):
        assert get_optional_actor() is None

    def test_context_manager_sets_and_clears(self, admin_actor):
        with actor_context(admin_actor):
            assert get_current_actor() == admin_actor
        assert get_optional_actor() is None

    def test_context_manager_restores_previous(self, admin_actor):
        outer = Actor(id="cust-1", role=ActorRole.CUSTOMER)
        set_current_actor(outer)

        with actor_context(admin_actor):
            assert get_current_actor() is admin_actor

        assert get_current_actor() is outer

    def test_system_actor(self):
        with actor_context(Actor.system()):
            assert get_current_actor().role == ActorRole.SYSTEM
