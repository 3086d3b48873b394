"""Persistence backends for the booking engine."""

from core.store.base import BookingStore
from core.store.memory_store import InMemoryBookingStore
from core.store.postgres_store import PostgresBookingStore, SCHEMA

__all__ = ["BookingStore", "InMemoryBookingStore", "PostgresBookingStore", "SCHEMA"]
