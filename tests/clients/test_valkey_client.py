"""Tests for ValkeyClient - Redis-compatible lookup cache.

redis.from_url is patched to return a mock connection.
"""

from unittest.mock import MagicMock

import pytest
import redis

import clients.valkey_client as valkey_module
from clients.valkey_client import ValkeyClient


@pytest.fixture
def redis_conn(monkeypatch):
    conn = MagicMock()
    from_url = MagicMock(return_value=conn)
    monkeypatch.setattr(valkey_module.redis, "from_url", from_url)
    conn.from_url = from_url
    return conn


@pytest.fixture
def valkey(redis_conn):
    return ValkeyClient("redis://localhost:6379/0", socket_timeout=1.5)


class TestValkeyClientInit:

    def test_connects_and_pings(self, redis_conn, valkey):
        redis_conn.ping.assert_called_once()
        kwargs = redis_conn.from_url.call_args.kwargs
        assert kwargs["decode_responses"] is True
        assert kwargs["socket_timeout"] == 1.5

    def test_unreachable_raises(self, redis_conn):
        redis_conn.ping.side_effect = redis.ConnectionError("refused")

        with pytest.raises(redis.ConnectionError):
            ValkeyClient("redis://localhost:6379/0")


class TestBasicOperations:

    def test_set_with_expiration_uses_setex(self, redis_conn, valkey):
        valkey.set("k", "v", expire_seconds=60)

        redis_conn.setex.assert_called_once_with("k", 60, "v")

    def test_set_without_expiration(self, redis_conn, valkey):
        valkey.set("k", "v")

        redis_conn.set.assert_called_once_with("k", "v")

    def test_delete_reports_existence(self, redis_conn, valkey):
        redis_conn.delete.return_value = 0

        assert valkey.delete("missing") is False


class TestJsonOperations:

    def test_set_json_serialises(self, redis_conn, valkey):
        valkey.set_json("geocode:SW96BU", {"latitude": 51.47, "longitude": -0.11}, 3600)

        redis_conn.setex.assert_called_once_with(
            "geocode:SW96BU", 3600, '{"latitude": 51.47, "longitude": -0.11}'
        )

    def test_get_json_missing_returns_none(self, redis_conn, valkey):
        redis_conn.get.return_value = None

        assert valkey.get_json("geocode:X") is None

    def test_get_json_invalid_raises_value_error(self, redis_conn, valkey):
        redis_conn.get.return_value = "{not json"

        with pytest.raises(ValueError, match="geocode:X"):
            valkey.get_json("geocode:X")
