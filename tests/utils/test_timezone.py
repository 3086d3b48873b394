"""Tests for utils/timezone.py."""

from datetime import date, datetime, time, timezone

import pytest

from utils.timezone import add_minutes, local_to_utc, now_utc, parse_iso, to_local, to_utc


class TestNowAndConversion:

    def test_now_utc_is_aware(self):
        assert now_utc().tzinfo == timezone.utc

    def test_to_utc_rejects_naive(self):
        with pytest.raises(ValueError, match="naive"):
            to_utc(datetime(2026, 6, 1, 9, 0))

    def test_to_local_summer_time(self):
        local = to_local(datetime(2026, 6, 1, 8, 0, tzinfo=timezone.utc), "Europe/London")
        assert local.hour == 9

    def test_unknown_timezone(self):
        with pytest.raises(ValueError, match="Unknown timezone"):
            to_local(now_utc(), "Mars/Olympus_Mons")

    def test_parse_iso_requires_offset(self):
        assert parse_iso("2026-06-01T09:00:00+01:00") == datetime(2026, 6, 1, 8, 0, tzinfo=timezone.utc)
        with pytest.raises(ValueError):
            parse_iso("2026-06-01T09:00:00")


class TestLocalToUtc:

    def test_winter_is_gmt(self):
        assert local_to_utc(date(2026, 1, 15), time(10, 0), "Europe/London") == datetime(
            2026, 1, 15, 10, 0, tzinfo=timezone.utc
        )

    def test_summer_is_bst(self):
        assert local_to_utc(date(2026, 6, 10), time(10, 0), "Europe/London") == datetime(
            2026, 6, 10, 9, 0, tzinfo=timezone.utc
        )


class TestAddMinutes:

    def test_adds(self):
        assert add_minutes(time(10, 0), 150) == time(12, 30)

    def test_may_end_exactly_before_midnight(self):
        assert add_minutes(time(22, 0), 119) == time(23, 59)

    def test_crossing_midnight_rejected(self):
        with pytest.raises(ValueError, match="midnight"):
            add_minutes(time(22, 0), 120)
