"""
tests/unit/test_lockout_policy.py — Tier table, duration_for() and lock_state().

Pure functions; no database.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend.app.security.lockout import (
    LOCKOUT_TIERS,
    NO_LOCK,
    UNLOCKED,
    Locked,
    LockoutTier,
    Unlocked,
    as_utc,
    duration_for,
    lock_state,
)

NOW = datetime(2026, 5, 4, 9, 30, tzinfo=timezone.utc)


class TestDurationFor:

    @pytest.mark.parametrize("attempts, expected", [
        (0,  NO_LOCK),
        (1,  NO_LOCK),
        (4,  NO_LOCK),
        (5,  timedelta(minutes=15)),
        (9,  timedelta(minutes=15)),
        (10, timedelta(minutes=30)),
        (14, timedelta(minutes=30)),
        (15, timedelta(minutes=60)),
        (40, timedelta(minutes=60)),
    ])
    def test_default_tiers(self, attempts, expected):
        assert duration_for(attempts) == expected

    def test_monotonic(self):
        durations = [duration_for(n) for n in range(0, 30)]
        assert durations == sorted(durations)

    def test_custom_tiers(self):
        tiers = (LockoutTier(attempts=2, duration=timedelta(seconds=30)),)
        assert duration_for(1, tiers) == NO_LOCK
        assert duration_for(2, tiers) == timedelta(seconds=30)

    def test_default_table(self):
        assert [(t.attempts, t.duration) for t in LOCKOUT_TIERS] == [
            (5,  timedelta(minutes=15)),
            (10, timedelta(minutes=30)),
            (15, timedelta(minutes=60)),
        ]


class TestLockState:

    def test_none_is_unlocked(self):
        assert lock_state(None, NOW) == UNLOCKED

    def test_future_is_locked(self):
        until = NOW + timedelta(minutes=15)
        assert lock_state(until, NOW) == Locked(until=until)

    def test_past_is_unlocked(self):
        assert isinstance(lock_state(NOW - timedelta(seconds=1), NOW), Unlocked)

    def test_exact_boundary_is_unlocked(self):
        assert lock_state(NOW, NOW) == UNLOCKED

    def test_naive_timestamp_read_as_utc(self):
        naive = (NOW + timedelta(minutes=5)).replace(tzinfo=None)
        state = lock_state(naive, NOW)
        assert state == Locked(until=NOW + timedelta(minutes=5))


class TestMinutesRemaining:

    @pytest.mark.parametrize("remaining, expected", [
        (timedelta(minutes=15),            15),
        (timedelta(minutes=14, seconds=1), 15),
        (timedelta(seconds=61),            2),
        (timedelta(seconds=59),            1),
        (timedelta(seconds=1),             1),
    ])
    def test_rounds_up(self, remaining, expected):
        assert Locked(until=NOW + remaining).minutes_remaining(NOW) == expected

    def test_never_below_one(self):
        assert Locked(until=NOW).minutes_remaining(NOW + timedelta(minutes=1)) == 1


def test_as_utc_keeps_aware_values():
    assert as_utc(NOW) is NOW
