"""
security/lockout.py — Progressive account lockout policy.

Stateless. The caller persists `locked_until = now + duration_for(attempts)`
whenever the duration is non-zero. The stored nullable timestamp is decoded
into an explicit Unlocked | Locked(until) state by lock_state().
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Union


@dataclass(frozen=True)
class LockoutTier:
    attempts: int
    duration: timedelta


# Must be sorted by `attempts` with non-decreasing durations.
LOCKOUT_TIERS: tuple[LockoutTier, ...] = (
    LockoutTier(attempts=5,  duration=timedelta(minutes=15)),
    LockoutTier(attempts=10, duration=timedelta(minutes=30)),
    LockoutTier(attempts=15, duration=timedelta(minutes=60)),
)

NO_LOCK = timedelta(0)


def duration_for(
        failed_attempts: int,
        tiers: tuple[LockoutTier, ...] = LOCKOUT_TIERS,
) -> timedelta:
    """Lock duration for a cumulative failure count. The highest tier met wins."""
    duration = NO_LOCK
    for tier in tiers:
        if failed_attempts >= tier.attempts:
            duration = tier.duration
    return duration


@dataclass(frozen=True)
class Unlocked:
    pass


@dataclass(frozen=True)
class Locked:
    until: datetime

    def minutes_remaining(self, now: datetime) -> int:
        seconds = (self.until - now).total_seconds()
        return max(1, math.ceil(seconds / 60))


LockState = Union[Unlocked, Locked]

UNLOCKED = Unlocked()


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; every timestamp in this app is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def lock_state(locked_until: datetime | None, now: datetime) -> LockState:
    if locked_until is None:
        return UNLOCKED
    until = as_utc(locked_until)
    if until <= now:
        return UNLOCKED
    return Locked(until=until)
