"""
day_keys.py — UTC calendar-day identifiers for streak continuity.

A day key is the ``YYYY-MM-DD`` form of a timestamp's UTC date. Every
streak and staleness decision in the check-in engine compares day keys,
never raw timestamps, so a participant who checks in at 23:59 UTC and
again at 00:01 UTC has checked in on two consecutive days.

═══════════════════════════════════════════════════════════════════════════
STALENESS RULE
═══════════════════════════════════════════════════════════════════════════

    last day key       evaluated at now = 2024-03-10T08:00Z
    ─────────────      ─────────────────────────────────────
    None               not stale (nothing to judge yet)
    2024-03-10         not stale (today)
    2024-03-09         not stale (yesterday, today's check-in still due)
    2024-03-08         STALE (a full day was missed)
    2024-03-11         STALE (future keys never count as fresh)
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


def _as_utc(ts: datetime) -> datetime:
    # Naive datetimes are taken to already be UTC.
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def day_key(ts: datetime) -> str:
    """Zero-padded ``YYYY-MM-DD`` of the UTC calendar day containing ``ts``."""
    d = _as_utc(ts)
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def yesterday_key(ts: datetime) -> str:
    """Day key of the UTC calendar day immediately before ``ts``'s day."""
    return day_key(_as_utc(ts) - timedelta(days=1))


def is_stale(last_day_key: Optional[str], now: datetime) -> bool:
    """
    True when ``last_day_key`` is neither today nor yesterday relative to ``now``.

    An absent key is never stale: a participant who has not checked in
    yet cannot have broken a streak.
    """
    if not last_day_key:
        return False
    return last_day_key not in (day_key(now), yesterday_key(now))
