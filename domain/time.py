"""
Domain time utilities (pure).

Centralized timestamp validation and the sale's fixed time constants.

Every transition in the engine receives a single explicit `now`; nothing in the
domain layer reads the wall clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

HOUR = timedelta(hours=1)
DAY = timedelta(days=1)


def require_utc_timestamp(name: str, value: datetime) -> None:
    """
    Enforces the requirement that timestamps are UTC.

    Invariants:
    - Timestamps must be timezone-aware.
    - Timestamps must have UTC offset 0.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def seconds(delta: timedelta) -> Decimal:
    """Exact length of a timedelta in seconds, as a Decimal."""

    return Decimal(delta.days * 86400 + delta.seconds) + Decimal(delta.microseconds) / Decimal(1_000_000)
