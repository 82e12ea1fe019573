"""Cross-type delivery limits for system nudges."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Callable

from nudge_engine.schema import NudgeType, slot_of

DAILY_NUDGE_CAP = 2
MIN_SPACING = timedelta(hours=6)
MAX_SHIFT_DAYS = 7


def is_blocked(
    nudge_type: NudgeType,
    fire_at: datetime,
    sent_count_on: Callable[[date], int],
    last_sent_at: dict[NudgeType, datetime],
    daily_cap: int = DAILY_NUDGE_CAP,
    min_spacing: timedelta = MIN_SPACING,
) -> bool:
    """True when ``fire_at`` breaks the daily cap or follows another slot's send too closely."""

    if sent_count_on(fire_at.date()) >= daily_cap:
        return True
    for other, sent_at in last_sent_at.items():
        if slot_of(other) == slot_of(nudge_type):
            continue
        if timedelta(0) <= fire_at - sent_at < min_spacing:
            return True
    return False


def apply_delivery_limits(
    nudge_type: NudgeType,
    fire_at: datetime,
    sent_count_on: Callable[[date], int],
    last_sent_at: dict[NudgeType, datetime],
    daily_cap: int = DAILY_NUDGE_CAP,
    min_spacing: timedelta = MIN_SPACING,
) -> datetime:
    """Move ``fire_at`` forward by whole days until it respects the limits.

    Only nudges already delivered count against the limits; the time of day
    is kept.
    """

    for _ in range(MAX_SHIFT_DAYS):
        if not is_blocked(nudge_type, fire_at, sent_count_on, last_sent_at, daily_cap, min_spacing):
            return fire_at
        fire_at += timedelta(days=1)
    return fire_at
