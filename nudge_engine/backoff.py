"""Ignore-driven backoff rules."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from nudge_engine.schema import LedgerEntry, NudgeType

BACKOFF_THRESHOLD = 2
BACKOFF_EXTRA_DAYS = 1


def apply_backoff(
    nudge_type: NudgeType,
    entry: LedgerEntry,
    base_target: datetime,
    threshold: int = BACKOFF_THRESHOLD,
    extra_days: int = BACKOFF_EXTRA_DAYS,
) -> datetime:
    """Return the target after backoff; only goal nudges back off.

    The extra days are counted from the occurrence that normally follows the
    latest fire, so the result is the same on every pass until the next fire.
    Once that day has passed the base target is kept. A longer ignore streak
    does not compound the shift.
    """

    if nudge_type is not NudgeType.GOAL_NUDGE or entry.consecutive_no_open_count < threshold:
        return base_target
    if entry.last_fired_date is None:
        return base_target + timedelta(days=extra_days)
    after_fire = datetime.combine(entry.last_fired_date + timedelta(days=1), base_target.time())
    return max(base_target, after_fire + timedelta(days=extra_days))


def settle_unopened(entry: LedgerEntry) -> LedgerEntry:
    """Count the latest fire as ignored if no open followed it."""

    fired = entry.last_fired_date
    if fired is None or entry.settled_fire_date == fired:
        return entry
    if entry.last_open_date is not None and entry.last_open_date >= fired:
        return replace(entry, settled_fire_date=fired)
    return replace(
        entry,
        consecutive_no_open_count=entry.consecutive_no_open_count + 1,
        settled_fire_date=fired,
    )


def record_open(entry: LedgerEntry, opened_on) -> LedgerEntry:
    """Reset the ignore streak after an open."""

    return replace(
        entry,
        last_open_date=opened_on,
        consecutive_no_open_count=0,
        settled_fire_date=entry.last_fired_date,
    )
