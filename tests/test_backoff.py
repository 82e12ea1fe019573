from datetime import date, datetime, timedelta

from nudge_engine.backoff import apply_backoff, record_open, settle_unopened
from nudge_engine.schema import LedgerEntry, NudgeType

BASE = datetime(2025, 1, 7, 16, 0)


def test_goal_nudge_backoff_threshold():
    for count in (0, 1):
        assert apply_backoff(NudgeType.GOAL_NUDGE, LedgerEntry(consecutive_no_open_count=count), BASE) == BASE
    for count in (2, 3, 10):
        adjusted = apply_backoff(NudgeType.GOAL_NUDGE, LedgerEntry(consecutive_no_open_count=count), BASE)
        assert adjusted - BASE == timedelta(days=1)


def test_other_types_never_back_off():
    entry = LedgerEntry(consecutive_no_open_count=5)
    for nudge_type in (NudgeType.DAILY_SHOW_UP, NudgeType.DAILY_FOCUS, NudgeType.SETUP_NEXT_STEP):
        assert apply_backoff(nudge_type, entry, BASE) == BASE


def test_settle_counts_each_unopened_fire_once():
    entry = LedgerEntry(last_fired_date=date(2025, 1, 6))
    settled = settle_unopened(entry)
    assert settled.consecutive_no_open_count == 1
    assert settle_unopened(settled) is settled


def test_settle_ignores_opened_fire():
    entry = LedgerEntry(last_fired_date=date(2025, 1, 6), last_open_date=date(2025, 1, 6))
    assert settle_unopened(entry).consecutive_no_open_count == 0
    assert settle_unopened(LedgerEntry()) == LedgerEntry()


def test_record_open_resets_streak():
    entry = LedgerEntry(last_fired_date=date(2025, 1, 6), consecutive_no_open_count=3)
    opened = record_open(entry, date(2025, 1, 6))
    assert opened.consecutive_no_open_count == 0
    assert opened.last_open_date == date(2025, 1, 6)
    assert settle_unopened(opened) is opened


def test_backoff_counts_from_the_day_after_the_last_fire():
    entry = LedgerEntry(consecutive_no_open_count=2, last_fired_date=date(2025, 1, 6))

    assert apply_backoff(NudgeType.GOAL_NUDGE, entry, BASE) == datetime(2025, 1, 8, 16, 0)
    next_day = datetime(2025, 1, 8, 16, 0)
    assert apply_backoff(NudgeType.GOAL_NUDGE, entry, next_day) == next_day
    long_after = datetime(2025, 1, 12, 16, 0)
    assert apply_backoff(NudgeType.GOAL_NUDGE, entry, long_after) == long_after
