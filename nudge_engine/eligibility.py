"""Eligibility rules deciding whether and when a nudge may fire."""

from __future__ import annotations

from datetime import datetime, time, timedelta
from typing import Optional

from nudge_engine.schema import EligibilityResult, GlobalFacts, LedgerEntry, NudgeType

DEFAULT_GOAL_NUDGE_TIME = "16:00"

SETUP_NO_GOALS = "no_goals"
SETUP_NO_ACTIVITIES = "no_activities"


def minutes_to_time(minutes: int) -> time:
    """Convert minutes after local midnight into a time of day."""

    minutes = int(minutes)
    if not 0 <= minutes < 24 * 60:
        raise ValueError(f"Offset minutes out of range: {minutes}")
    return time(minutes // 60, minutes % 60)


def parse_time_of_day(value: Optional[str], default: str = DEFAULT_GOAL_NUDGE_TIME) -> time:
    """Parse an ``HH:MM`` string, falling back to ``default`` when malformed."""

    for candidate in (value, default):
        if not candidate:
            continue
        hour_raw, _, minute_raw = str(candidate).partition(":")
        try:
            hour, minute = int(hour_raw), int(minute_raw or 0)
        except ValueError:
            continue
        if 0 <= hour < 24 and 0 <= minute < 60:
            return time(hour, minute)
    raise ValueError(f"Invalid time of day '{value}' and default '{default}'")


def morning_slot(facts: GlobalFacts) -> Optional[NudgeType]:
    """Choose what the morning slot shows: show-up, setup step, or nothing."""

    if not facts.settings.daily_show_up_enabled:
        return None
    if facts.has_actionable_goal():
        return NudgeType.DAILY_SHOW_UP
    return NudgeType.SETUP_NEXT_STEP


def setup_reason(facts: GlobalFacts) -> str:
    return SETUP_NO_GOALS if facts.goal_count == 0 else SETUP_NO_ACTIVITIES


def pick_goal_candidate(facts: GlobalFacts) -> Optional[str]:
    """Pick the goal a goal nudge is about.

    Goals with an activity scheduled today win, then goals with the most
    incomplete activities; ties break on goal id.
    """

    eligible = [(goal_id, count) for goal_id, count in facts.incomplete_activity_count_by_goal.items() if count > 0]
    if not eligible:
        return None
    ranked = sorted(
        eligible,
        key=lambda item: (item[0] not in facts.goals_scheduled_today, -item[1], item[0]),
    )
    return ranked[0][0]


def _keeps_pending_today(entry: Optional[LedgerEntry], target_today: datetime, now: datetime) -> bool:
    if entry is None or not entry.is_armed() or entry.scheduled_for is None:
        return False
    return entry.scheduled_for.date() == now.date() and entry.scheduled_for > now and target_today > now


def _evaluate_daily_show_up(
    facts: GlobalFacts, now: datetime, entry: Optional[LedgerEntry]
) -> EligibilityResult:
    settings = facts.settings
    if not settings.daily_show_up_enabled:
        return EligibilityResult(eligible=False, reason="disabled")

    today = now.date()
    slot_time = minutes_to_time(settings.daily_show_up_offset_minutes)
    target_today = datetime.combine(today, slot_time)

    substitute = morning_slot(facts)
    detail = setup_reason(facts) if substitute is NudgeType.SETUP_NEXT_STEP else None
    substitute_type = substitute if substitute is NudgeType.SETUP_NEXT_STEP else None

    showed_up_today = facts.last_show_up_date == today
    if not showed_up_today and _keeps_pending_today(entry, target_today, now):
        return EligibilityResult(True, target_today, substitute_type, "pending_today", detail)

    # Never re-arm a morning that has already been delivered.
    floor = today
    if entry is not None and entry.last_fired_date is not None and entry.last_fired_date > floor:
        floor = entry.last_fired_date
    target = datetime.combine(floor + timedelta(days=1), slot_time)
    reason = "showed_up_today" if showed_up_today else "next_day"
    return EligibilityResult(True, target, substitute_type, reason, detail)


def _evaluate_daily_focus(
    facts: GlobalFacts, now: datetime, entry: Optional[LedgerEntry]
) -> EligibilityResult:
    settings = facts.settings
    if not settings.daily_focus_enabled:
        return EligibilityResult(eligible=False, reason="disabled")

    today = now.date()
    slot_time = minutes_to_time(settings.daily_focus_offset_minutes)
    target_today = datetime.combine(today, slot_time)

    completed_today = facts.last_focus_session_date == today
    if not completed_today and _keeps_pending_today(entry, target_today, now):
        return EligibilityResult(True, target_today, reason="pending_today")

    reason = "focus_completed_today" if completed_today else "next_day"
    return EligibilityResult(True, datetime.combine(today + timedelta(days=1), slot_time), reason=reason)


def _evaluate_goal_nudge(
    facts: GlobalFacts,
    now: datetime,
    entry: Optional[LedgerEntry],
    default_time: str,
) -> EligibilityResult:
    settings = facts.settings
    if not settings.goal_nudge_enabled:
        return EligibilityResult(eligible=False, reason="disabled")

    goal_id = pick_goal_candidate(facts)
    if goal_id is None:
        return EligibilityResult(eligible=False, reason="no_actionable_goal")

    today = now.date()
    if facts.last_show_up_date == today:
        return EligibilityResult(eligible=False, reason="showed_up_today")

    slot_time = parse_time_of_day(settings.goal_nudge_time_of_day, default_time)
    target_today = datetime.combine(today, slot_time)
    fired_today = entry is not None and entry.last_fired_date == today
    if target_today > now and not fired_today:
        return EligibilityResult(True, target_today, reason="later_today", detail=goal_id)
    return EligibilityResult(
        True,
        datetime.combine(today + timedelta(days=1), slot_time),
        reason="next_day",
        detail=goal_id,
    )


def evaluate(
    nudge_type: NudgeType,
    facts: GlobalFacts,
    now: datetime,
    entry: Optional[LedgerEntry] = None,
    default_goal_nudge_time: str = DEFAULT_GOAL_NUDGE_TIME,
) -> EligibilityResult:
    """Decide whether ``nudge_type`` may be scheduled and its base target.

    ``entry`` is the ledger entry holding the slot's armed instance, if any.
    The result depends only on the arguments, so re-running with unchanged
    inputs yields the same decision.
    """

    if nudge_type is NudgeType.DAILY_SHOW_UP:
        return _evaluate_daily_show_up(facts, now, entry)
    if nudge_type is NudgeType.DAILY_FOCUS:
        return _evaluate_daily_focus(facts, now, entry)
    if nudge_type is NudgeType.GOAL_NUDGE:
        return _evaluate_goal_nudge(facts, now, entry, default_goal_nudge_time)
    raise ValueError(f"{nudge_type.value} is only reachable as a substitute for dailyShowUp")
