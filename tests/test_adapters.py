import json
from datetime import date, datetime

import pytest

from nudge_engine.adapters.facts_json import parse as parse_facts
from nudge_engine.adapters.notification_center import InMemoryNotificationCenter
from nudge_engine.errors import PermissionDenied, StaleHandle
from nudge_engine.schema import NudgeType


def test_facts_parse_success(tmp_path):
    path = tmp_path / "facts.json"
    payload = {
        "lastShowUpDate": "2025-01-05",
        "goalCount": 2,
        "incompleteActivityCountByGoal": {"g1": 3, "g2": 0},
        "anyActivityScheduledToday": True,
        "goalsScheduledToday": ["g1"],
        "settings": {"dailyShowUpEnabled": True, "dailyShowUpOffsetMinutes": 480, "goalNudgeTimeOfDay": "17:30"},
    }
    path.write_text(json.dumps(payload), encoding="utf-8")

    facts = parse_facts(str(path))

    assert facts.last_show_up_date == date(2025, 1, 5)
    assert facts.goal_count == 2
    assert facts.has_actionable_goal()
    assert facts.goals_scheduled_today == frozenset({"g1"})
    assert facts.settings.daily_show_up_offset_minutes == 480
    assert facts.settings.goal_nudge_time_of_day == "17:30"
    assert not facts.settings.goal_nudge_enabled


def test_facts_parse_malformed(tmp_path):
    path = tmp_path / "facts.json"
    path.write_text(json.dumps({"lastShowUpDate": "yesterday"}), encoding="utf-8")
    with pytest.raises(ValueError):
        parse_facts(str(path))

    path.write_text(json.dumps({"settings": {"dailyShowUpEnabled": "yes"}}), encoding="utf-8")
    with pytest.raises(ValueError):
        parse_facts(str(path))

    path.write_text(json.dumps({"settings": {"dailyShowUpOffsetMinutes": 1500}}), encoding="utf-8")
    with pytest.raises(ValueError):
        parse_facts(str(path))

    path.write_text(json.dumps([1, 2]), encoding="utf-8")
    with pytest.raises(ValueError):
        parse_facts(str(path))


def test_notification_center_arm_and_cancel():
    center = InMemoryNotificationCenter()
    handle = center.arm_one_shot(NudgeType.DAILY_SHOW_UP, NudgeType.SETUP_NEXT_STEP, datetime(2025, 1, 7, 9, 0))

    assert center.pending() == {handle}
    assert center.scheduled(NudgeType.SETUP_NEXT_STEP)[0].nudge_type is NudgeType.DAILY_SHOW_UP

    center.cancel(handle)
    with pytest.raises(StaleHandle):
        center.cancel(handle)


def test_notification_center_delivers_due_in_order():
    center = InMemoryNotificationCenter()
    late = center.arm_one_shot(NudgeType.GOAL_NUDGE, NudgeType.GOAL_NUDGE, datetime(2025, 1, 7, 16, 0))
    early = center.arm_one_shot(NudgeType.DAILY_FOCUS, NudgeType.DAILY_FOCUS, datetime(2025, 1, 7, 14, 0))

    due = center.deliver_due(datetime(2025, 1, 7, 15, 0))

    assert [item.handle for item in due] == [early]
    assert center.pending() == {late}


def test_notification_center_without_permission():
    center = InMemoryNotificationCenter(permission_granted=False)
    with pytest.raises(PermissionDenied):
        center.arm_one_shot(NudgeType.GOAL_NUDGE, NudgeType.GOAL_NUDGE, datetime(2025, 1, 7, 16, 0))
