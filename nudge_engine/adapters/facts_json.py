"""JSON adapter for domain facts and reminder settings."""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import date, datetime

from nudge_engine.schema import GlobalFacts, Settings

_SETTINGS_FIELDS = {
    "dailyShowUpEnabled": ("daily_show_up_enabled", bool),
    "dailyShowUpOffsetMinutes": ("daily_show_up_offset_minutes", int),
    "dailyFocusEnabled": ("daily_focus_enabled", bool),
    "dailyFocusOffsetMinutes": ("daily_focus_offset_minutes", int),
    "goalNudgeEnabled": ("goal_nudge_enabled", bool),
    "goalNudgeTimeOfDay": ("goal_nudge_time_of_day", str),
}


def _parse_date(value, field_name: str):
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise ValueError(f"Field {field_name}: malformed date") from exc


def parse_settings(payload: dict) -> Settings:
    if not isinstance(payload, dict):
        raise ValueError("settings must be an object")

    unknown = sorted(set(payload) - set(_SETTINGS_FIELDS))
    if unknown:
        raise ValueError(f"Unknown settings {unknown}")

    values = {}
    for key, (attr, kind) in _SETTINGS_FIELDS.items():
        if key not in payload:
            continue
        raw = payload[key]
        if kind is bool and not isinstance(raw, bool):
            raise ValueError(f"Setting {key} must be a boolean")
        try:
            values[attr] = kind(raw)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Setting {key}: invalid value {raw!r}") from exc
        if attr.endswith("_offset_minutes") and not 0 <= values[attr] < 24 * 60:
            raise ValueError(f"Setting {key} must be within 0..1439 minutes")
    return Settings(**values)


def parse_facts(payload: dict) -> GlobalFacts:
    """Build a GlobalFacts snapshot from a decoded JSON object."""

    if not isinstance(payload, dict):
        raise ValueError("JSON payload must be an object")

    counts_raw = payload.get("incompleteActivityCountByGoal") or {}
    if not isinstance(counts_raw, dict):
        raise ValueError("incompleteActivityCountByGoal must be an object")
    try:
        counts = {str(goal_id): int(count) for goal_id, count in counts_raw.items()}
    except (TypeError, ValueError) as exc:
        raise ValueError("incompleteActivityCountByGoal: counts must be integers") from exc
    if any(count < 0 for count in counts.values()):
        raise ValueError("incompleteActivityCountByGoal: counts must be >= 0")

    goal_count = int(payload.get("goalCount", len(counts)))
    return GlobalFacts(
        last_show_up_date=_parse_date(payload.get("lastShowUpDate"), "lastShowUpDate"),
        goal_count=goal_count,
        incomplete_activity_count_by_goal=counts,
        any_activity_scheduled_today=bool(payload.get("anyActivityScheduledToday", False)),
        settings=parse_settings(payload.get("settings") or {}),
        last_focus_session_date=_parse_date(payload.get("lastFocusSessionDate"), "lastFocusSessionDate"),
        goals_scheduled_today=frozenset(str(g) for g in payload.get("goalsScheduledToday") or []),
    )


def parse(file_path: str) -> GlobalFacts:
    """Parse a JSON file into a GlobalFacts snapshot."""

    with open(file_path, encoding="utf-8") as handle:
        try:
            payload = json.load(handle)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Malformed JSON in {file_path}") from exc
    return parse_facts(payload)


class StaticFactsProvider:
    """Facts provider returning a fixed snapshot until updated."""

    def __init__(self, facts: GlobalFacts) -> None:
        self.facts = facts

    def get_global_facts(self, now: datetime) -> GlobalFacts:
        return self.facts

    def update(self, **changes) -> GlobalFacts:
        self.facts = replace(self.facts, **changes)
        return self.facts

    def update_settings(self, **changes) -> GlobalFacts:
        return self.update(settings=replace(self.facts.settings, **changes))
