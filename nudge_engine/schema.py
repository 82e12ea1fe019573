"""Core data schema for nudge scheduling."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional


class NudgeType(str, Enum):
    """Closed set of local nudge notification types."""

    DAILY_SHOW_UP = "dailyShowUp"
    DAILY_FOCUS = "dailyFocus"
    GOAL_NUDGE = "goalNudge"
    SETUP_NEXT_STEP = "setupNextStep"

    @classmethod
    def parse(cls, value: str) -> "NudgeType":
        try:
            return cls(value)
        except ValueError as exc:
            raise ValueError(f"Unknown nudge type '{value}'") from exc


# dailyShowUp and setupNextStep share the morning slot.
MORNING_SLOT = "morning"

_SLOT_BY_TYPE = {
    NudgeType.DAILY_SHOW_UP: MORNING_SLOT,
    NudgeType.SETUP_NEXT_STEP: MORNING_SLOT,
    NudgeType.DAILY_FOCUS: NudgeType.DAILY_FOCUS.value,
    NudgeType.GOAL_NUDGE: NudgeType.GOAL_NUDGE.value,
}

SLOTS = (MORNING_SLOT, NudgeType.DAILY_FOCUS.value, NudgeType.GOAL_NUDGE.value)


def slot_of(nudge_type: NudgeType) -> str:
    return _SLOT_BY_TYPE[nudge_type]


def slot_members(slot: str) -> tuple[NudgeType, ...]:
    """Return the nudge types sharing a slot, primary type first."""

    if slot == MORNING_SLOT:
        return (NudgeType.DAILY_SHOW_UP, NudgeType.SETUP_NEXT_STEP)
    return (NudgeType(slot),)


def primary_type(slot: str) -> NudgeType:
    return slot_members(slot)[0]


class Action(str, Enum):
    SCHEDULE = "schedule"
    CANCEL = "cancel"
    NO_CHANGE = "noChange"


@dataclass
class Settings:
    """User-facing reminder settings. Offsets are minutes after local midnight."""

    daily_show_up_enabled: bool = False
    daily_show_up_offset_minutes: int = 9 * 60
    daily_focus_enabled: bool = False
    daily_focus_offset_minutes: int = 14 * 60
    goal_nudge_enabled: bool = False
    goal_nudge_time_of_day: str = "16:00"


@dataclass
class GlobalFacts:
    """Read-only snapshot of domain facts for one reconciliation pass."""

    last_show_up_date: Optional[date] = None
    goal_count: int = 0
    incomplete_activity_count_by_goal: dict[str, int] = field(default_factory=dict)
    any_activity_scheduled_today: bool = False
    settings: Settings = field(default_factory=Settings)
    last_focus_session_date: Optional[date] = None
    goals_scheduled_today: frozenset[str] = frozenset()

    def has_actionable_goal(self) -> bool:
        return self.goal_count > 0 and any(
            count > 0 for count in self.incomplete_activity_count_by_goal.values()
        )


@dataclass
class LedgerEntry:
    """Behavioral history of one nudge type.

    ``currently_scheduled_id`` is set exactly while a one-shot notification is
    armed for the type; ``scheduled_for`` holds its fire time and
    ``planned_for`` the target it was planned for before delivery limits
    moved it.
    ``settled_fire_date`` is the latest fire whose open/no-open outcome has
    been counted.
    """

    last_scheduled_date: Optional[date] = None
    last_fired_date: Optional[date] = None
    last_open_date: Optional[date] = None
    consecutive_no_open_count: int = 0
    currently_scheduled_id: Optional[str] = None
    scheduled_for: Optional[datetime] = None
    settled_fire_date: Optional[date] = None
    detail: Optional[str] = None
    planned_for: Optional[datetime] = None

    def is_armed(self) -> bool:
        return self.currently_scheduled_id is not None

    def to_dict(self) -> dict:
        return {
            "lastScheduledDate": _iso(self.last_scheduled_date),
            "lastFiredDate": _iso(self.last_fired_date),
            "lastOpenDate": _iso(self.last_open_date),
            "consecutiveNoOpenCount": self.consecutive_no_open_count,
            "currentlyScheduledId": self.currently_scheduled_id,
            "scheduledFor": _iso(self.scheduled_for),
            "settledFireDate": _iso(self.settled_fire_date),
            "detail": self.detail,
            "plannedFor": _iso(self.planned_for),
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "LedgerEntry":
        if not isinstance(payload, dict):
            raise ValueError("Ledger entry must be an object")

        count = int(payload.get("consecutiveNoOpenCount") or 0)
        if count < 0:
            raise ValueError("consecutiveNoOpenCount must be >= 0")

        scheduled_for = payload.get("scheduledFor")
        planned_for = payload.get("plannedFor")
        return cls(
            last_scheduled_date=_parse_date(payload.get("lastScheduledDate")),
            last_fired_date=_parse_date(payload.get("lastFiredDate")),
            last_open_date=_parse_date(payload.get("lastOpenDate")),
            consecutive_no_open_count=count,
            currently_scheduled_id=payload.get("currentlyScheduledId"),
            scheduled_for=datetime.fromisoformat(scheduled_for) if scheduled_for else None,
            settled_fire_date=_parse_date(payload.get("settledFireDate")),
            detail=payload.get("detail"),
            planned_for=datetime.fromisoformat(planned_for) if planned_for else None,
        )


@dataclass
class EligibilityResult:
    eligible: bool
    base_target: Optional[datetime] = None
    substitute_type: Optional[NudgeType] = None
    reason: str = ""
    detail: Optional[str] = None


@dataclass
class ScheduleDecision:
    """Outcome of planning one slot; consumed within the same pass."""

    type: NudgeType
    action: Action
    fire_at: Optional[datetime] = None
    resulting_type: Optional[NudgeType] = None
    reason: str = ""
    detail: Optional[str] = None
    planned_for: Optional[datetime] = None

    @property
    def effective_type(self) -> NudgeType:
        return self.resulting_type or self.type


# Reconciler events


@dataclass(frozen=True)
class SettingsChanged:
    type: NudgeType


@dataclass(frozen=True)
class AppForegrounded:
    pass


@dataclass(frozen=True)
class NotificationFired:
    type: NudgeType
    date: date
    handle: Optional[str] = None


@dataclass(frozen=True)
class NotificationOpened:
    type: NudgeType
    date: date


@dataclass(frozen=True)
class ShowUpRecorded:
    date: date


@dataclass(frozen=True)
class FocusSessionCompleted:
    date: date


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_date(value) -> Optional[date]:
    if value in (None, ""):
        return None
    return date.fromisoformat(value)
