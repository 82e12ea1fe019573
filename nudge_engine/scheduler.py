"""Cancel-then-arm scheduling of one-shot nudges."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional, Protocol

from nudge_engine.backoff import apply_backoff
from nudge_engine.config import DEFAULT_CONFIG, EngineConfig
from nudge_engine.eligibility import evaluate
from nudge_engine.errors import ArmFailed, NudgeError, PermissionDenied, StaleHandle
from nudge_engine.limits import apply_delivery_limits
from nudge_engine.ledger import LedgerStore
from nudge_engine.schema import (
    MORNING_SLOT,
    Action,
    GlobalFacts,
    NudgeType,
    ScheduleDecision,
    primary_type,
    slot_members,
    slot_of,
)

logger = logging.getLogger("nudge_engine.scheduler")


class NotificationPrimitive(Protocol):
    """OS-level one-shot local notification scheduling."""

    def arm_one_shot(self, nudge_type: NudgeType, effective_type: NudgeType, fire_at: datetime) -> str:
        ...

    def cancel(self, handle: str) -> None:
        ...

    def pending(self) -> set[str]:
        ...


@dataclass
class ScheduleOutcome:
    decision: ScheduleDecision
    handle: Optional[str] = None
    error: Optional[NudgeError] = None


class Scheduler:
    """Keeps at most one armed notification per slot.

    Any outstanding instance of the slot (either morning-slot member) is
    cancelled before a new one is armed.
    """

    def __init__(
        self,
        store: LedgerStore,
        notifications: NotificationPrimitive,
        config: EngineConfig = DEFAULT_CONFIG,
    ) -> None:
        self.store = store
        self.notifications = notifications
        self.config = config

    def plan(self, nudge_type: NudgeType, facts: GlobalFacts, now: datetime) -> ScheduleDecision:
        """Derive the decision for the slot of ``nudge_type`` without side effects."""

        slot = slot_of(nudge_type)
        primary = primary_type(slot)
        entries = {member: self.store.get(member) for member in slot_members(slot)}
        armed = [member for member, entry in entries.items() if entry.is_armed()]

        view = entries[armed[0]] if armed else entries[primary]
        if slot == MORNING_SLOT:
            fired = [e.last_fired_date for e in entries.values() if e.last_fired_date is not None]
            view = replace(view, last_fired_date=max(fired) if fired else None)

        result = evaluate(primary, facts, now, view, self.config.default_goal_nudge_time)
        if not result.eligible:
            action = Action.CANCEL if armed else Action.NO_CHANGE
            return ScheduleDecision(primary, action, reason=result.reason)

        effective = result.substitute_type or primary
        current = entries[effective]
        wanted = apply_backoff(
            effective,
            current,
            result.base_target,
            threshold=self.config.backoff_threshold,
            extra_days=self.config.backoff_extra_days,
        )

        same_instance = armed == [effective] and current.detail == result.detail
        if same_instance and current.planned_for == wanted:
            # Limits are checked when a target is first planned.
            fire_at = current.scheduled_for
        else:
            fire_at = apply_delivery_limits(
                effective,
                wanted,
                self.store.sent_count_on,
                self.store.last_sent_at_by_type(),
                daily_cap=self.config.daily_nudge_cap,
                min_spacing=timedelta(hours=self.config.min_spacing_hours),
            )
            if fire_at != wanted:
                logger.debug("Delivery limits moved %s from %s to %s", effective.value, wanted, fire_at)

        unchanged = same_instance and current.scheduled_for == fire_at
        return ScheduleDecision(
            type=primary,
            action=Action.NO_CHANGE if unchanged else Action.SCHEDULE,
            fire_at=fire_at,
            resulting_type=result.substitute_type,
            reason=result.reason,
            detail=result.detail,
            planned_for=wanted,
        )

    def reschedule(self, nudge_type: NudgeType, decision: ScheduleDecision) -> ScheduleOutcome:
        """Apply ``decision``: cancel the slot's outstanding instance, then arm."""

        if decision.action is Action.NO_CHANGE:
            logger.debug("No change for %s (%s)", decision.type.value, decision.reason)
            return ScheduleOutcome(decision)

        for member in slot_members(slot_of(nudge_type)):
            self._cancel_outstanding(member)

        if decision.action is Action.CANCEL:
            logger.info("Cancelled %s (%s)", decision.type.value, decision.reason)
            return ScheduleOutcome(decision)

        effective = decision.effective_type
        try:
            handle = self.notifications.arm_one_shot(decision.type, effective, decision.fire_at)
        except (PermissionDenied, ArmFailed) as exc:
            logger.warning("Failed to arm %s at %s: %s", effective.value, decision.fire_at, exc)
            return ScheduleOutcome(decision, error=exc)

        entry = self.store.get(effective)
        self.store.put(
            effective,
            replace(
                entry,
                currently_scheduled_id=handle,
                scheduled_for=decision.fire_at,
                last_scheduled_date=decision.fire_at.date(),
                detail=decision.detail,
                planned_for=decision.planned_for or decision.fire_at,
            ),
        )
        logger.info("Armed %s at %s (%s)", effective.value, decision.fire_at.isoformat(), handle)
        return ScheduleOutcome(decision, handle=handle)

    def run(self, nudge_type: NudgeType, facts: GlobalFacts, now: datetime) -> ScheduleOutcome:
        return self.reschedule(nudge_type, self.plan(nudge_type, facts, now))

    def _cancel_outstanding(self, nudge_type: NudgeType) -> None:
        entry = self.store.get(nudge_type)
        if not entry.is_armed():
            return
        try:
            self.notifications.cancel(entry.currently_scheduled_id)
        except StaleHandle:
            logger.debug("Handle %s for %s already gone", entry.currently_scheduled_id, nudge_type.value)
        self.store.put(nudge_type, replace(entry, currently_scheduled_id=None, scheduled_for=None, planned_for=None))
