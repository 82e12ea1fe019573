"""Event-driven reconciliation of scheduled nudges."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Callable, Optional, Protocol

from nudge_engine.backoff import record_open, settle_unopened
from nudge_engine.config import DEFAULT_CONFIG, EngineConfig
from nudge_engine.errors import NudgeError
from nudge_engine.ledger import LedgerStore
from nudge_engine.routing import Route, route_for_open
from nudge_engine.scheduler import ScheduleOutcome, Scheduler
from nudge_engine.schema import (
    MORNING_SLOT,
    SLOTS,
    AppForegrounded,
    FocusSessionCompleted,
    GlobalFacts,
    NotificationFired,
    NotificationOpened,
    NudgeType,
    ScheduleDecision,
    SettingsChanged,
    ShowUpRecorded,
    primary_type,
    slot_members,
    slot_of,
)

logger = logging.getLogger("nudge_engine.reconciler")


class FactsProvider(Protocol):
    def get_global_facts(self, now: datetime) -> GlobalFacts:
        ...


@dataclass
class ReconcileReport:
    """What one event's pass did, per slot."""

    event: object
    outcomes: dict[str, ScheduleOutcome] = field(default_factory=dict)
    errors: dict[str, Exception] = field(default_factory=dict)
    route: Optional[Route] = None
    queued: bool = False
    followups: list["ReconcileReport"] = field(default_factory=list)

    @property
    def decisions(self) -> list[ScheduleDecision]:
        return [outcome.decision for outcome in self.outcomes.values()]


def _latest(*values: Optional[date]) -> Optional[date]:
    present = [value for value in values if value is not None]
    return max(present) if present else None


class Reconciler:
    """Entry point for settings changes, app foreground and notification callbacks.

    Events raised while a pass is running on the same thread (for example a
    callback fired from inside the notification primitive) are queued and
    processed after it. Each slot has its own lock, so different slots may
    reconcile concurrently from different threads.
    """

    def __init__(
        self,
        store: LedgerStore,
        scheduler: Scheduler,
        facts_provider: FactsProvider,
        clock: Callable[[], datetime] = datetime.now,
        router: Optional[Callable[[Route], None]] = None,
        config: EngineConfig = DEFAULT_CONFIG,
    ) -> None:
        self.store = store
        self.scheduler = scheduler
        self.facts_provider = facts_provider
        self.clock = clock
        self.router = router
        self.config = config
        self._locks = {slot: threading.Lock() for slot in SLOTS}
        self._local = threading.local()

    def on_event(self, event) -> ReconcileReport:
        if getattr(self._local, "active", False):
            self._local.queue.append(event)
            return ReconcileReport(event, queued=True)

        self._local.active = True
        self._local.queue = deque()
        try:
            report = self._dispatch(event)
            while self._local.queue:
                report.followups.append(self._dispatch(self._local.queue.popleft()))
        finally:
            self._local.active = False
        return report

    def debug_fire_notification(self, nudge_type: NudgeType) -> ReconcileReport:
        """Run the fire path for ``nudge_type`` without consulting eligibility."""

        logger.info("Debug fire for %s", nudge_type.value)
        return self.on_event(NotificationFired(nudge_type, self.clock().date()))

    def _dispatch(self, event) -> ReconcileReport:
        now = self.clock()
        report = ReconcileReport(event)
        settle = True

        if isinstance(event, SettingsChanged):
            slots = [slot_of(event.type)]
        elif isinstance(event, AppForegrounded):
            self._estimate_fires(now)
            slots = list(SLOTS)
        elif isinstance(event, NotificationFired):
            self._record_fire(event, now)
            slots = [slot_of(event.type)]
            # The fire has only just happened; its outcome is settled on a later pass.
            settle = False
        elif isinstance(event, NotificationOpened):
            self._record_open(event, now)
            slots = [slot_of(event.type)]
        elif isinstance(event, ShowUpRecorded):
            if _latest(event.date, self.store.last_show_up_date) == event.date:
                self.store.set_last_show_up_date(event.date)
            slots = [MORNING_SLOT, NudgeType.GOAL_NUDGE.value]
        elif isinstance(event, FocusSessionCompleted):
            if _latest(event.date, self.store.last_focus_session_date) == event.date:
                self.store.set_last_focus_session_date(event.date)
            slots = [NudgeType.DAILY_FOCUS.value]
        else:
            raise ValueError(f"Unsupported reconciler event {event!r}")

        logger.info("Reconciling %s for %s", type(event).__name__, ", ".join(slots))
        facts = self._facts(now)

        if isinstance(event, NotificationOpened):
            report.route = route_for_open(event.type, facts, now.date())
            if report.route is None:
                logger.info("Skipping navigation for %s, already showed up today", event.type.value)
            elif self.router is not None:
                self.router(report.route)

        for slot in slots:
            self._reconcile_slot(slot, facts, now, report, settle=settle)
        return report

    def _facts(self, now: datetime) -> GlobalFacts:
        facts = self.facts_provider.get_global_facts(now)
        return replace(
            facts,
            last_show_up_date=_latest(facts.last_show_up_date, self.store.last_show_up_date),
            last_focus_session_date=_latest(facts.last_focus_session_date, self.store.last_focus_session_date),
        )

    def _reconcile_slot(
        self,
        slot: str,
        facts: GlobalFacts,
        now: datetime,
        report: ReconcileReport,
        settle: bool = True,
    ) -> None:
        with self._locks[slot]:
            try:
                if settle:
                    self._settle_slot(slot)
                outcome = self.scheduler.run(primary_type(slot), facts, now)
            except (NudgeError, ValueError) as exc:
                logger.warning("Reconciling %s failed: %s", slot, exc)
                report.errors[slot] = exc
                return

        report.outcomes[slot] = outcome
        if outcome.error is not None:
            report.errors[slot] = outcome.error

    def _settle_slot(self, slot: str) -> None:
        for member in slot_members(slot):
            entry = self.store.get(member)
            settled = settle_unopened(entry)
            if settled is entry:
                continue
            self.store.put(member, settled)
            if settled.consecutive_no_open_count > entry.consecutive_no_open_count:
                logger.info(
                    "%s fired on %s without an open (streak %d)",
                    member.value,
                    settled.last_fired_date,
                    settled.consecutive_no_open_count,
                )

    def _record_fire(self, event: NotificationFired, now: datetime) -> None:
        with self._locks[slot_of(event.type)]:
            entry = settle_unopened(self.store.get(event.type))
            if event.handle is not None:
                consumed = event.handle == entry.currently_scheduled_id
            else:
                consumed = entry.is_armed() and entry.scheduled_for is not None and entry.scheduled_for <= now
            if consumed or entry.last_fired_date != event.date:
                sent_at = entry.scheduled_for if consumed and entry.scheduled_for is not None else now
                self.store.record_sent(event.type, sent_at)
            entry = replace(entry, last_fired_date=event.date)
            if consumed:
                entry = replace(entry, currently_scheduled_id=None, scheduled_for=None)
            self.store.put(event.type, entry)

    def _record_open(self, event: NotificationOpened, now: datetime) -> None:
        with self._locks[slot_of(event.type)]:
            entry = self.store.get(event.type)
            if entry.is_armed() and entry.scheduled_for is not None and entry.scheduled_for <= now:
                # Opened before the fire callback arrived.
                self.store.record_sent(event.type, entry.scheduled_for)
                entry = replace(
                    settle_unopened(entry),
                    last_fired_date=entry.scheduled_for.date(),
                    currently_scheduled_id=None,
                    scheduled_for=None,
                )
            self.store.put(event.type, record_open(entry, event.date))

    def _estimate_fires(self, now: datetime) -> None:
        """Treat armed instances the OS no longer holds as fired."""

        pending = self.scheduler.notifications.pending()
        cutoff = now - timedelta(seconds=self.config.fire_detection_grace_seconds)
        for nudge_type in NudgeType:
            with self._locks[slot_of(nudge_type)]:
                entry = self.store.get(nudge_type)
                if not entry.is_armed() or entry.scheduled_for is None:
                    continue
                if entry.scheduled_for > cutoff or entry.currently_scheduled_id in pending:
                    continue
                logger.info("Estimated %s fired at %s", nudge_type.value, entry.scheduled_for.isoformat())
                self.store.record_sent(nudge_type, entry.scheduled_for)
                self.store.put(
                    nudge_type,
                    replace(
                        settle_unopened(entry),
                        last_fired_date=entry.scheduled_for.date(),
                        currently_scheduled_id=None,
                        scheduled_for=None,
                    ),
                )
