"""Deterministic simulation of a user responding to nudges."""

from __future__ import annotations

from collections import Counter
from datetime import datetime, time, timedelta
from typing import Optional

import numpy as np

from nudge_engine.adapters.facts_json import StaticFactsProvider
from nudge_engine.adapters.notification_center import InMemoryNotificationCenter
from nudge_engine.config import DEFAULT_CONFIG, EngineConfig
from nudge_engine.ledger import LedgerStore
from nudge_engine.reconciler import ReconcileReport, Reconciler
from nudge_engine.scheduler import Scheduler
from nudge_engine.schema import (
    AppForegrounded,
    FocusSessionCompleted,
    GlobalFacts,
    NotificationFired,
    NotificationOpened,
    ShowUpRecorded,
    slot_of,
)

FOREGROUND_TIME = time(12, 0)
OPEN_DELAY = timedelta(minutes=5)
END_OF_DAY = time(23, 59)


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _outstanding_by_slot(center: InMemoryNotificationCenter) -> dict[str, int]:
    return dict(Counter(slot_of(item.effective_type) for item in center.scheduled()))


def simulate(
    days: int,
    facts: GlobalFacts,
    open_probability: float = 0.5,
    foreground_probability: float = 0.6,
    show_up_probability: float = 0.3,
    focus_probability: float = 0.2,
    seed: int = 42,
    start: Optional[datetime] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> list[dict]:
    """Run the engine over ``days`` simulated days and return an event log.

    Each day notifications fire at their armed time and are opened with
    ``open_probability``; around noon the app may be foregrounded, and a
    foregrounded user may show up or complete a focus session.
    """

    if days < 0:
        raise ValueError("days must be >= 0")
    for name, value in (
        ("open_probability", open_probability),
        ("foreground_probability", foreground_probability),
        ("show_up_probability", show_up_probability),
        ("focus_probability", focus_probability),
    ):
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"{name} must be within [0, 1]")

    rng = np.random.default_rng(seed)
    start = start or datetime(2025, 1, 1, 7, 0)
    clock = _Clock(start)
    center = InMemoryNotificationCenter()
    store = LedgerStore.at_path(config.ledger_path) if config.ledger_path else LedgerStore()
    reconciler = Reconciler(
        store,
        Scheduler(store, center, config),
        StaticFactsProvider(facts),
        clock=clock,
        config=config,
    )

    log: list[dict] = []

    def record(kind: str, report: Optional[ReconcileReport] = None, nudge_type=None) -> None:
        log.append(
            {
                "at": clock.now,
                "kind": kind,
                "type": nudge_type.value if nudge_type is not None else None,
                "outstanding": _outstanding_by_slot(center),
            }
        )
        if report is None:
            return
        for item in [report, *report.followups]:
            for outcome in item.outcomes.values():
                if outcome.handle is not None:
                    log.append(
                        {
                            "at": clock.now,
                            "kind": "armed",
                            "type": outcome.decision.effective_type.value,
                            "fire_at": outcome.decision.fire_at,
                            "outstanding": _outstanding_by_slot(center),
                        }
                    )

    def deliver(until: datetime) -> None:
        while True:
            due = center.deliver_due(until)
            if not due:
                return
            for item in due:
                clock.now = max(clock.now, item.fire_at)
                report = reconciler.on_event(
                    NotificationFired(item.effective_type, item.fire_at.date(), item.handle)
                )
                record("fired", report, item.effective_type)
                if rng.random() < open_probability:
                    clock.now = clock.now + OPEN_DELAY
                    report = reconciler.on_event(NotificationOpened(item.effective_type, clock.now.date()))
                    record("opened", report, item.effective_type)

    record("install", reconciler.on_event(AppForegrounded()))

    for offset in range(days):
        day = start.date() + timedelta(days=offset)
        noon = datetime.combine(day, FOREGROUND_TIME)
        deliver(noon)

        if rng.random() < foreground_probability:
            clock.now = max(clock.now, noon)
            record("foreground", reconciler.on_event(AppForegrounded()))
            if rng.random() < show_up_probability:
                record("show_up", reconciler.on_event(ShowUpRecorded(day)))
            if rng.random() < focus_probability:
                record("focus", reconciler.on_event(FocusSessionCompleted(day)))

        deliver(datetime.combine(day, END_OF_DAY))

    return log
