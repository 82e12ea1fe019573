"""Demo script for nudge-engine."""

import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from nudge_engine.adapters.facts_json import StaticFactsProvider
from nudge_engine.adapters.notification_center import InMemoryNotificationCenter
from nudge_engine.config import configure_logging
from nudge_engine.ledger import LedgerStore
from nudge_engine.reconciler import Reconciler
from nudge_engine.scheduler import Scheduler
from nudge_engine.schema import (
    GlobalFacts,
    NotificationOpened,
    NudgeType,
    Settings,
    SettingsChanged,
    ShowUpRecorded,
)


def main() -> None:
    configure_logging("INFO")
    now = datetime(2025, 1, 6, 10, 0)

    facts = GlobalFacts(
        goal_count=0,
        settings=Settings(daily_show_up_enabled=True, goal_nudge_enabled=True),
    )
    provider = StaticFactsProvider(facts)
    center = InMemoryNotificationCenter()
    store = LedgerStore()
    reconciler = Reconciler(
        store,
        Scheduler(store, center),
        provider,
        clock=lambda: now,
        router=lambda route: print("Route:", route),
    )

    reconciler.on_event(SettingsChanged(NudgeType.DAILY_SHOW_UP))
    print("Empty state:", [(n.effective_type.value, n.fire_at.isoformat()) for n in center.scheduled()])

    provider.update(goal_count=1, incomplete_activity_count_by_goal={"goal-1": 2})
    reconciler.on_event(SettingsChanged(NudgeType.DAILY_SHOW_UP))
    reconciler.on_event(SettingsChanged(NudgeType.GOAL_NUDGE))
    print("With a goal:", [(n.effective_type.value, n.fire_at.isoformat()) for n in center.scheduled()])

    reconciler.on_event(ShowUpRecorded(now.date()))
    print("After show-up:", [(n.effective_type.value, n.fire_at.isoformat()) for n in center.scheduled()])

    report = reconciler.on_event(NotificationOpened(NudgeType.DAILY_SHOW_UP, now.date()))
    print("Route after show-up open:", report.route)
    print("Ledger:", {t.value: e.to_dict() for t, e in store.all_entries().items()})


if __name__ == "__main__":
    main()
