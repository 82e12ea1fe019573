"""Delivery outcome metrics."""

from __future__ import annotations

from collections import defaultdict

import numpy as np


def compute_delivery_metrics(log: list[dict]) -> dict:
    """Compute fire, open and spacing metrics per nudge type from a simulation log."""

    if not log:
        return {"by_type": {}, "max_outstanding_by_slot": {}, "total_events": 0}

    fired_days = defaultdict(list)
    opened = defaultdict(int)
    armed = defaultdict(int)
    max_outstanding: dict[str, int] = defaultdict(int)

    for item in log:
        for slot, count in item.get("outstanding", {}).items():
            max_outstanding[slot] = max(max_outstanding[slot], count)

        nudge_type = item.get("type")
        if nudge_type is None:
            continue
        if item["kind"] == "fired":
            fired_days[nudge_type].append(item["at"].date().toordinal())
        elif item["kind"] == "opened":
            opened[nudge_type] += 1
        elif item["kind"] == "armed":
            armed[nudge_type] += 1

    by_type = {}
    for nudge_type in sorted(set(fired_days) | set(opened) | set(armed)):
        days = np.asarray(fired_days[nudge_type], dtype=float)
        gaps = np.diff(days)
        fired = int(days.size)
        by_type[nudge_type] = {
            "armed": armed[nudge_type],
            "fired": fired,
            "opened": opened[nudge_type],
            "open_rate": opened[nudge_type] / fired if fired else 0.0,
            "mean_days_between_fires": float(np.mean(gaps)) if gaps.size else 0.0,
            "max_days_between_fires": int(np.max(gaps)) if gaps.size else 0,
        }

    return {
        "by_type": by_type,
        "max_outstanding_by_slot": dict(max_outstanding),
        "total_events": len(log),
    }
