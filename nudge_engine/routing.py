"""Where a tapped nudge should land."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from nudge_engine.schema import GlobalFacts, NudgeType

ACTIVITIES_SCREEN = "Activities"


@dataclass(frozen=True)
class Route:
    screen: str
    highlight_suggested: bool = False


def route_for_open(nudge_type: NudgeType, facts: GlobalFacts, today: date) -> Optional[Route]:
    """Every nudge opens Activities; the Suggested card is highlighted when
    nothing is scheduled for today.

    A show-up nudge opened after the user already showed up today does not
    navigate and yields ``None``.
    """

    if not isinstance(nudge_type, NudgeType):
        raise ValueError(f"Unknown nudge type {nudge_type!r}")
    if nudge_type is NudgeType.DAILY_SHOW_UP and facts.last_show_up_date == today:
        return None
    return Route(ACTIVITIES_SCREEN, highlight_suggested=not facts.any_activity_scheduled_today)
