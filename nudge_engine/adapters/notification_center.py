"""In-memory one-shot notification primitive."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from nudge_engine.errors import ArmFailed, PermissionDenied, StaleHandle
from nudge_engine.schema import NudgeType

logger = logging.getLogger("nudge_engine.adapters.notification_center")


@dataclass(frozen=True)
class ArmedNotification:
    handle: str
    nudge_type: NudgeType
    effective_type: NudgeType
    fire_at: datetime


class InMemoryNotificationCenter:
    """Stands in for the OS scheduler in tests, demos and simulations."""

    def __init__(self, permission_granted: bool = True) -> None:
        self.permission_granted = permission_granted
        self.fail_next_arm: Optional[str] = None
        self.arm_calls = 0
        self.cancel_calls = 0
        self._armed: dict[str, ArmedNotification] = {}
        self._ids = itertools.count(1)

    def arm_one_shot(self, nudge_type: NudgeType, effective_type: NudgeType, fire_at: datetime) -> str:
        self.arm_calls += 1
        if not self.permission_granted:
            raise PermissionDenied("notification permission not granted")
        if self.fail_next_arm is not None:
            message, self.fail_next_arm = self.fail_next_arm, None
            raise ArmFailed(message)

        handle = f"notif-{next(self._ids)}"
        self._armed[handle] = ArmedNotification(handle, nudge_type, effective_type, fire_at)
        return handle

    def cancel(self, handle: str) -> None:
        self.cancel_calls += 1
        if self._armed.pop(handle, None) is None:
            raise StaleHandle(handle)

    def pending(self) -> set[str]:
        return set(self._armed)

    def scheduled(self, effective_type: Optional[NudgeType] = None) -> list[ArmedNotification]:
        items = sorted(self._armed.values(), key=lambda item: (item.fire_at, item.handle))
        if effective_type is None:
            return items
        return [item for item in items if item.effective_type is effective_type]

    def deliver_due(self, now: datetime) -> list[ArmedNotification]:
        """Remove and return notifications due at ``now``, oldest first."""

        due = [item for item in self.scheduled() if item.fire_at <= now]
        for item in due:
            del self._armed[item.handle]
            logger.debug("Delivered %s (%s)", item.effective_type.value, item.handle)
        return due
