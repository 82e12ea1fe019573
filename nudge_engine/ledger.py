"""Persistent per-type behavioral ledger."""

from __future__ import annotations

import json
import logging
import threading
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional

from nudge_engine.schema import LedgerEntry, NudgeType

logger = logging.getLogger("nudge_engine.ledger")

KEY_LAST_SHOW_UP = "nudges.lastShowUpDate"
KEY_LAST_FOCUS_SESSION = "nudges.lastFocusSessionDate"
KEY_SENT_COUNT_BY_DATE = "nudges.sentCountByDate"
KEY_LAST_SENT_AT = "nudges.lastSentAtByType"

SENT_HISTORY_DAYS = 14


def entry_key(nudge_type: NudgeType) -> str:
    return f"nudges.{nudge_type.value}.v1"


class MemoryBackend:
    """Key/value backend kept in process memory."""

    def __init__(self, initial: Optional[dict] = None) -> None:
        self._data: dict = dict(initial or {})

    def get(self, key: str):
        return self._data.get(key)

    def set(self, key: str, value) -> None:
        self._data[key] = value

    def snapshot(self) -> dict:
        return dict(self._data)


class JsonFileBackend:
    """Key/value backend stored as a single JSON object on disk."""

    def __init__(self, path: str) -> None:
        self.path = Path(path)
        self._data = self._load()

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ledger file %s unreadable, starting fresh: %s", self.path, exc)
            return {}
        if not isinstance(payload, dict):
            logger.warning("Ledger file %s is not an object, starting fresh", self.path)
            return {}
        return payload

    def get(self, key: str):
        return self._data.get(key)

    def set(self, key: str, value) -> None:
        self._data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._data, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self.path)

    def snapshot(self) -> dict:
        return dict(self._data)


class LedgerStore:
    """Ledger entries keyed by nudge type plus global behavior facts.

    Entries are created lazily on first read and never deleted.
    """

    def __init__(self, backend=None) -> None:
        self.backend = backend if backend is not None else MemoryBackend()
        self._sent_lock = threading.Lock()

    @classmethod
    def at_path(cls, path: Optional[str]) -> "LedgerStore":
        if path is None:
            return cls()
        return cls(JsonFileBackend(path))

    def get(self, nudge_type: NudgeType) -> LedgerEntry:
        raw = self.backend.get(entry_key(nudge_type))
        if raw is None:
            return LedgerEntry()
        try:
            return LedgerEntry.from_dict(raw)
        except (TypeError, ValueError) as exc:
            logger.warning("Corrupt ledger entry for %s, resetting: %s", nudge_type.value, exc)
            return LedgerEntry()

    def put(self, nudge_type: NudgeType, entry: LedgerEntry) -> None:
        self.backend.set(entry_key(nudge_type), entry.to_dict())

    def all_entries(self) -> dict[NudgeType, LedgerEntry]:
        return {nudge_type: self.get(nudge_type) for nudge_type in NudgeType}

    @property
    def last_show_up_date(self) -> Optional[date]:
        return self._get_date(KEY_LAST_SHOW_UP)

    def set_last_show_up_date(self, value: date) -> None:
        self.backend.set(KEY_LAST_SHOW_UP, value.isoformat())

    @property
    def last_focus_session_date(self) -> Optional[date]:
        return self._get_date(KEY_LAST_FOCUS_SESSION)

    def set_last_focus_session_date(self, value: date) -> None:
        self.backend.set(KEY_LAST_FOCUS_SESSION, value.isoformat())

    def sent_count_on(self, day: date) -> int:
        raw = self._get_mapping(KEY_SENT_COUNT_BY_DATE).get(day.isoformat(), 0)
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning("Corrupt sent count for %s: %r", day, raw)
            return 0

    def last_sent_at_by_type(self) -> dict[NudgeType, datetime]:
        sent = {}
        for key, raw in self._get_mapping(KEY_LAST_SENT_AT).items():
            try:
                sent[NudgeType.parse(key)] = datetime.fromisoformat(raw)
            except (TypeError, ValueError):
                logger.warning("Corrupt last sent time for %s: %r", key, raw)
        return sent

    def record_sent(self, nudge_type: NudgeType, sent_at: datetime) -> None:
        """Count a delivered nudge towards the per-day cap and spacing history."""

        with self._sent_lock:
            counts = self._get_mapping(KEY_SENT_COUNT_BY_DATE)
            day_key = sent_at.date().isoformat()
            counts[day_key] = self.sent_count_on(sent_at.date()) + 1
            cutoff = (sent_at.date() - timedelta(days=SENT_HISTORY_DAYS)).isoformat()
            self.backend.set(KEY_SENT_COUNT_BY_DATE, {k: v for k, v in counts.items() if k >= cutoff})

            last_sent = self._get_mapping(KEY_LAST_SENT_AT)
            previous = self.last_sent_at_by_type().get(nudge_type)
            if previous is None or sent_at > previous:
                last_sent[nudge_type.value] = sent_at.isoformat()
                self.backend.set(KEY_LAST_SENT_AT, last_sent)

    def _get_mapping(self, key: str) -> dict:
        raw = self.backend.get(key)
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            logger.warning("Corrupt ledger value for %s: %r", key, raw)
            return {}
        return dict(raw)

    def _get_date(self, key: str) -> Optional[date]:
        raw = self.backend.get(key)
        if not raw:
            return None
        try:
            return date.fromisoformat(raw)
        except (TypeError, ValueError):
            logger.warning("Corrupt ledger value for %s: %r", key, raw)
            return None
