import json
from datetime import date, datetime

from nudge_engine.ledger import JsonFileBackend, LedgerStore, entry_key
from nudge_engine.schema import LedgerEntry, NudgeType


def test_entries_are_created_lazily():
    store = LedgerStore()
    assert store.get(NudgeType.GOAL_NUDGE) == LedgerEntry()
    assert store.backend.snapshot() == {}


def test_json_ledger_persists_entries_and_globals(tmp_path):
    path = tmp_path / "ledger.json"
    store = LedgerStore.at_path(str(path))
    entry = LedgerEntry(
        last_scheduled_date=date(2025, 1, 7),
        last_fired_date=date(2025, 1, 6),
        consecutive_no_open_count=2,
        currently_scheduled_id="notif-3",
        scheduled_for=datetime(2025, 1, 7, 16, 0),
        detail="g1",
    )
    store.put(NudgeType.GOAL_NUDGE, entry)
    store.set_last_show_up_date(date(2025, 1, 6))

    reloaded = LedgerStore(JsonFileBackend(str(path)))
    assert reloaded.get(NudgeType.GOAL_NUDGE) == entry
    assert reloaded.last_show_up_date == date(2025, 1, 6)
    assert reloaded.last_focus_session_date is None

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload[entry_key(NudgeType.GOAL_NUDGE)]["consecutiveNoOpenCount"] == 2


def test_corrupt_ledger_file_starts_fresh(tmp_path):
    path = tmp_path / "ledger.json"
    path.write_text("{not json", encoding="utf-8")
    store = LedgerStore.at_path(str(path))
    assert store.get(NudgeType.DAILY_FOCUS) == LedgerEntry()


def test_corrupt_entry_resets_to_default(tmp_path):
    path = tmp_path / "ledger.json"
    path.write_text(
        json.dumps({entry_key(NudgeType.DAILY_FOCUS): {"lastFiredDate": "yesterday"}, "nudges.lastShowUpDate": "bad"}),
        encoding="utf-8",
    )
    store = LedgerStore.at_path(str(path))
    assert store.get(NudgeType.DAILY_FOCUS) == LedgerEntry()
    assert store.last_show_up_date is None


def test_sent_history_persists_and_prunes(tmp_path):
    path = str(tmp_path / "ledger.json")
    store = LedgerStore.at_path(path)
    store.record_sent(NudgeType.DAILY_FOCUS, datetime(2025, 1, 1, 14, 0))
    store.record_sent(NudgeType.DAILY_FOCUS, datetime(2025, 1, 20, 14, 0))
    store.record_sent(NudgeType.GOAL_NUDGE, datetime(2025, 1, 20, 16, 0))
    store.record_sent(NudgeType.GOAL_NUDGE, datetime(2025, 1, 19, 16, 0))

    reloaded = LedgerStore.at_path(path)
    assert reloaded.sent_count_on(date(2025, 1, 20)) == 2
    assert reloaded.sent_count_on(date(2025, 1, 1)) == 0
    assert reloaded.last_sent_at_by_type() == {
        NudgeType.DAILY_FOCUS: datetime(2025, 1, 20, 14, 0),
        NudgeType.GOAL_NUDGE: datetime(2025, 1, 20, 16, 0),
    }
