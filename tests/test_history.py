import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from youflac.config import set_data_dir
from youflac.history import History, HistoryEntry


@pytest.fixture
def data_dir(tmp_path):
    set_data_dir(tmp_path)
    yield tmp_path
    set_data_dir("")


@pytest.fixture
def history(tmp_path):
    return History(tmp_path / "history.json")


def _at(day, hour=12):
    return datetime(2024, 1, day, hour, 0, 0, tzinfo=timezone.utc)


def test_add_from_queue_item_carries_explicit(data_dir):
    h = History()
    item = SimpleNamespace(id="test-1", title="Song [Explicit]", artist="Artist", explicit=True)
    h.add_from_queue_item(item, "complete", "")
    entries = h.entries()
    assert len(entries) == 1
    assert entries[0].explicit is True
    assert entries[0].status == "complete"
    assert (data_dir / "history.json").exists()


def test_add_fills_id_and_time_and_prepends(history):
    first = history.add(HistoryEntry(title="One"))
    second = history.add(HistoryEntry(title="Two"))
    assert first.id and second.id and first.id != second.id
    assert first.completed_at is not None
    assert [e.title for e in history.entries()] == ["Two", "One"]


def test_persists_across_instances(tmp_path, history):
    history.add(HistoryEntry(id="x1", title="Song", completed_at=_at(2), file_size=10))
    reloaded = History(tmp_path / "history.json")
    entry = reloaded.get("x1")
    assert entry.title == "Song"
    assert entry.completed_at == _at(2)
    assert entry.file_size == 10


def test_corrupt_file_yields_empty_history(tmp_path):
    path = tmp_path / "history.json"
    path.write_text("{not json", encoding="utf-8")
    assert History(path).entries() == []


def test_search_is_case_insensitive(history):
    history.add(HistoryEntry(title="Thunderstruck", artist="AC/DC"))
    history.add(HistoryEntry(title="Other", artist="Someone"))
    assert [e.title for e in history.search("THUNDER")] == ["Thunderstruck"]
    assert [e.title for e in history.search("ac/dc")] == ["Thunderstruck"]
    assert history.search("missing") == []


def test_filters(history):
    history.add(HistoryEntry(title="A", audio_source="tidal", status="complete"))
    history.add(HistoryEntry(title="B", audio_source="qobuz", status="error"))
    assert [e.title for e in history.filter_by_source("tidal")] == ["A"]
    assert [e.title for e in history.filter_by_status("error")] == ["B"]


def test_get_returns_copy(history):
    history.add(HistoryEntry(id="e1", title="Orig"))
    copy = history.get("e1")
    copy.title = "Changed"
    assert history.get("e1").title == "Orig"
    assert history.get("missing") is None


def test_delete_and_clear(tmp_path, history):
    history.add(HistoryEntry(id="a"))
    history.add(HistoryEntry(id="b"))
    assert history.delete("a") is True
    assert history.delete("a") is False
    assert [e.id for e in History(tmp_path / "history.json").entries()] == ["b"]
    history.clear()
    assert history.entries() == []
    assert json.loads((tmp_path / "history.json").read_text()) == []


def test_stats(history):
    history.add(HistoryEntry(status="complete", file_size=100, audio_source="tidal"))
    history.add(HistoryEntry(status="complete", file_size=50, audio_source="tidal"))
    history.add(HistoryEntry(status="error", audio_source=""))
    stats = history.stats()
    assert stats.total == 3
    assert stats.completed == 2
    assert stats.failed == 1
    assert stats.total_size == 150
    assert stats.source_counts == {"tidal": 2}


def test_grouped_by_date(history):
    history.add(HistoryEntry(title="a", completed_at=_at(1)))
    history.add(HistoryEntry(title="b", completed_at=_at(1, 18)))
    history.add(HistoryEntry(title="c", completed_at=_at(2)))
    grouped = history.grouped_by_date()
    assert sorted(grouped) == ["2024-01-01", "2024-01-02"]
    assert {e.title for e in grouped["2024-01-01"]} == {"a", "b"}


def test_recent(history):
    for name in ("a", "b", "c"):
        history.add(HistoryEntry(title=name))
    assert [e.title for e in history.recent(2)] == ["c", "b"]
    assert len(history.recent(10)) == 3
    with pytest.raises(ValueError):
        history.recent(-1)


def test_sorted_by_date(history):
    history.add(HistoryEntry(title="mid", completed_at=_at(2)))
    history.add(HistoryEntry(title="old", completed_at=_at(1)))
    history.add(HistoryEntry(title="new", completed_at=_at(3)))
    assert [e.title for e in history.sorted_by_date()] == ["new", "mid", "old"]
    assert [e.title for e in history.sorted_by_date(ascending=True)] == ["old", "mid", "new"]


def test_entry_round_trip():
    entry = HistoryEntry(
        id="id1", video_url="https://example.com/v", title="T", artist="A",
        audio_source="tidal", quality="FLAC", output_path="/tmp/x.mkv",
        thumbnail="t.jpg", duration=3.5, file_size=9, explicit=True,
        completed_at=datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone(timedelta(hours=2))),
        status="error", error="boom",
    )
    assert HistoryEntry.from_dict(entry.to_dict()) == entry


def test_entry_omits_empty_optional_fields():
    data = HistoryEntry(id="i", completed_at=_at(1)).to_dict()
    assert "thumbnail" not in data
    assert "explicit" not in data
    assert "error" not in data
    assert data["completedAt"] == "2024-01-01T12:00:00Z"


def test_entry_parses_nanosecond_timestamp():
    entry = HistoryEntry.from_dict({"id": "n", "completedAt": "2024-01-02T03:04:05.123456789Z"})
    assert entry.completed_at.year == 2024
    assert entry.completed_at.microsecond == 123456
    assert entry.completed_at.utcoffset() == timedelta(0)