"""Persistent record of finished and failed downloads, newest first."""

from __future__ import annotations

import json
import os
import re
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .config import get_data_dir

_ZERO_TIME = "0001-01-01T00:00:00Z"
_FRACTION_RE = re.compile(r"\.(\d+)")


def _format_time(value: Optional[datetime]) -> str:
    if value is None:
        return _ZERO_TIME
    if value.tzinfo is None:
        value = value.astimezone()
    text = value.isoformat()
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def _parse_time(text: Any) -> Optional[datetime]:
    if not isinstance(text, str) or not text or text == _ZERO_TIME:
        return None
    s = text
    if s[-1] in "Zz":
        s = s[:-1] + "+00:00"
    s = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), s, count=1)
    try:
        parsed = datetime.fromisoformat(s)
    except ValueError as exc:
        raise ValueError(f"invalid timestamp {text!r}") from exc
    return None if parsed.year == 1 else parsed


@dataclass
class HistoryEntry:
    """One completed or failed download."""

    id: str = ""
    video_url: str = ""
    title: str = ""
    artist: str = ""
    audio_source: str = ""
    quality: str = ""
    output_path: str = ""
    thumbnail: str = ""
    duration: float = 0.0
    file_size: int = 0
    explicit: bool = False
    completed_at: Optional[datetime] = None
    status: str = ""
    error: str = ""

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {
            "id": self.id,
            "videoUrl": self.video_url,
            "title": self.title,
            "artist": self.artist,
            "audioSource": self.audio_source,
            "quality": self.quality,
            "outputPath": self.output_path,
        }
        if self.thumbnail:
            data["thumbnail"] = self.thumbnail
        if self.duration:
            data["duration"] = self.duration
        data["fileSize"] = self.file_size
        if self.explicit:
            data["explicit"] = True
        data["completedAt"] = _format_time(self.completed_at)
        data["status"] = self.status
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HistoryEntry":
        if not isinstance(data, Mapping):
            raise ValueError("history entry must be a JSON object")
        return cls(
            id=str(data.get("id") or ""),
            video_url=str(data.get("videoUrl") or ""),
            title=str(data.get("title") or ""),
            artist=str(data.get("artist") or ""),
            audio_source=str(data.get("audioSource") or ""),
            quality=str(data.get("quality") or ""),
            output_path=str(data.get("outputPath") or ""),
            thumbnail=str(data.get("thumbnail") or ""),
            duration=float(data.get("duration") or 0.0),
            file_size=int(data.get("fileSize") or 0),
            explicit=bool(data.get("explicit") or False),
            completed_at=_parse_time(data.get("completedAt")),
            status=str(data.get("status") or ""),
            error=str(data.get("error") or ""),
        )


@dataclass
class HistoryStats:
    """Aggregate counts over the history."""

    total: int = 0
    completed: int = 0
    failed: int = 0
    total_size: int = 0
    source_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "totalSize": self.total_size,
            "sourceCounts": dict(self.source_counts),
        }


class History:
    """Download history stored as JSON, by default in the data directory."""

    def __init__(self, path: "str | os.PathLike[str] | None" = None) -> None:
        self.path = Path(path) if path is not None else Path(get_data_dir()) / "history.json"
        self._lock = threading.RLock()
        self._entries: List[HistoryEntry] = self._load()

    def _load(self) -> List[HistoryEntry]:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return []
        if not isinstance(raw, list):
            return []
        try:
            return [HistoryEntry.from_dict(item) for item in raw]
        except (ValueError, TypeError):
            return []

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps([e.to_dict() for e in self._entries], indent=2, ensure_ascii=False)
        self.path.write_text(text, encoding="utf-8")

    def add(self, entry: HistoryEntry) -> HistoryEntry:
        """Store an entry first in the list, filling in a missing id and time."""
        with self._lock:
            stored = replace(entry)
            if not stored.id:
                stored.id = str(uuid.uuid4())
            if stored.completed_at is None:
                stored.completed_at = datetime.now().astimezone()
            self._entries.insert(0, stored)
            self._save()
            return replace(stored)

    def add_from_queue_item(self, item: Any, status: str, error_message: str = "") -> HistoryEntry:
        """Record a finished queue item."""
        entry = HistoryEntry(
            id=str(uuid.uuid4()),
            video_url=getattr(item, "video_url", ""),
            title=getattr(item, "title", ""),
            artist=getattr(item, "artist", ""),
            audio_source=getattr(item, "audio_source", ""),
            quality=getattr(item, "quality", ""),
            output_path=getattr(item, "output_path", ""),
            thumbnail=getattr(item, "thumbnail", ""),
            duration=getattr(item, "duration", 0.0),
            file_size=getattr(item, "file_size", 0),
            explicit=getattr(item, "explicit", False),
            completed_at=datetime.now().astimezone(),
            status=status,
            error=error_message,
        )
        return self.add(entry)

    def entries(self) -> List[HistoryEntry]:
        with self._lock:
            return [replace(e) for e in self._entries]

    def search(self, query: str) -> List[HistoryEntry]:
        """Entries whose title or artist contains query, ignoring case."""
        needle = query.lower()
        with self._lock:
            return [
                replace(e)
                for e in self._entries
                if needle in e.title.lower() or needle in e.artist.lower()
            ]

    def filter_by_source(self, source: str) -> List[HistoryEntry]:
        with self._lock:
            return [replace(e) for e in self._entries if e.audio_source == source]

    def filter_by_status(self, status: str) -> List[HistoryEntry]:
        with self._lock:
            return [replace(e) for e in self._entries if e.status == status]

    def get(self, entry_id: str) -> Optional[HistoryEntry]:
        with self._lock:
            for entry in self._entries:
                if entry.id == entry_id:
                    return replace(entry)
        return None

    def delete(self, entry_id: str) -> bool:
        """Remove an entry; False when no entry has that id."""
        with self._lock:
            for index, entry in enumerate(self._entries):
                if entry.id == entry_id:
                    del self._entries[index]
                    self._save()
                    return True
        return False

    def clear(self) -> None:
        with self._lock:
            self._entries = []
            self._save()

    def stats(self) -> HistoryStats:
        result = HistoryStats()
        with self._lock:
            for entry in self._entries:
                result.total += 1
                if entry.status == "complete":
                    result.completed += 1
                elif entry.status == "error":
                    result.failed += 1
                result.total_size += entry.file_size
                if entry.audio_source:
                    result.source_counts[entry.audio_source] = (
                        result.source_counts.get(entry.audio_source, 0) + 1
                    )
        return result

    def grouped_by_date(self) -> Dict[str, List[HistoryEntry]]:
        """Entries keyed by completion date, YYYY-MM-DD."""
        grouped: Dict[str, List[HistoryEntry]] = {}
        with self._lock:
            for entry in self._entries:
                key = entry.completed_at.strftime("%Y-%m-%d") if entry.completed_at else "0001-01-01"
                grouped.setdefault(key, []).append(replace(entry))
        return grouped

    def recent(self, limit: int) -> List[HistoryEntry]:
        if limit < 0:
            raise ValueError("limit must not be negative")
        with self._lock:
            return [replace(e) for e in self._entries[:limit]]

    def sorted_by_date(self, ascending: bool = False) -> List[HistoryEntry]:
        def key(entry: HistoryEntry) -> float:
            return entry.completed_at.timestamp() if entry.completed_at else float("-inf")

        with self._lock:
            return sorted((replace(e) for e in self._entries), key=key, reverse=not ascending)