"""Track metadata and download results shared by the audio download services."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional


class DownloadError(RuntimeError):
    """A track could not be looked up or downloaded."""


@dataclass
class AudioTrackInfo:
    """Metadata common to every streaming platform."""

    id: str = ""
    title: str = ""
    artist: str = ""
    album: str = ""
    isrc: str = ""
    duration: float = 0.0
    quality: str = ""
    platform: str = ""
    cover_url: str = ""
    release_date: str = ""
    track_number: int = 0
    explicit: bool = False
    album_artist: str = ""

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
        }
        if self.isrc:
            data["isrc"] = self.isrc
        data["duration"] = self.duration
        data["quality"] = self.quality
        data["platform"] = self.platform
        if self.cover_url:
            data["coverUrl"] = self.cover_url
        if self.release_date:
            data["releaseDate"] = self.release_date
        if self.track_number:
            data["trackNumber"] = self.track_number
        if self.explicit:
            data["explicit"] = True
        if self.album_artist:
            data["albumArtist"] = self.album_artist
        return data


@dataclass
class AudioDownloadResult:
    """A downloaded file together with what is known about its track."""

    file_path: str
    track: Optional[AudioTrackInfo] = None
    format: str = ""
    bitrate: int = 0
    size: int = 0

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {
            "filePath": self.file_path,
            "track": self.track.to_dict() if self.track is not None else None,
            "format": self.format,
        }
        if self.bitrate:
            data["bitrate"] = self.bitrate
        data["size"] = self.size
        return data


class AudioDownloadService(ABC):
    """A source that can describe and download tracks from music URLs."""

    name: str = ""

    @abstractmethod
    def get_track_info(self, track_url: str) -> AudioTrackInfo:
        """Metadata for a track, without downloading it."""

    @abstractmethod
    def download(self, track_url: str, output_dir: str, fmt: str) -> AudioDownloadResult:
        """Download a track into output_dir in the requested format."""

    @abstractmethod
    def supports_format(self, fmt: str) -> bool:
        """Whether the service can deliver this format."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the service can be reached right now."""