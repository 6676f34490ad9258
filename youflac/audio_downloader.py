"""Coordinating downloads across the available audio services."""

from __future__ import annotations

import tempfile
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from .lucida import LucidaService
from .tracks import AudioDownloadResult, AudioDownloadService, AudioTrackInfo, DownloadError

DEFAULT_FALLBACK_TIERS = ("highest", "24bit", "16bit")

# More specific keywords come before the shorter ones they contain.
QUALITY_TIERS = (
    ("hi_res", 3),
    ("hires", 3),
    ("24bit", 3),
    ("highest", 3),
    ("lossless", 2),
    ("flac", 2),
    ("16bit", 2),
    ("high", 1),
    ("lossy", 1),
    ("mp3", 1),
)

_SERVICE_ERRORS = (DownloadError, OSError, ValueError)


@dataclass
class DownloadConfig:
    """Download preferences; timeout is in seconds."""

    preferred_format: str = "flac"
    preferred_quality: str = "highest"
    platform_priority: List[str] = field(
        default_factory=lambda: ["tidal", "qobuz", "amazon", "deezer"]
    )
    output_dir: str = field(default_factory=tempfile.gettempdir)
    timeout: float = 300.0


class UnifiedAudioDownloader:
    """Tries each available service in order until one succeeds."""

    def __init__(
        self,
        config: Optional[DownloadConfig] = None,
        services: Optional[Iterable[AudioDownloadService]] = None,
    ) -> None:
        self.config = config if config is not None else DownloadConfig()
        self.services: List[AudioDownloadService] = (
            list(services) if services is not None else [LucidaService()]
        )

    def download_from_url(self, music_url: str) -> AudioDownloadResult:
        """Download from any supported platform URL."""
        last_error: Optional[BaseException] = None
        for service in self.services:
            if not service.is_available():
                continue
            try:
                return service.download(
                    music_url, self.config.output_dir, self.config.preferred_format
                )
            except _SERVICE_ERRORS as exc:
                last_error = exc
        if last_error is not None:
            raise DownloadError(f"all services failed, last error: {last_error}") from last_error
        raise DownloadError("no download services available")

    def get_track_info(self, music_url: str) -> AudioTrackInfo:
        """Metadata from the first available service that knows the track."""
        for service in self.services:
            if not service.is_available():
                continue
            try:
                return service.get_track_info(music_url)
            except _SERVICE_ERRORS:
                continue
        raise DownloadError("no services could fetch track info")


def quality_rank(quality: str) -> int:
    """Rank of a quality description (higher is better), 0 when unknown."""
    text = quality.lower()
    for keyword, rank in QUALITY_TIERS:
        if keyword in text:
            return rank
    return 0


def is_quality_downgrade(requested: str, actual: str) -> bool:
    """Whether actual is a known quality below the known requested one."""
    wanted = quality_rank(requested)
    got = quality_rank(actual)
    return wanted > 0 and got > 0 and got < wanted


def resolve_fallback_order(order: Optional[Sequence[str]], preferred: str) -> List[str]:
    """The given order as a copy, or a default chain starting at preferred."""
    if order:
        return list(order)
    return [preferred, *(tier for tier in DEFAULT_FALLBACK_TIERS if tier != preferred)]