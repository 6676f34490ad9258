"""Amazon Music URLs and downloads through the unified downloader."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from .audio_downloader import UnifiedAudioDownloader
from .tracks import AudioDownloadResult

AMAZON_PRIORITY = 3

_TRACK_RE = re.compile(
    r"music\.amazon\.[a-z.]+/(?:albums/[^/]+/)?([A-Z0-9]+)(?:\?trackAsin=([A-Z0-9]+))?"
)
_ALBUM_RE = re.compile(r"music\.amazon\.[a-z.]+/albums/([A-Z0-9]+)")
_PLAYLIST_RE = re.compile(r"music\.amazon\.[a-z.]+/playlists/([A-Z0-9]+)")
_TRACK_ALT_RE = re.compile(r"amazon\.[a-z.]+/dp/([A-Z0-9]+)")


class AmazonQuality(str, Enum):
    """Amazon Music quality tiers."""

    SD = "SD"
    HD = "HD"
    ULTRA_HD = "ULTRA_HD"


_QUALITY_LABELS = {
    AmazonQuality.SD: "Standard Quality",
    AmazonQuality.HD: "HD (16-bit/44.1kHz FLAC)",
    AmazonQuality.ULTRA_HD: "Ultra HD (24-bit/192kHz FLAC)",
}


@dataclass
class AmazonTrackInfo:
    """Track metadata as seen on Amazon Music."""

    id: str = ""
    asin: str = ""
    title: str = ""
    artist: str = ""
    album: str = ""
    isrc: str = ""
    duration: float = 0.0
    quality: str = ""
    cover_url: str = ""
    track_number: int = 0
    album_id: str = ""
    release_date: str = ""

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {"id": self.id}
        if self.asin:
            data["asin"] = self.asin
        data.update(
            title=self.title,
            artist=self.artist,
            album=self.album,
            isrc=self.isrc,
            duration=self.duration,
            quality=self.quality,
        )
        if self.cover_url:
            data["coverUrl"] = self.cover_url
        if self.track_number:
            data["trackNumber"] = self.track_number
        if self.album_id:
            data["albumId"] = self.album_id
        if self.release_date:
            data["releaseDate"] = self.release_date
        return data


def parse_amazon_url(raw_url: str) -> Tuple[str, str]:
    """Return (id, content type) where the type is track, album or playlist."""
    match = _TRACK_RE.search(raw_url)
    if match and match.group(2):
        return match.group(2), "track"
    match = _ALBUM_RE.search(raw_url)
    if match:
        return match.group(1), "album"
    match = _TRACK_RE.search(raw_url)
    if match:
        return match.group(1), "track"
    match = _TRACK_ALT_RE.search(raw_url)
    if match:
        return match.group(1), "track"
    match = _PLAYLIST_RE.search(raw_url)
    if match:
        return match.group(1), "playlist"
    raise ValueError(f"could not parse Amazon Music URL: {raw_url}")


def is_amazon_music_url(raw_url: str) -> bool:
    return any(
        pattern.search(raw_url)
        for pattern in (_TRACK_RE, _ALBUM_RE, _PLAYLIST_RE, _TRACK_ALT_RE)
    )


def get_amazon_track_info(
    track_url: str, downloader: Optional[UnifiedAudioDownloader] = None
) -> AmazonTrackInfo:
    """Look up an Amazon Music track through the download services."""
    downloader = downloader if downloader is not None else UnifiedAudioDownloader()
    info = downloader.get_track_info(track_url)
    return AmazonTrackInfo(
        id=info.id,
        title=info.title,
        artist=info.artist,
        album=info.album,
        isrc=info.isrc,
        duration=info.duration,
        quality=info.quality,
        cover_url=info.cover_url,
        release_date=info.release_date,
        track_number=info.track_number,
    )


def download_amazon_flac(
    track_url: str,
    output_dir: str,
    downloader: Optional[UnifiedAudioDownloader] = None,
) -> AudioDownloadResult:
    """Download an Amazon Music track as FLAC into output_dir."""
    if not is_amazon_music_url(track_url):
        raise ValueError(f"not a valid Amazon Music URL: {track_url}")
    base = downloader if downloader is not None else UnifiedAudioDownloader()
    config = replace(base.config, output_dir=output_dir, preferred_format="flac")
    return UnifiedAudioDownloader(config, services=base.services).download_from_url(track_url)


def amazon_quality_label(quality: Union[AmazonQuality, str]) -> str:
    """Human-readable label; unknown tiers are returned as given."""
    try:
        return _QUALITY_LABELS[AmazonQuality(quality)]
    except ValueError:
        return str(quality.value if isinstance(quality, AmazonQuality) else quality)