"""Tidal FLAC downloads through a public hifi API proxy."""

from __future__ import annotations

import base64
import binascii
import contextlib
import json
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

import requests

from .httpclient import HTTPClient, new_http_client
from .lucida import _safe_file_name
from .tracks import AudioDownloadResult, AudioDownloadService, AudioTrackInfo, DownloadError

TIDAL_HIFI_API_BASE = "https://vogel.qqdl.site"

_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
_HEADERS = {"User-Agent": _USER_AGENT}
_COVER_URL = "https://resources.tidal.com/images/{}/640x640.jpg"

_ID_PATTERNS = (
    re.compile(r"tidal\.com/browse/track/(\d+)"),
    re.compile(r"listen\.tidal\.com/track/(\d+)"),
    re.compile(r"tidal:track:(\d+)"),
    re.compile(r"/track/(\d+)"),
)


class TidalQuality(str, Enum):
    """Stream qualities the API can be asked for."""

    LOSSLESS = "LOSSLESS"
    HI_RES = "HI_RES_LOSSLESS"


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _int(value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return 0


def _name(value: Any) -> str:
    return _text(value.get("name")) if isinstance(value, Mapping) else ""


@dataclass
class TidalTrack:
    """A track as described by the API."""

    id: int = 0
    title: str = ""
    duration: int = 0
    track_number: int = 0
    isrc: str = ""
    explicit: bool = False
    artist: str = ""
    artists: List[str] = field(default_factory=list)
    album_title: str = ""
    album_cover: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TidalTrack":
        if not isinstance(data, Mapping):
            raise ValueError("track must be a JSON object")
        album = data.get("album")
        album = album if isinstance(album, Mapping) else {}
        artists = data.get("artists")
        return cls(
            id=_int(data.get("id")),
            title=_text(data.get("title")),
            duration=_int(data.get("duration")),
            track_number=_int(data.get("trackNumber")),
            isrc=_text(data.get("isrc")),
            explicit=data.get("explicit") is True,
            artist=_name(data.get("artist")),
            artists=[_name(a) for a in artists] if isinstance(artists, list) else [],
            album_title=_text(album.get("title")),
            album_cover=_text(album.get("cover")),
        )

    def artist_name(self) -> str:
        """The main artist, or the first listed artist when that is empty."""
        if not self.artist and self.artists:
            return self.artists[0]
        return self.artist

    @property
    def cover_url(self) -> str:
        return _COVER_URL.format(self.album_cover.replace("-", "/"))


@dataclass
class TidalManifest:
    """The decoded stream manifest."""

    mime_type: str = ""
    codecs: str = ""
    encryption_type: str = ""
    urls: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TidalManifest":
        if not isinstance(data, Mapping):
            raise ValueError("manifest must be a JSON object")
        urls = data.get("urls")
        return cls(
            mime_type=_text(data.get("mimeType")),
            codecs=_text(data.get("codecs")),
            encryption_type=_text(data.get("encryptionType")),
            urls=[u for u in urls if isinstance(u, str)] if isinstance(urls, list) else [],
        )


def extract_tidal_id(url: str) -> int:
    """Track id from a Tidal URL or URI."""
    for pattern in _ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return int(match.group(1))
    raise ValueError(f"could not extract Tidal track ID from URL: {url}")


class TidalHifiService(AudioDownloadService):
    """Looks tracks up and streams FLAC without credentials."""

    name = "tidal-hifi"

    def __init__(
        self,
        client: Optional[HTTPClient] = None,
        quality: str = "",
        base_url: str = TIDAL_HIFI_API_BASE,
    ) -> None:
        self.client = client if client is not None else new_http_client(0, "")
        self.quality = quality
        self.base_url = base_url

    def is_available(self) -> bool:
        try:
            resp = self.client.request("HEAD", self.base_url)
        except requests.RequestException:
            return False
        with resp:
            return resp.status_code < 500

    def supports_format(self, fmt: str) -> bool:
        return fmt.lower() == "flac"

    def _get_json(self, path: str, params: Dict[str, Any], what: str) -> Dict[str, Any]:
        try:
            resp = self.client.request(
                "GET", self.base_url + path, params=params, headers=_HEADERS
            )
        except requests.RequestException as exc:
            raise DownloadError(f"{what} request failed: {exc}") from exc
        with resp:
            try:
                body = resp.content
            except requests.RequestException as exc:
                raise DownloadError(f"failed to read {what} response: {exc}") from exc
            status = resp.status_code
        if status != 200:
            preview = body.decode("utf-8", errors="replace")[:200]
            raise DownloadError(f"unexpected HTTP status {status}: {preview}")
        try:
            data = json.loads(body)
        except ValueError as exc:
            raise DownloadError(f"failed to parse {what} response: {exc}") from exc
        if not isinstance(data, dict):
            raise DownloadError(f"failed to parse {what} response: not an object")
        return data

    def search_track(self, query: str) -> TidalTrack:
        """The first track matching the query."""
        data = self._get_json("/search/", {"s": query}, "search")
        items: List[Any] = []
        for key in ("data", "tracks"):
            section = data.get(key)
            found = section.get("items") if isinstance(section, Mapping) else None
            if isinstance(found, list) and found:
                items = found
                break
        if not items:
            raise DownloadError(f"no tracks found for query: {query}")
        try:
            return TidalTrack.from_dict(items[0])
        except ValueError as exc:
            raise DownloadError(f"failed to parse search response: {exc}") from exc

    def get_track_by_id(self, track_id: int) -> TidalTrack:
        data = self._get_json("/info/", {"id": track_id}, "info")
        wrapped = data.get("data")
        if isinstance(wrapped, Mapping) and _int(wrapped.get("id")) > 0:
            return TidalTrack.from_dict(wrapped)
        return TidalTrack.from_dict(data)

    def get_stream_url(self, track_id: int) -> str:
        """The first FLAC stream URL in the track's manifest."""
        quality = TidalQuality.LOSSLESS
        if self.quality in ("highest", "24bit"):
            quality = TidalQuality.HI_RES
        data = self._get_json("/track/", {"id": track_id, "quality": quality.value}, "stream")

        wrapped = data.get("data")
        manifest_b64 = _text(wrapped.get("manifest")) if isinstance(wrapped, Mapping) else ""
        if not manifest_b64:
            manifest_b64 = _text(data.get("manifest"))
        if not manifest_b64:
            raise DownloadError("no manifest in stream response")

        try:
            raw = base64.b64decode(manifest_b64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DownloadError(f"failed to decode manifest: {exc}") from exc
        try:
            manifest = TidalManifest.from_dict(json.loads(raw))
        except ValueError as exc:
            raise DownloadError(f"failed to parse manifest: {exc}") from exc
        if not manifest.urls:
            raise DownloadError("no download URLs in manifest")
        return manifest.urls[0]

    def get_track_info(self, track_url: str) -> AudioTrackInfo:
        track = self.get_track_by_id(extract_tidal_id(track_url))
        return AudioTrackInfo(
            id=str(track.id),
            title=track.title,
            artist=track.artist_name(),
            album=track.album_title,
            isrc=track.isrc,
            duration=float(track.duration),
            quality="FLAC 16-bit/44.1kHz",
            platform="tidal",
            cover_url=track.cover_url,
            explicit=track.explicit,
        )

    def download(self, track_url: str, output_dir: str, fmt: str = "flac") -> AudioDownloadResult:
        track_id = extract_tidal_id(track_url)
        try:
            track = self.get_track_by_id(track_id)
        except (DownloadError, ValueError) as exc:
            raise DownloadError(f"failed to get track info: {exc}") from exc
        try:
            stream_url = self.get_stream_url(track_id)
        except DownloadError as exc:
            raise DownloadError(f"failed to get stream URL: {exc}") from exc

        output = os.fspath(output_dir)
        try:
            os.makedirs(output, exist_ok=True)
        except OSError as exc:
            raise DownloadError(f"failed to create output directory: {exc}") from exc

        artist = track.artist_name()
        output_path = os.path.join(output, _safe_file_name(f"{artist} - {track.title}") + ".flac")
        try:
            self._download_file(stream_url, output_path)
        except DownloadError as exc:
            raise DownloadError(f"download failed: {exc}") from exc

        size = 0
        with contextlib.suppress(OSError):
            size = os.stat(output_path).st_size

        return AudioDownloadResult(
            file_path=output_path,
            track=AudioTrackInfo(
                id=str(track.id),
                title=track.title,
                artist=artist,
                album=track.album_title,
                duration=float(track.duration),
                isrc=track.isrc,
                platform="tidal",
                quality="FLAC LOSSLESS",
                cover_url=track.cover_url,
            ),
            format="flac",
            size=size,
        )

    def _download_file(self, url: str, output_path: str) -> None:
        try:
            resp = self.client.request("GET", url, headers=_HEADERS, stream=True)
        except requests.RequestException as exc:
            raise DownloadError(f"failed to start download: {exc}") from exc
        with resp:
            if resp.status_code != 200:
                raise DownloadError(f"download server returned {resp.status_code}")
            try:
                handle = open(output_path, "wb")
            except OSError as exc:
                raise DownloadError(f"failed to create file: {exc}") from exc
            try:
                with handle:
                    for chunk in resp.iter_content(chunk_size=65536):
                        handle.write(chunk)
            except (OSError, requests.RequestException) as exc:
                with contextlib.suppress(OSError):
                    os.remove(output_path)
                raise DownloadError(f"download interrupted: {exc}") from exc

    def download_by_search(self, artist: str, title: str, output_dir: str) -> AudioDownloadResult:
        """Search for artist and title, then download the first hit."""
        try:
            track = self.search_track(f"{artist} {title}")
        except DownloadError as exc:
            raise DownloadError(f"search failed: {exc}") from exc
        return self.download(f"https://tidal.com/browse/track/{track.id}", output_dir, "flac")