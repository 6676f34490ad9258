"""Download service backed by the lucida web API."""

from __future__ import annotations

import contextlib
import logging
import os
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence

import requests

from .httpclient import HTTPClient, new_http_client
from .tracks import AudioDownloadResult, AudioDownloadService, AudioTrackInfo, DownloadError

log = logging.getLogger(__name__)

LUCIDA_API_PATH = "/api/load"
LUCIDA_ENDPOINTS = ("https://lucida.to", "https://lucida.su")
SUPPORTED_FORMATS = ("flac", "mp3", "wav", "aac", "ogg")
FLAC_FALLBACK_ORDER = ("flac", "wav", "mp3")
PROXY_RETRY_STATUSES = frozenset({403, 429, 451})

_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _number(value: Any) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return 0.0


def _safe_file_name(name: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", name).strip().strip(".").strip()
    return cleaned or "untitled"


def _track_info(track: Mapping[str, Any], quality: str = "") -> AudioTrackInfo:
    return AudioTrackInfo(
        id=_text(track.get("id")),
        title=_text(track.get("title")),
        artist=_text(track.get("artist")),
        album=_text(track.get("album")),
        duration=_number(track.get("duration")),
        isrc=_text(track.get("isrc")),
        platform=_text(track.get("platform")),
        cover_url=_text(track.get("cover")),
        release_date=_text(track.get("releaseDate")),
        quality=quality,
    )


def _formats(data: Mapping[str, Any]) -> List[Dict[str, Any]]:
    return [
        {
            "format": _text(f.get("format")),
            "quality": _text(f.get("quality")),
            "size": int(_number(f.get("size"))),
            "url": _text(f.get("url")),
        }
        for f in data.get("formats") or []
        if isinstance(f, Mapping)
    ]


class LucidaService(AudioDownloadService):
    """Fetches tracks through lucida, trying each endpoint in turn.

    When a proxy client is given, requests answered with 403, 429 or 451
    are retried through it.
    """

    name = "lucida"

    def __init__(
        self,
        client: Optional[HTTPClient] = None,
        proxy_client: Optional[HTTPClient] = None,
        endpoints: Optional[Sequence[str]] = None,
    ) -> None:
        self.client = client if client is not None else new_http_client(0, "")
        self.proxy_client = proxy_client
        self.endpoints = list(endpoints) if endpoints is not None else list(LUCIDA_ENDPOINTS)

    def is_available(self) -> bool:
        """True when any endpoint answers a HEAD request below 500."""
        for endpoint in self.endpoints:
            try:
                resp = self.client.request("HEAD", endpoint, allow_redirects=True)
            except requests.RequestException:
                continue
            resp.close()
            if resp.status_code < 500:
                return True
        return False

    def supports_format(self, fmt: str) -> bool:
        return fmt.lower() in SUPPORTED_FORMATS

    def _post(self, url: str, **kwargs: Any) -> Any:
        resp = self.client.request("POST", url, **kwargs)
        if self.proxy_client is not None and resp.status_code in PROXY_RETRY_STATUSES:
            log.debug("retrying via proxy after status %s", resp.status_code)
            resp.close()
            resp = self.proxy_client.request("POST", url, **kwargs)
        return resp

    def fetch_track_data(self, track_url: str) -> Dict[str, Any]:
        """The decoded API answer for a track URL, from the first working endpoint."""
        last_error: Optional[BaseException] = None
        for endpoint in self.endpoints:
            headers = {
                "Content-Type": "application/x-www-form-urlencoded",
                "User-Agent": _USER_AGENT,
                "Origin": endpoint,
                "Referer": endpoint + "/",
            }
            try:
                resp = self._post(
                    endpoint + LUCIDA_API_PATH, data={"url": track_url}, headers=headers
                )
            except requests.RequestException as exc:
                log.debug("lucida endpoint %s failed: %s", endpoint, exc)
                last_error = exc
                continue

            with resp:
                if resp.status_code >= 500:
                    log.debug("lucida endpoint %s returned %s", endpoint, resp.status_code)
                    last_error = DownloadError(f"endpoint {endpoint} returned {resp.status_code}")
                    continue
                try:
                    result = resp.json()
                except (ValueError, requests.RequestException) as exc:
                    last_error = DownloadError(f"failed to parse response from {endpoint}: {exc}")
                    continue
            if not isinstance(result, dict):
                last_error = DownloadError(f"failed to parse response from {endpoint}: not an object")
                continue
            if result.get("success") is not True:
                raise DownloadError(f"API error: {_text(result.get('error'))}")
            log.debug("lucida endpoint %s succeeded", endpoint)
            return result

        raise DownloadError(f"all lucida endpoints failed, last error: {last_error}")

    def get_track_info(self, track_url: str) -> AudioTrackInfo:
        data = self.fetch_track_data(track_url)
        track = data.get("track")
        return _track_info(track if isinstance(track, Mapping) else {})

    def download(self, track_url: str, output_dir: str, fmt: str = "flac") -> AudioDownloadResult:
        """Download in fmt; a FLAC request falls back to WAV, then MP3."""
        data = self.fetch_track_data(track_url)
        track = data.get("track")
        track = track if isinstance(track, Mapping) else {}
        formats = _formats(data)

        wanted = fmt.lower()
        chosen = next((f for f in formats if f["format"].lower() == wanted), None)
        if chosen is None and wanted == "flac":
            for preferred in FLAC_FALLBACK_ORDER:
                chosen = next((f for f in formats if f["format"].lower() == preferred), None)
                if chosen is not None:
                    break
        if chosen is None or not chosen["url"]:
            raise DownloadError(f"format {wanted} not available for this track")

        output = os.fspath(output_dir)
        try:
            os.makedirs(output, exist_ok=True)
        except OSError as exc:
            raise DownloadError(f"failed to create output directory: {exc}") from exc

        safe_title = _safe_file_name(f"{_text(track.get('artist'))} - {_text(track.get('title'))}")
        output_path = os.path.join(output, f"{safe_title}.{chosen['format'].lower()}")
        try:
            self._download_file(chosen["url"], output_path)
        except DownloadError as exc:
            raise DownloadError(f"download failed: {exc}") from exc

        size = chosen["size"]
        with contextlib.suppress(OSError):
            size = os.stat(output_path).st_size

        return AudioDownloadResult(
            file_path=output_path,
            track=_track_info(track, quality=chosen["quality"]),
            format=chosen["format"],
            size=size,
        )

    def _download_file(self, url: str, output_path: str) -> None:
        try:
            resp = self.client.request("GET", url, stream=True)
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