"""FLAC downloads through the streamrip or orpheusdl command-line tools."""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path
from typing import List, Sequence
from urllib.parse import urlparse

from .tracks import AudioDownloadResult, AudioDownloadService, AudioTrackInfo, DownloadError


def _validate_track_url(track_url: str) -> None:
    """Accept only plain http(s) URLs, so nothing is read as a command option."""
    if not track_url or track_url.startswith("-") or any(c.isspace() for c in track_url):
        raise ValueError(f"invalid track URL: {track_url!r}")
    parsed = urlparse(track_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"track URL must be http or https: {track_url!r}")


def _run(cmd: Sequence[str], cwd: str = None) -> "tuple[bool, str]":
    try:
        proc = subprocess.run(
            list(cmd), cwd=cwd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT
        )
    except OSError as exc:
        return False, str(exc)
    output = (proc.stdout or b"").decode("utf-8", errors="replace")
    return proc.returncode == 0, output


class OrpheusDLService(AudioDownloadService):
    """Runs streamrip, falling back to orpheusdl, and picks up the FLAC they write."""

    name = "orpheusdl"

    def __init__(self) -> None:
        self.python_path = "python3" if shutil.which("python3") else "python"

    def is_available(self) -> bool:
        if _run(["rip", "--version"])[0]:
            return True
        return _run([self.python_path, "-m", "streamrip", "--version"])[0]

    def supports_format(self, fmt: str) -> bool:
        return fmt.lower() == "flac"

    def get_track_info(self, track_url: str) -> AudioTrackInfo:
        raise DownloadError("orpheusdl does not support metadata-only queries")

    def download(self, track_url: str, output_dir: str, fmt: str = "flac") -> AudioDownloadResult:
        try:
            return self._try_streamrip(track_url, output_dir)
        except DownloadError:
            return self._try_orpheusdl(track_url, output_dir)

    def _try_streamrip(self, track_url: str, output_dir: str) -> AudioDownloadResult:
        try:
            _validate_track_url(track_url)
        except ValueError as exc:
            raise DownloadError(f"rejected track URL: {exc}") from exc

        ok, output = _run(["rip", "url", track_url], cwd=output_dir)
        if not ok:
            ok, output = _run([self.python_path, "-m", "streamrip", "url", track_url], cwd=output_dir)
            if not ok:
                raise DownloadError(f"streamrip failed: {output}")

        try:
            flac = self.find_downloaded_flac(output_dir)
        except DownloadError:
            try:
                flac = self.find_downloaded_flac(str(Path.home() / "music"))
            except DownloadError as exc:
                raise DownloadError(f"FLAC file not found after download: {exc}") from exc

        return AudioDownloadResult(
            file_path=flac,
            format="flac",
            track=AudioTrackInfo(platform="streamrip", quality="FLAC"),
        )

    def _try_orpheusdl(self, track_url: str, output_dir: str) -> AudioDownloadResult:
        try:
            _validate_track_url(track_url)
        except ValueError as exc:
            raise DownloadError(f"rejected track URL: {exc}") from exc

        ok, output = _run(
            [self.python_path, "-m", "orpheusdl", track_url, "-o", output_dir, "-q", "flac"],
            cwd=output_dir,
        )
        if not ok:
            raise DownloadError(f"orpheusdl failed: {output}")

        return AudioDownloadResult(
            file_path=self.find_downloaded_flac(output_dir),
            format="flac",
            track=AudioTrackInfo(platform="orpheusdl", quality="FLAC 24-bit"),
        )

    def find_downloaded_flac(self, directory: str) -> str:
        """The most recently modified .flac file anywhere under directory."""
        found: List[str] = []
        for root, dirs, files in os.walk(os.fspath(directory)):
            dirs.sort()
            found.extend(
                os.path.join(root, name) for name in sorted(files) if name.lower().endswith(".flac")
            )
        if not found:
            raise DownloadError("no FLAC file found in output directory")

        newest = ""
        newest_time = float("-inf")
        for path in found:
            try:
                mtime = os.stat(path).st_mtime
            except OSError:
                continue
            if mtime > newest_time:
                newest, newest_time = path, mtime
        return newest