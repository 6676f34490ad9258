"""FFmpeg and FFprobe helpers: locating binaries, probing media and simple remuxes."""

from __future__ import annotations

import contextlib
import json
import os
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Callable, List, Mapping, Optional, Sequence

ProgressCallback = Callable[[float, str], None]

THUMBNAIL_TIMEOUT = 30.0

_INT_RE = re.compile(r"[+-]?[0-9]+")
_TIME_RE = re.compile(r"time=(\d+):(\d+):(\d+)\.(\d+)", re.ASCII)


class FFmpegError(RuntimeError):
    """An ffmpeg or ffprobe invocation failed; ``stderr`` holds its output."""

    def __init__(self, message: str, stderr: str = "") -> None:
        self.stderr = stderr
        super().__init__(f"{message} - {stderr}" if stderr else message)


@dataclass
class StreamInfo:
    """Details of a single audio or video stream."""

    index: int = 0
    codec_name: str = ""
    codec_long: str = ""
    profile: str = ""
    bit_rate: int = 0
    duration: float = 0.0
    width: int = 0
    height: int = 0
    frame_rate: float = 0.0
    sample_rate: int = 0
    channels: int = 0


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _as_int(value: Any) -> int:
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


def _parse_int(value: Any) -> Optional[int]:
    if isinstance(value, str) and _INT_RE.fullmatch(value):
        return int(value)
    return None


def _parse_float(value: Any) -> Optional[float]:
    if not isinstance(value, str) or value != value.strip() or "_" in value or not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


@dataclass
class MediaInfo:
    """Summary of a media file as reported by ffprobe."""

    duration: float = 0.0
    video_codec: str = ""
    audio_codec: str = ""
    width: int = 0
    height: int = 0
    bitrate: int = 0
    frame_rate: float = 0.0
    sample_rate: int = 0
    channels: int = 0
    format: str = ""
    has_video: bool = False
    has_audio: bool = False
    video_stream: Optional[StreamInfo] = None
    audio_stream: Optional[StreamInfo] = None

    @classmethod
    def from_probe(cls, probe_data: Mapping[str, Any]) -> "MediaInfo":
        """Build from the decoded JSON of ``ffprobe -show_format -show_streams``."""
        if not isinstance(probe_data, Mapping):
            raise ValueError("ffprobe output must be a JSON object")
        fmt = probe_data.get("format") or {}
        info = cls(format=_as_str(fmt.get("format_name")))
        duration = _parse_float(fmt.get("duration"))
        if duration is not None:
            info.duration = duration
        bitrate = _parse_int(fmt.get("bit_rate"))
        if bitrate is not None:
            info.bitrate = bitrate

        for stream in probe_data.get("streams") or []:
            if not isinstance(stream, Mapping):
                continue
            kind = stream.get("codec_type")
            codec = _as_str(stream.get("codec_name"))
            stream_info = StreamInfo(
                index=_as_int(stream.get("index")),
                codec_name=codec,
                codec_long=_as_str(stream.get("codec_long_name")),
                profile=_as_str(stream.get("profile")),
            )
            stream_bitrate = _parse_int(stream.get("bit_rate"))
            if stream_bitrate is not None:
                stream_info.bit_rate = stream_bitrate
            stream_duration = _parse_float(stream.get("duration"))
            if stream_duration is not None:
                stream_info.duration = stream_duration

            if kind == "video":
                info.has_video = True
                info.video_codec = codec
                info.width = _as_int(stream.get("width"))
                info.height = _as_int(stream.get("height"))
                info.frame_rate = parse_frame_rate(_as_str(stream.get("avg_frame_rate")))
                stream_info.width = info.width
                stream_info.height = info.height
                stream_info.frame_rate = info.frame_rate
                info.video_stream = stream_info
            elif kind == "audio":
                info.has_audio = True
                info.audio_codec = codec
                sample_rate = _parse_int(stream.get("sample_rate"))
                if sample_rate is not None:
                    info.sample_rate = sample_rate
                info.channels = _as_int(stream.get("channels"))
                stream_info.sample_rate = info.sample_rate
                stream_info.channels = info.channels
                info.audio_stream = stream_info
        return info


def _app_data_dir() -> Optional[Path]:
    try:
        return Path.home() / ".youflac"
    except RuntimeError:
        return None


def _find_binary(name: str) -> str:
    base = _app_data_dir()
    if base is not None:
        for candidate in (base / "bin" / name, base / "bin" / f"{name}.exe"):
            if os.path.exists(candidate):
                return str(candidate)
    found = shutil.which(name)
    return found if found else name


def get_ffmpeg_path() -> str:
    """The bundled ffmpeg under ~/.youflac/bin, else the one on PATH, else "ffmpeg"."""
    return _find_binary("ffmpeg")


def get_ffprobe_path() -> str:
    """The bundled ffprobe under ~/.youflac/bin, else the one on PATH, else "ffprobe"."""
    return _find_binary("ffprobe")


def _decode(data: Any) -> str:
    if data is None:
        return ""
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).decode("utf-8", errors="replace")
    return str(data)


def _run_tool(
    binary: str,
    args: Sequence[str],
    what: str,
    *,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess:
    cmd: List[str] = [binary, *args]
    try:
        proc = subprocess.run(cmd, capture_output=True, timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        raise FFmpegError(f"{what} failed: timed out after {timeout}s") from exc
    except OSError as exc:
        raise FFmpegError(f"{what} failed: {exc}") from exc
    if proc.returncode != 0:
        raise FFmpegError(
            f"{what} failed: exit status {proc.returncode}", stderr=_decode(proc.stderr)
        )
    return proc


def _check_runs(binary: str, label: str) -> None:
    try:
        proc = subprocess.run([binary, "-version"], capture_output=True)
    except OSError as exc:
        raise FFmpegError(f"{label} not found or not executable: {exc}") from exc
    if proc.returncode != 0:
        raise FFmpegError(
            f"{label} not found or not executable: exit status {proc.returncode}"
        )


def check_ffmpeg_installed() -> None:
    """Raise FFmpegError unless ffmpeg can be run."""
    _check_runs(get_ffmpeg_path(), "FFmpeg")


def check_ffprobe_installed() -> None:
    """Raise FFmpegError unless ffprobe can be run."""
    _check_runs(get_ffprobe_path(), "FFprobe")


def get_ffmpeg_version() -> str:
    """The first line of ``ffmpeg -version``."""
    proc = _run_tool(get_ffmpeg_path(), ["-version"], "ffmpeg -version")
    return _decode(proc.stdout).split("\n", 1)[0].strip()


def get_media_info(file_path: "str | os.PathLike[str]") -> MediaInfo:
    """Probe a media file with ffprobe."""
    path = os.fspath(file_path)
    if not os.path.exists(path):
        raise FileNotFoundError(f"file not found: {path}")
    args = ["-v", "quiet", "-print_format", "json", "-show_format", "-show_streams", path]
    proc = _run_tool(get_ffprobe_path(), args, "ffprobe")
    try:
        data = json.loads(_decode(proc.stdout))
        return MediaInfo.from_probe(data)
    except ValueError as exc:
        raise FFmpegError(f"failed to parse ffprobe output: {exc}") from exc


def extract_audio_stream(video_path: "str | os.PathLike[str]", output_path: "str | os.PathLike[str]") -> None:
    """Copy the audio stream of a file into output_path."""
    args = ["-y", "-i", os.fspath(video_path), "-vn", "-c:a", "copy", os.fspath(output_path)]
    _run_tool(get_ffmpeg_path(), args, "audio extraction")


def extract_video_stream(video_path: "str | os.PathLike[str]", output_path: "str | os.PathLike[str]") -> None:
    """Copy the video stream of a file, without audio, into output_path."""
    args = ["-y", "-i", os.fspath(video_path), "-an", "-c:v", "copy", os.fspath(output_path)]
    _run_tool(get_ffmpeg_path(), args, "video extraction")


def convert_to_mkv(input_path: "str | os.PathLike[str]", output_path: "str | os.PathLike[str]") -> None:
    """Remux any container into Matroska without re-encoding."""
    args = ["-y", "-i", os.fspath(input_path), "-c", "copy", "-f", "matroska", os.fspath(output_path)]
    _run_tool(get_ffmpeg_path(), args, "mkv conversion")


def download_thumbnail(url: str, output_path: "str | os.PathLike[str]") -> None:
    """Fetch a single image frame from url with ffmpeg, giving up after 30 seconds."""
    args = ["-y", "-i", url, "-vframes", "1", "-f", "image2", os.fspath(output_path)]
    _run_tool(get_ffmpeg_path(), args, "thumbnail download", timeout=THUMBNAIL_TIMEOUT)


def parse_frame_rate(fps: str) -> float:
    """Parse a rational frame rate such as "30000/1001"; 0 when unparsable."""
    parts = fps.split("/")
    if len(parts) != 2:
        return 0.0
    num = _parse_float(parts[0])
    den = _parse_float(parts[1])
    if num is None or den is None or den == 0:
        return 0.0
    return num / den


def _trunc_divmod(a: int, b: int) -> "tuple[int, int]":
    q = abs(a) // abs(b)
    if (a < 0) != (b < 0):
        q = -q
    return q, a - b * q


def format_duration(seconds: float) -> str:
    """Format seconds as H:MM:SS, or M:SS below an hour."""
    total = int(seconds)
    hours, rest = _trunc_divmod(total, 3600)
    minutes, _ = _trunc_divmod(rest, 60)
    _, secs = _trunc_divmod(total, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_file_size(size: int) -> str:
    """Format a byte count with binary prefixes, e.g. "1.5 KB"."""
    unit = 1024
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{float(size) / float(div):.1f} {'KMGTPE'[exp]}B"


def validate_output_path(output_path: "str | os.PathLike[str]") -> None:
    """Make sure the directory of output_path exists and is writable."""
    directory = os.path.dirname(os.fspath(output_path)) or "."
    try:
        os.makedirs(directory, exist_ok=True)
    except OSError as exc:
        raise OSError(f"cannot create output directory: {exc}") from exc
    probe = os.path.join(directory, ".youflac-test")
    try:
        open(probe, "wb").close()
    except OSError as exc:
        raise OSError(f"cannot write to output directory: {exc}") from exc
    with contextlib.suppress(OSError):
        os.remove(probe)


def read_progress_from_stderr(
    stream: IO[Any],
    total_duration: float,
    callback: Optional[ProgressCallback],
) -> None:
    """Read ffmpeg stderr until EOF, reporting percent done from its time= fields."""
    while True:
        chunk = stream.read(1024)
        if not chunk:
            break
        text = _decode(chunk)
        match = _TIME_RE.search(text)
        if match is None or total_duration <= 0 or callback is None:
            continue
        hours, minutes, secs = (int(g) for g in match.groups()[:3])
        current = float(hours * 3600 + minutes * 60 + secs)
        percent = min(current / total_duration * 100, 100.0)
        callback(percent, "Processing")