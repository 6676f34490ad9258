"""Combining a video with lossless audio into Matroska, with A/V sync correction."""

from __future__ import annotations

import contextlib
import logging
import os
import re
import subprocess
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .ffmpeg import FFmpegError, ProgressCallback, get_ffmpeg_path, get_media_info

log = logging.getLogger(__name__)

# Differences in leading silence below this are ignored.
MIN_ADJUST_SECONDS = 0.05

_SILENCE_START_RE = re.compile(r"silence_start: ([\d.e+-]+)")
_SILENCE_END_RE = re.compile(r"silence_end: ([\d.e+-]+)")


@dataclass
class Chapter:
    """A chapter marker, times in seconds."""

    title: str
    start_time: float = 0.0
    end_time: float = 0.0

    def to_dict(self) -> dict:
        return {"title": self.title, "startTime": self.start_time, "endTime": self.end_time}


@dataclass
class MuxOptions:
    """How video and audio are combined."""

    video_codec: str = "copy"
    audio_codec: str = "copy"
    metadata: Dict[str, str] = field(default_factory=dict)
    cover_art_path: str = ""
    chapters: List[Chapter] = field(default_factory=list)
    overwrite: bool = True


@dataclass
class MuxResult:
    """What a finished mux produced; elapsed_time is in seconds."""

    output_path: str
    duration: float = 0.0
    file_size: int = 0
    video_codec: str = ""
    audio_codec: str = ""
    elapsed_time: float = 0.0
    has_cover_art: bool = False
    has_metadata: bool = False
    has_chapters: bool = False

    def to_dict(self) -> dict:
        return {
            "outputPath": self.output_path,
            "duration": self.duration,
            "fileSize": self.file_size,
            "videoCodec": self.video_codec,
            "audioCodec": self.audio_codec,
            "elapsedTime": self.elapsed_time,
            "hasCoverArt": self.has_cover_art,
            "hasMetadata": self.has_metadata,
            "hasChapters": self.has_chapters,
        }


class MuxError(FFmpegError):
    """The ffmpeg mux command failed."""

    def __init__(self, command: str, arguments: Sequence[str], stderr: str, reason: str) -> None:
        self.command = command
        self.arguments = list(arguments)
        self.reason = reason
        self.stderr = stderr
        RuntimeError.__init__(self, f"ffmpeg error: {reason}\nstderr: {stderr}")


def _decode(data: Any) -> str:
    if data is None:
        return ""
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).decode("utf-8", errors="replace")
    return str(data)


def _report(progress: Optional[ProgressCallback], percent: float, stage: str) -> None:
    if progress is not None:
        progress(percent, stage)


def _run_ffmpeg(args: Sequence[str], what: str) -> None:
    cmd = [get_ffmpeg_path(), *args]
    try:
        proc = subprocess.run(cmd, capture_output=True)
    except OSError as exc:
        raise FFmpegError(f"{what} failed: {exc}") from exc
    if proc.returncode != 0:
        raise FFmpegError(
            f"{what} failed: exit status {proc.returncode}", stderr=_decode(proc.stderr)
        )


def parse_leading_silence(output: str) -> float:
    """Leading silence length from silencedetect output; 0 if the file starts with sound."""
    starts = _SILENCE_START_RE.findall(output)
    ends = _SILENCE_END_RE.findall(output)
    if not starts or not ends:
        return 0.0
    try:
        first_start = float(starts[0])
        first_end = float(ends[0])
    except ValueError:
        return 0.0
    if first_start > 0.01:
        return 0.0
    return first_end


def detect_leading_silence(file_path: "str | os.PathLike[str]", stream_map: str = "") -> float:
    """Measure leading silence of an audio stream; 0 on any failure."""
    args = ["-i", os.fspath(file_path)]
    if stream_map:
        args += ["-map", stream_map]
    args += ["-af", "silencedetect=noise=-50dB:d=0.05", "-f", "null", "-"]
    try:
        proc = subprocess.run([get_ffmpeg_path(), *args], capture_output=True)
    except OSError:
        return 0.0
    return parse_leading_silence(_decode(proc.stderr))


def trim_audio_start(
    input_path: "str | os.PathLike[str]",
    output_path: "str | os.PathLike[str]",
    duration: float,
) -> None:
    """Cut the first ``duration`` seconds, re-encoding losslessly to FLAC."""
    args = [
        "-y",
        "-i", os.fspath(input_path),
        "-af", f"atrim=start={duration:.6f},asetpts=PTS-STARTPTS",
        "-c:a", "flac",
        "-compression_level", "5",
        os.fspath(output_path),
    ]
    _run_ffmpeg(args, "audio trim")


def build_mux_args(
    video_path: "str | os.PathLike[str]",
    audio_path: "str | os.PathLike[str]",
    output_path: "str | os.PathLike[str]",
    options: Optional[MuxOptions] = None,
    its_offset: float = 0.0,
) -> List[str]:
    """ffmpeg arguments that mux the first video and audio streams into Matroska."""
    options = options or MuxOptions()
    args = ["-y" if options.overwrite else "-n", "-i", os.fspath(video_path)]
    if its_offset > 0:
        args += ["-itsoffset", f"{its_offset:.6f}"]
    args += ["-i", os.fspath(audio_path)]

    has_cover = bool(options.cover_art_path) and os.path.exists(options.cover_art_path)
    if has_cover:
        args += ["-i", options.cover_art_path]

    args += ["-map", "0:v:0", "-map", "1:a:0"]
    if has_cover:
        args += ["-map", "2:0"]

    args += ["-c:v", options.video_codec or "copy", "-c:a", options.audio_codec or "copy"]
    if has_cover:
        args += ["-c:v:1", "mjpeg", "-disposition:v:1", "attached_pic"]

    for key, value in options.metadata.items():
        if value:
            args += ["-metadata", f"{key}={value}"]

    args += ["-f", "matroska", os.fspath(output_path)]
    return args


def mux_video_audio(
    video_path: "str | os.PathLike[str]",
    audio_path: "str | os.PathLike[str]",
    output_path: "str | os.PathLike[str]",
    options: Optional[MuxOptions] = None,
    progress: Optional[ProgressCallback] = None,
) -> None:
    """Replace a video's audio with another track, aligning their leading silence."""
    options = options or MuxOptions()
    video = os.fspath(video_path)
    audio = os.fspath(audio_path)
    output = os.fspath(output_path)
    if not os.path.exists(video):
        raise FileNotFoundError(f"video file not found: {video}")
    if not os.path.exists(audio):
        raise FileNotFoundError(f"audio file not found: {audio}")
    os.makedirs(os.path.dirname(output) or ".", exist_ok=True)

    _report(progress, 0, "Preparing mux")

    video_silence = detect_leading_silence(video, "0:a:0")
    audio_silence = detect_leading_silence(audio, "")
    adjust = video_silence - audio_silence
    log.debug(
        "A/V sync analysis: video_audio_silence=%s flac_silence=%s adjust_sec=%s",
        video_silence, audio_silence, adjust,
    )

    effective_audio = audio
    its_offset = 0.0
    trimmed: Optional[str] = None
    if adjust < -MIN_ADJUST_SECONDS:
        trim_path = audio + ".sync_trimmed.flac"
        try:
            trim_audio_start(audio, trim_path, -adjust)
        except FFmpegError as exc:
            log.warning("A/V sync: trim failed, proceeding without trim: %s", exc)
        else:
            log.info("A/V sync: trimmed FLAC excess silence (%.3fs)", -adjust)
            effective_audio = trimmed = trim_path
    elif adjust > MIN_ADJUST_SECONDS:
        its_offset = adjust
        log.info("A/V sync: delaying FLAC with itsoffset %.3fs", its_offset)

    try:
        args = build_mux_args(video, effective_audio, output, options, its_offset)
        _report(progress, 10, "Starting FFmpeg")
        ffmpeg = get_ffmpeg_path()
        try:
            proc = subprocess.run([ffmpeg, *args], capture_output=True)
        except OSError as exc:
            raise MuxError(ffmpeg, args, "", str(exc)) from exc
        if proc.returncode != 0:
            raise MuxError(
                ffmpeg, args, _decode(proc.stderr), f"exit status {proc.returncode}"
            )
    finally:
        if trimmed is not None:
            with contextlib.suppress(OSError):
                os.remove(trimmed)

    _report(progress, 100, "Muxing complete")


def _metadata_tags(metadata: Any) -> Dict[str, str]:
    tags: Dict[str, str] = {}
    if metadata is None:
        return tags
    for attr, key in (("title", "title"), ("artist", "artist"), ("album", "album")):
        value = getattr(metadata, attr, "") or ""
        if value:
            tags[key] = value
    year = getattr(metadata, "year", 0) or 0
    if year > 0:
        tags["date"] = str(year)
    isrc = getattr(metadata, "isrc", "") or ""
    if isrc:
        tags["ISRC"] = isrc
    return tags


def mux_video_with_flac(
    video_path: "str | os.PathLike[str]",
    audio_path: "str | os.PathLike[str]",
    output_path: "str | os.PathLike[str]",
    metadata: Any = None,
    cover_path: str = "",
    progress: Optional[ProgressCallback] = None,
) -> MuxResult:
    """Validate inputs, mux them with tags and cover art, and describe the result.

    ``metadata`` is any object with title, artist, album, year and isrc attributes.
    """
    started = time.monotonic()
    _report(progress, 0, "Initializing")

    video_info = get_media_info(video_path)
    audio_info = get_media_info(audio_path)
    if not video_info.has_video:
        raise ValueError("input video file has no video stream")
    if not audio_info.has_audio:
        raise ValueError("input audio file has no audio stream")

    _report(progress, 10, "Validating inputs")

    tags = _metadata_tags(metadata)
    options = MuxOptions(metadata=tags, cover_art_path=cover_path, overwrite=True)

    def mux_progress(percent: float, stage: str) -> None:
        _report(progress, 20 + percent * 0.7, stage)

    mux_video_audio(video_path, audio_path, output_path, options, mux_progress)

    _report(progress, 95, "Finalizing")

    output = os.fspath(output_path)
    size = os.stat(output).st_size
    output_info = get_media_info(output)

    _report(progress, 100, "Complete")

    return MuxResult(
        output_path=output,
        duration=output_info.duration,
        file_size=size,
        video_codec=output_info.video_codec,
        audio_codec=output_info.audio_codec,
        elapsed_time=time.monotonic() - started,
        has_cover_art=bool(cover_path) and os.path.exists(cover_path),
        has_metadata=bool(tags),
        has_chapters=False,
    )


def create_flac_with_metadata(
    audio_path: "str | os.PathLike[str]",
    output_path: "str | os.PathLike[str]",
    metadata: Any = None,
    cover_path: str = "",
) -> MuxResult:
    """Write a tagged FLAC (with optional cover) for audio-only output."""
    started = time.monotonic()
    audio = os.fspath(audio_path)
    output = os.fspath(output_path)

    audio_info = get_media_info(audio)
    if not audio_info.has_audio:
        raise ValueError("input file has no audio stream")

    has_cover = bool(cover_path) and os.path.exists(cover_path)
    args = ["-y", "-i", audio]
    if has_cover:
        args += ["-i", cover_path]
    args += ["-map", "0:a"]
    if has_cover:
        args += ["-map", "1:0"]

    if audio_info.audio_codec.lower() == "flac":
        args += ["-c:a", "copy"]
    else:
        args += ["-c:a", "flac", "-compression_level", "8"]
    if has_cover:
        args += ["-c:v", "mjpeg", "-disposition:v", "attached_pic"]

    if metadata is not None:
        for attr, key in (("title", "TITLE"), ("artist", "ARTIST"), ("album", "ALBUM")):
            value = getattr(metadata, attr, "") or ""
            if value:
                args += ["-metadata", f"{key}={value}"]
        year = getattr(metadata, "year", 0) or 0
        if year > 0:
            args += ["-metadata", f"DATE={year}"]
        isrc = getattr(metadata, "isrc", "") or ""
        if isrc:
            args += ["-metadata", f"ISRC={isrc}"]

    args.append(output)
    log.debug("creating FLAC: %s", " ".join(args))
    _run_ffmpeg(args, "ffmpeg")

    size = os.stat(output).st_size
    output_info = get_media_info(output)
    return MuxResult(
        output_path=output,
        duration=output_info.duration,
        file_size=size,
        audio_codec=output_info.audio_codec,
        elapsed_time=time.monotonic() - started,
        has_cover_art=has_cover,
        has_metadata=metadata is not None,
    )