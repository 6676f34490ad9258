"""Audio format conversion with ffmpeg."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from typing import List

from .ffmpeg import get_ffmpeg_path

SUPPORTED_CONVERT_FORMATS = ("mp3", "wav", "aac", "ogg", "alac", "flac")


class ConversionError(RuntimeError):
    """ffmpeg could not convert the file."""


@dataclass
class ConvertRequest:
    """A request to convert one file to another audio format."""

    source_path: str
    target_format: str
    bitrate: int = 0
    sample_rate: int = 0


@dataclass
class ConvertResult:
    """Where a converted file was written and how large it is."""

    output_path: str
    format: str
    size: int

    def to_dict(self) -> dict:
        return {"outputPath": self.output_path, "format": self.format, "size": self.size}


def output_path_for(source_path: "str | os.PathLike[str]", target_format: str) -> str:
    """Path next to the source with the target extension, never the source itself."""
    source = os.fspath(source_path)
    fmt = target_format.lower()
    ext = ".m4a" if fmt == "alac" else "." + fmt
    directory, name = os.path.split(source)
    dot = name.rfind(".")
    base = name[:dot] if dot >= 0 else name
    output = os.path.join(directory, base + ext)
    if output == source:
        output = os.path.join(directory, base + "_converted" + ext)
    return output


def codec_args(target_format: str, bitrate: int = 0, sample_rate: int = 0) -> List[str]:
    """ffmpeg output options for a target format; bitrate is in kbps."""
    args: List[str] = []
    if target_format == "mp3":
        args += ["-codec:a", "libmp3lame", "-b:a", f"{bitrate}k" if bitrate > 0 else "320k"]
    elif target_format == "wav":
        args += ["-codec:a", "pcm_s16le"]
    elif target_format == "aac":
        args += ["-codec:a", "aac", "-b:a", f"{bitrate}k" if bitrate > 0 else "256k"]
    elif target_format == "ogg":
        args += ["-codec:a", "libvorbis", "-b:a", f"{bitrate}k" if bitrate > 0 else "256k"]
    elif target_format == "alac":
        args += ["-codec:a", "alac"]
    elif target_format == "flac":
        args += ["-codec:a", "flac"]
    if sample_rate > 0:
        args += ["-ar", str(sample_rate)]
    args.append("-vn")
    return args


def convert_audio(request: ConvertRequest) -> ConvertResult:
    """Convert the request's source file next to itself in the target format."""
    ffmpeg = get_ffmpeg_path()
    if not ffmpeg:
        raise ConversionError("ffmpeg not found")
    source = os.fspath(request.source_path)
    if not os.path.exists(source):
        raise FileNotFoundError(f"source file not found: {source}")
    fmt = request.target_format.lower()
    if fmt not in SUPPORTED_CONVERT_FORMATS:
        raise ValueError(f"unsupported format: {fmt}")

    output = output_path_for(source, fmt)
    cmd = [ffmpeg, "-y", "-i", source, *codec_args(fmt, request.bitrate, request.sample_rate), output]
    try:
        proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT)
    except OSError as exc:
        raise ConversionError(f"conversion failed: {exc}") from exc
    if proc.returncode != 0:
        text = (proc.stdout or b"").decode("utf-8", errors="replace")
        raise ConversionError(
            f"conversion failed: exit status {proc.returncode}, output: {text}"
        )

    try:
        size = os.stat(output).st_size
    except OSError as exc:
        raise ConversionError(f"output file not found after conversion: {exc}") from exc
    return ConvertResult(output_path=output, format=fmt, size=size)