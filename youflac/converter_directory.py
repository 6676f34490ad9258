"""Batch conversion of every audio file below a directory."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Protocol

from .converter import ConversionError, ConvertRequest, convert_audio

AUDIO_EXTENSIONS = frozenset(
    {".flac", ".mp3", ".wav", ".m4a", ".aac", ".ogg", ".alac", ".opus"}
)


class ConversionCancelled(Exception):
    """A directory conversion was stopped before it finished."""


class _CancelSignal(Protocol):
    def is_set(self) -> bool: ...


@dataclass
class ConvertDirOptions:
    """Parameters for a directory conversion job."""

    dir: str
    target_format: str
    bitrate: int = 0
    sample_rate: int = 0


@dataclass
class DirConvertResult:
    """One file's outcome, or the final summary when ``done`` is set."""

    source_path: str = ""
    output_path: str = ""
    error: str = ""
    done: bool = False
    total: int = 0
    succeeded: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        data: dict = {"sourcePath": self.source_path}
        if self.output_path:
            data["outputPath"] = self.output_path
        if self.error:
            data["error"] = self.error
        data["done"] = self.done
        for key, value in (("total", self.total), ("succeeded", self.succeeded), ("failed", self.failed)):
            if value:
                data[key] = value
        return data


def _walk(directory: str) -> Iterator[str]:
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError:
        return
    for entry in entries:
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
        except OSError:
            continue
        if is_dir:
            yield from _walk(entry.path)
        else:
            yield entry.path


def find_audio_files(directory: "str | os.PathLike[str]") -> List[str]:
    """Audio files below directory, in lexical depth-first order."""
    found = []
    for path in _walk(os.fspath(directory)):
        name = os.path.basename(path)
        dot = name.rfind(".")
        if dot >= 0 and name[dot:].lower() in AUDIO_EXTENSIONS:
            found.append(path)
    return found


def convert_directory(
    options: ConvertDirOptions,
    on_result: Callable[[DirConvertResult], None],
    cancel_event: Optional[_CancelSignal] = None,
) -> DirConvertResult:
    """Convert every audio file in options.dir, reporting each result and a summary.

    Raises ConversionCancelled if cancel_event is set before a file is started.
    """
    directory = os.fspath(options.dir)
    if not os.path.exists(directory):
        raise FileNotFoundError(f"directory not found: {directory}")
    if not os.path.isdir(directory):
        raise NotADirectoryError(f"path is not a directory: {directory}")

    files = find_audio_files(directory)
    succeeded = failed = 0
    for source in files:
        if cancel_event is not None and cancel_event.is_set():
            raise ConversionCancelled("directory conversion cancelled")
        request = ConvertRequest(
            source_path=source,
            target_format=options.target_format,
            bitrate=options.bitrate,
            sample_rate=options.sample_rate,
        )
        try:
            result = convert_audio(request)
        except (ConversionError, OSError, ValueError) as exc:
            failed += 1
            on_result(DirConvertResult(source_path=source, error=str(exc)))
        else:
            succeeded += 1
            on_result(DirConvertResult(source_path=source, output_path=result.output_path))

    summary = DirConvertResult(
        done=True, total=len(files), succeeded=succeeded, failed=failed
    )
    on_result(summary)
    return summary