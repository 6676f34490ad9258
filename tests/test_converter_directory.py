import os
import subprocess
import threading
from unittest import mock

import pytest

from youflac.converter_directory import (
    ConversionCancelled,
    ConvertDirOptions,
    DirConvertResult,
    convert_directory,
    find_audio_files,
)


def _fake_ffmpeg(cmd, **kwargs):
    with open(cmd[-1], "wb") as fh:
        fh.write(b"mp3 data")
    return subprocess.CompletedProcess(cmd, 0, stdout=b"")


def _failing_ffmpeg(cmd, **kwargs):
    return subprocess.CompletedProcess(cmd, 1, stdout=b"bad input")


def _make_wav(directory, name):
    path = directory / name
    path.write_bytes(b"RIFF....WAVE")
    return path


def test_invalid_dir():
    opts = ConvertDirOptions(dir="/nonexistent/path/does/not/exist", target_format="mp3")
    with pytest.raises(FileNotFoundError):
        convert_directory(opts, lambda r: None)


def test_path_is_a_file(tmp_path):
    path = _make_wav(tmp_path, "x.wav")
    with pytest.raises(NotADirectoryError):
        convert_directory(ConvertDirOptions(dir=str(path), target_format="mp3"), lambda r: None)


def test_empty_dir(tmp_path):
    results = []
    convert_directory(ConvertDirOptions(dir=str(tmp_path), target_format="mp3"), results.append)
    assert len(results) == 1
    assert results[0].done is True
    assert results[0].total == 0


def test_single_file(tmp_path):
    _make_wav(tmp_path, "track.wav")
    results = []
    with mock.patch("subprocess.run", side_effect=_fake_ffmpeg):
        summary = convert_directory(
            ConvertDirOptions(dir=str(tmp_path), target_format="mp3"), results.append
        )
    assert len(results) == 2
    first = results[0]
    assert first.done is False
    assert first.source_path == str(tmp_path / "track.wav")
    assert first.output_path == str(tmp_path / "track.mp3")
    final = results[-1]
    assert final is summary
    assert final.done and final.total == 1 and final.succeeded == 1 and final.failed == 0


def test_failed_file_is_counted(tmp_path):
    _make_wav(tmp_path, "track.wav")
    results = []
    with mock.patch("subprocess.run", side_effect=_failing_ffmpeg):
        summary = convert_directory(
            ConvertDirOptions(dir=str(tmp_path), target_format="mp3"), results.append
        )
    assert "conversion failed" in results[0].error
    assert summary.failed == 1 and summary.succeeded == 0
    assert summary.to_dict() == {"sourcePath": "", "done": True, "total": 1, "failed": 1}


def test_context_cancel(tmp_path):
    _make_wav(tmp_path, "a.wav")
    _make_wav(tmp_path, "b.wav")
    cancel = threading.Event()
    seen = []

    def on_result(result: DirConvertResult):
        seen.append(result)
        if not result.done:
            cancel.set()

    with mock.patch("subprocess.run", side_effect=_fake_ffmpeg):
        with pytest.raises(ConversionCancelled):
            convert_directory(
                ConvertDirOptions(dir=str(tmp_path), target_format="mp3"), on_result, cancel
            )
    assert len(seen) == 1


def test_find_audio_files_filters_and_orders(tmp_path):
    (tmp_path / "b.mp3").write_bytes(b"")
    (tmp_path / "a.FLAC").write_bytes(b"")
    (tmp_path / "notes.txt").write_bytes(b"")
    sub = tmp_path / "sub"
    sub.mkdir()
    (sub / "c.ogg").write_bytes(b"")
    found = find_audio_files(tmp_path)
    assert found == [
        str(tmp_path / "a.FLAC"),
        str(tmp_path / "b.mp3"),
        os.path.join(str(sub), "c.ogg"),
    ]