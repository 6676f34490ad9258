import json
import subprocess
from pathlib import Path
from types import SimpleNamespace
from unittest import mock

import pytest

from youflac.mux import (
    MuxError,
    MuxOptions,
    build_mux_args,
    create_flac_with_metadata,
    mux_video_audio,
    mux_video_with_flac,
    parse_leading_silence,
)


class FakeTools:
    """Stands in for ffmpeg/ffprobe processes."""

    def __init__(self, video_silence=None, audio_silence=None, mux_returncode=0, probe=None):
        self.video_silence = video_silence
        self.audio_silence = audio_silence
        self.mux_returncode = mux_returncode
        self.probe = probe or {}
        self.calls = []

    def __call__(self, cmd, **kwargs):
        cmd = [str(c) for c in cmd]
        self.calls.append(cmd)
        if "-show_streams" in cmd:
            data = self.probe.get(cmd[-1], {"streams": [], "format": {}})
            return subprocess.CompletedProcess(cmd, 0, json.dumps(data).encode(), b"")
        if any("silencedetect" in a for a in cmd):
            end = self.video_silence if "0:a:0" in cmd else self.audio_silence
            text = ""
            if end is not None:
                text = f"[silencedetect] silence_start: 0\n[silencedetect] silence_end: {end} | d\n"
            return subprocess.CompletedProcess(cmd, 0, b"", text.encode())
        if "matroska" in cmd and self.mux_returncode:
            return subprocess.CompletedProcess(cmd, self.mux_returncode, b"", b"mux failed")
        Path(cmd[-1]).write_bytes(b"data")
        return subprocess.CompletedProcess(cmd, 0, b"", b"")

    def mux_call(self):
        return next(c for c in self.calls if "matroska" in c)


@pytest.fixture
def inputs(tmp_path):
    video = tmp_path / "video.mp4"
    audio = tmp_path / "audio.flac"
    video.write_bytes(b"v")
    audio.write_bytes(b"a")
    return video, audio, tmp_path / "out" / "result.mkv"


def test_parse_leading_silence_reads_first_end():
    out = "silence_start: 0\nsilence_end: 0.25 | silence_duration: 0.25\n"
    assert parse_leading_silence(out) == 0.25


def test_parse_leading_silence_ignores_late_start():
    out = "silence_start: 3.5\nsilence_end: 4.0\n"
    assert parse_leading_silence(out) == 0.0


def test_parse_leading_silence_without_matches():
    assert parse_leading_silence("no silence here") == 0.0


def test_build_mux_args_defaults(tmp_path):
    args = build_mux_args("v.mp4", "a.flac", "o.mkv")
    assert args[:5] == ["-y", "-i", "v.mp4", "-i", "a.flac"]
    assert args[-3:] == ["-f", "matroska", "o.mkv"]
    assert args[args.index("-c:v") + 1] == "copy"
    assert args[args.index("-c:a") + 1] == "copy"
    assert "-itsoffset" not in args


def test_build_mux_args_no_overwrite_and_offset():
    args = build_mux_args("v.mp4", "a.flac", "o.mkv", MuxOptions(overwrite=False), 0.5)
    assert args[0] == "-n"
    i = args.index("-itsoffset")
    assert args[i + 1] == "0.500000"
    assert args[i + 2:i + 4] == ["-i", "a.flac"]


def test_build_mux_args_cover_only_when_present(tmp_path):
    cover = tmp_path / "cover.jpg"
    missing = build_mux_args("v", "a", "o", MuxOptions(cover_art_path=str(cover)))
    assert "2:0" not in missing
    cover.write_bytes(b"jpg")
    present = build_mux_args("v", "a", "o", MuxOptions(cover_art_path=str(cover)))
    assert "2:0" in present
    assert "attached_pic" in present


def test_build_mux_args_skips_empty_metadata():
    opts = MuxOptions(metadata={"title": "Song", "album": ""})
    args = build_mux_args("v", "a", "o", opts)
    assert "title=Song" in args
    assert not any(a.startswith("album=") for a in args)


def test_mux_missing_video_raises(tmp_path):
    audio = tmp_path / "a.flac"
    audio.write_bytes(b"a")
    with pytest.raises(FileNotFoundError):
        mux_video_audio(tmp_path / "nope.mp4", audio, tmp_path / "o.mkv")


def test_mux_delays_audio_when_video_has_more_silence(inputs):
    video, audio, output = inputs
    fake = FakeTools(video_silence=0.5)
    stages = []
    with mock.patch("subprocess.run", fake):
        mux_video_audio(video, audio, output, progress=lambda p, s: stages.append((p, s)))
    args = fake.mux_call()
    assert "-itsoffset" in args
    assert output.parent.is_dir()
    assert stages == [(0, "Preparing mux"), (10, "Starting FFmpeg"), (100, "Muxing complete")]


def test_mux_trims_audio_with_excess_silence(inputs):
    video, audio, output = inputs
    fake = FakeTools(audio_silence=0.5)
    with mock.patch("subprocess.run", fake):
        mux_video_audio(video, audio, output)
    trimmed = str(audio) + ".sync_trimmed.flac"
    assert trimmed in fake.mux_call()
    assert any(any(a.startswith("atrim") for a in c) for c in fake.calls)
    assert not Path(trimmed).exists()


def test_mux_ignores_small_differences(inputs):
    video, audio, output = inputs
    fake = FakeTools(video_silence=0.02)
    with mock.patch("subprocess.run", fake):
        mux_video_audio(video, audio, output)
    args = fake.mux_call()
    assert "-itsoffset" not in args
    assert str(audio) in args


def test_mux_failure_raises_mux_error(inputs):
    video, audio, output = inputs
    fake = FakeTools(mux_returncode=1)
    with mock.patch("subprocess.run", fake):
        with pytest.raises(MuxError) as info:
            mux_video_audio(video, audio, output)
    assert info.value.stderr == "mux failed"
    assert str(info.value).startswith("ffmpeg error:")
    assert "matroska" in info.value.arguments


def test_mux_video_with_flac_reports_result(inputs):
    video, audio, output = inputs
    probe = {
        str(video): {"streams": [{"codec_type": "video", "codec_name": "av1"}], "format": {}},
        str(audio): {"streams": [{"codec_type": "audio", "codec_name": "flac"}], "format": {}},
        str(output): {
            "streams": [
                {"codec_type": "video", "codec_name": "av1"},
                {"codec_type": "audio", "codec_name": "flac"},
            ],
            "format": {"duration": "12.5"},
        },
    }
    fake = FakeTools(probe=probe)
    stages = []
    meta = SimpleNamespace(title="Song", artist="Band", album="", year=2020, isrc="")
    with mock.patch("subprocess.run", fake):
        result = mux_video_with_flac(
            video, audio, output, meta, "", lambda p, s: stages.append((p, s))
        )
    assert result.output_path == str(output)
    assert result.duration == 12.5
    assert result.video_codec == "av1"
    assert result.audio_codec == "flac"
    assert result.has_metadata is True
    assert result.has_cover_art is False
    assert "date=2020" in fake.mux_call()
    assert stages[0] == (0, "Initializing")
    assert stages[-1] == (100, "Complete")
    percents = [p for p, _ in stages]
    assert percents == sorted(percents)


def test_mux_video_with_flac_requires_video_stream(inputs):
    video, audio, output = inputs
    probe = {
        str(video): {"streams": [{"codec_type": "audio", "codec_name": "opus"}], "format": {}},
        str(audio): {"streams": [{"codec_type": "audio", "codec_name": "flac"}], "format": {}},
    }
    with mock.patch("subprocess.run", FakeTools(probe=probe)):
        with pytest.raises(ValueError, match="no video stream"):
            mux_video_with_flac(video, audio, output)


def test_create_flac_reencodes_lossy_input(tmp_path):
    source = tmp_path / "audio.mp3"
    source.write_bytes(b"mp3")
    output = tmp_path / "out.flac"
    probe = {
        str(source): {"streams": [{"codec_type": "audio", "codec_name": "mp3"}], "format": {}},
        str(output): {"streams": [{"codec_type": "audio", "codec_name": "flac"}], "format": {"duration": "1.5"}},
    }
    fake = FakeTools(probe=probe)
    meta = SimpleNamespace(title="Song", artist="Band", album="", year=2020, isrc="")
    with mock.patch("subprocess.run", fake):
        result = create_flac_with_metadata(source, output, meta)
    call = next(c for c in fake.calls if "-map" in c)
    assert call[call.index("-compression_level") + 1] == "8"
    assert "TITLE=Song" in call
    assert "DATE=2020" in call
    assert result.audio_codec == "flac"
    assert result.duration == 1.5
    assert result.has_metadata is True


def test_create_flac_copies_flac_input(tmp_path):
    source = tmp_path / "audio.flac"
    source.write_bytes(b"flac")
    output = tmp_path / "out.flac"
    probe = {
        str(source): {"streams": [{"codec_type": "audio", "codec_name": "FLAC"}], "format": {}},
        str(output): {"streams": [{"codec_type": "audio", "codec_name": "flac"}], "format": {}},
    }
    fake = FakeTools(probe=probe)
    with mock.patch("subprocess.run", fake):
        result = create_flac_with_metadata(source, output)
    call = next(c for c in fake.calls if "-map" in c)
    assert call[call.index("-c:a") + 1] == "copy"
    assert result.has_metadata is False