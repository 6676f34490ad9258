"""Audio quality analysis: probing, lossless checks, scoring and visualisations."""

from __future__ import annotations

import json
import math
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .ffmpeg import get_ffmpeg_path, get_ffprobe_path

_LOSSLESS_CODECS = frozenset({"flac", "alac", "wav", "pcm_s16le", "pcm_s24le"})

_LOSSY_PENALTIES = {"aac": 20, "mp3": 30, "opus": 15, "vorbis": 25}

_SPECTROGRAM_FILTER = (
    "showspectrumpic=s=1024x512:mode=combined:color=intensity:"
    "scale=log:fscale=lin:saturation=1:win_func=hann"
)
_WAVEFORM_FILTER = "showwavespic=s=1024x256:colors=0x00ff00"


class AnalysisError(RuntimeError):
    """Probing or analysing an audio file failed."""


def _decode(data: Any) -> str:
    if data is None:
        return ""
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).decode("utf-8", errors="replace")
    return str(data)


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value
        if text[:1] in "+-":
            text = text[1:]
        if text.isdigit() and text.isascii():
            return int(value)
    return None


def _to_float(value: Any) -> Optional[float]:
    if not isinstance(value, str) or not value or value != value.strip() or "_" in value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


@dataclass
class AudioAnalysis:
    """Technical details of an audio file and a judgement of its quality."""

    file_path: str = ""
    file_name: str = ""
    codec: str = ""
    codec_long: str = ""
    bitrate: int = 0
    sample_rate: int = 0
    bits_per_sample: int = 0
    channels: int = 0
    duration: float = 0.0
    file_size: int = 0
    is_true_lossless: bool = False
    fake_lossless: bool = False
    quality_score: int = 0
    quality_rating: str = ""
    issues: List[str] = field(default_factory=list)
    spectrogram_path: str = ""
    format: str = ""
    profile: str = ""
    max_freq: int = 0

    def apply_probe(self, probe_data: Mapping[str, Any]) -> None:
        """Fill stream details from decoded ffprobe JSON of the first audio stream."""
        if not isinstance(probe_data, Mapping):
            raise AnalysisError("failed to parse ffprobe output: not a JSON object")
        streams = probe_data.get("streams") or []
        if not streams or not isinstance(streams[0], Mapping):
            raise AnalysisError("no audio stream found")
        stream = streams[0]
        fmt = probe_data.get("format") or {}

        self.codec = _as_str(stream.get("codec_name"))
        self.codec_long = _as_str(stream.get("codec_long_name"))
        self.profile = _as_str(stream.get("profile"))
        self.format = _as_str(fmt.get("format_name"))
        channels = stream.get("channels")
        self.channels = channels if isinstance(channels, int) and not isinstance(channels, bool) else 0

        bps = _to_int(stream.get("bits_per_raw_sample"))
        if bps is not None:
            self.bits_per_sample = bps
        sample_rate = _to_int(stream.get("sample_rate"))
        if sample_rate is not None:
            self.sample_rate = sample_rate

        bitrate = _to_int(stream.get("bit_rate"))
        if bitrate is None:
            bitrate = _to_int(fmt.get("bit_rate"))
        if bitrate is not None:
            self.bitrate = bitrate

        duration = _to_float(stream.get("duration"))
        if duration is None:
            duration = _to_float(fmt.get("duration"))
        if duration is not None:
            self.duration = duration

        if self.bits_per_sample == 0 and "flac" in self.codec.lower():
            self.bits_per_sample = self._estimate_flac_depth()

    def _estimate_flac_depth(self) -> int:
        if self.duration <= 0 or self.file_size <= 0:
            return 16
        denominator = float(self.channels) * float(self.sample_rate)
        per_second = float(self.file_size * 8) / self.duration
        bits = math.inf if denominator == 0 else per_second / denominator
        return 24 if bits > 20 else 16

    @property
    def _is_lossless_codec(self) -> bool:
        return self.codec.lower() in _LOSSLESS_CODECS

    def analyze_quality(self) -> None:
        """Record common quality issues and mark lossless codecs."""
        self.issues = []
        lossless = self._is_lossless_codec
        if not lossless:
            self.issues.append(f"Lossy codec detected: {self.codec}")
        else:
            self.is_true_lossless = True

        if self.sample_rate < 44100:
            self.issues.append(
                f"Low sample rate: {self.sample_rate} Hz (standard is 44.1kHz+)"
            )
        if lossless and self.bits_per_sample < 16:
            self.issues.append(f"Unusual bit depth: {self.bits_per_sample}-bit")
        if self.channels < 2:
            self.issues.append("Mono audio")
        if not lossless and 0 < self.bitrate < 128000:
            self.issues.append(f"Low bitrate: {self.bitrate // 1000} kbps")

    def check_compression(self) -> None:
        """Flag lossless files whose bitrate is suspiciously low for their format."""
        if not self.is_true_lossless:
            return
        if self.sample_rate >= 44100:
            expected_min = self.sample_rate * self.bits_per_sample * self.channels // 2
            if 0 < self.bitrate < expected_min // 3:
                self.fake_lossless = True
                self.is_true_lossless = False
                self.issues.append(
                    "Possible fake lossless: unusually high compression ratio"
                )
        self.max_freq = self.sample_rate // 2

    def calculate_quality_score(self) -> None:
        """Compute a 0-100 score and its rating."""
        score = 100
        codec = self.codec.lower()
        if codec in ("flac", "alac") or codec == "wav" or codec.startswith("pcm"):
            pass
        else:
            score -= _LOSSY_PENALTIES.get(codec, 10)

        if self.sample_rate >= 96000:
            score += 5
        elif self.sample_rate >= 44100:
            pass
        elif self.sample_rate >= 22050:
            score -= 20
        else:
            score -= 40

        if self.is_true_lossless:
            if self.bits_per_sample >= 24:
                score += 5
            elif self.bits_per_sample < 16:
                score -= 10

        if not self.is_true_lossless and self.bitrate > 0:
            if self.bitrate >= 320000:
                pass
            elif self.bitrate >= 256000:
                score -= 5
            elif self.bitrate >= 192000:
                score -= 10
            elif self.bitrate >= 128000:
                score -= 20
            else:
                score -= 30

        if self.fake_lossless:
            score -= 30
        score -= len(self.issues) * 5
        score = max(0, min(100, score))

        self.quality_score = score
        if score >= 90:
            self.quality_rating = "Excellent"
        elif score >= 75:
            self.quality_rating = "Good"
        elif score >= 50:
            self.quality_rating = "Fair"
        else:
            self.quality_rating = "Poor"

    def is_hi_res(self) -> bool:
        """True lossless and better than CD quality (16-bit/44.1kHz)."""
        return self.is_true_lossless and (
            self.sample_rate > 44100 or self.bits_per_sample > 16
        )

    def quality_badge(self) -> str:
        """Short label describing the quality."""
        if self.fake_lossless:
            return "Fake Lossless"
        if self.is_hi_res():
            return f"Hi-Res {self.bits_per_sample}/{self.sample_rate // 1000}"
        if self.is_true_lossless:
            return "Lossless"
        if self.bitrate > 0:
            return f"{self.codec.upper()} {self.bitrate // 1000}"
        return self.codec.upper()

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {
            "filePath": self.file_path,
            "fileName": self.file_name,
            "codec": self.codec,
            "codecLong": self.codec_long,
            "bitrate": self.bitrate,
            "sampleRate": self.sample_rate,
            "bitsPerSample": self.bits_per_sample,
            "channels": self.channels,
            "duration": self.duration,
            "fileSize": self.file_size,
            "isTrueLossless": self.is_true_lossless,
            "fakeLossless": self.fake_lossless,
            "qualityScore": self.quality_score,
            "qualityRating": self.quality_rating,
        }
        if self.issues:
            data["issues"] = list(self.issues)
        if self.spectrogram_path:
            data["spectrogramPath"] = self.spectrogram_path
        data["format"] = self.format
        if self.profile:
            data["profile"] = self.profile
        if self.max_freq:
            data["maxFreq"] = self.max_freq
        return data


def _run(cmd: Sequence[str], what: str) -> subprocess.CompletedProcess:
    try:
        proc = subprocess.run(list(cmd), capture_output=True)
    except OSError as exc:
        raise AnalysisError(f"{what} failed: {exc}") from exc
    if proc.returncode != 0:
        raise AnalysisError(
            f"{what} failed: exit status {proc.returncode} - {_decode(proc.stderr)}"
        )
    return proc


def analyze_audio(file_path: "str | os.PathLike[str]") -> AudioAnalysis:
    """Probe a file with ffprobe and judge its quality."""
    path = os.fspath(file_path)
    try:
        stat = os.stat(path)
    except OSError as exc:
        raise FileNotFoundError(f"file not found: {exc}") from exc

    analysis = AudioAnalysis(
        file_path=path, file_name=os.path.basename(path), file_size=stat.st_size
    )
    args = [
        get_ffprobe_path(),
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        "-select_streams", "a:0",
        path,
    ]
    try:
        proc = _run(args, "ffprobe")
        try:
            data = json.loads(_decode(proc.stdout))
        except ValueError as exc:
            raise AnalysisError(f"failed to parse ffprobe output: {exc}") from exc
        analysis.apply_probe(data)
    except AnalysisError as exc:
        raise AnalysisError(f"failed to probe file: {exc}") from exc

    analysis.analyze_quality()
    analysis.check_compression()
    analysis.calculate_quality_score()
    return analysis


def _render(input_path: Any, output_path: Any, lavfi: str, what: str) -> None:
    output = os.fspath(output_path)
    try:
        os.makedirs(os.path.dirname(output) or ".", exist_ok=True)
    except OSError as exc:
        raise AnalysisError(f"failed to create output directory: {exc}") from exc
    cmd = [
        get_ffmpeg_path(), "-y",
        "-i", os.fspath(input_path),
        "-lavfi", lavfi,
        "-frames:v", "1",
        output,
    ]
    _run(cmd, what)


def generate_spectrogram(input_path: "str | os.PathLike[str]", output_path: "str | os.PathLike[str]") -> None:
    """Render a spectrogram image of the audio."""
    _render(input_path, output_path, _SPECTROGRAM_FILTER, "spectrogram generation")


def generate_waveform(input_path: "str | os.PathLike[str]", output_path: "str | os.PathLike[str]") -> None:
    """Render a waveform image of the audio."""
    _render(input_path, output_path, _WAVEFORM_FILTER, "waveform generation")


def get_audio_fingerprint(file_path: "str | os.PathLike[str]") -> str:
    """Acoustic fingerprint from chromaprint's fpcalc."""
    fpcalc = shutil.which("fpcalc")
    if not fpcalc:
        raise AnalysisError("chromaprint (fpcalc) not installed")
    proc = _run([fpcalc, "-json", os.fspath(file_path)], "fingerprint generation")
    try:
        data = json.loads(_decode(proc.stdout))
    except ValueError as exc:
        raise AnalysisError(f"failed to parse fingerprint: {exc}") from exc
    if not isinstance(data, Mapping):
        raise AnalysisError("failed to parse fingerprint: not a JSON object")
    return _as_str(data.get("fingerprint"))


def format_bit_depth(bits: int) -> str:
    if bits <= 0:
        return "Unknown"
    return f"{bits}-bit"


def format_sample_rate(hz: int) -> str:
    if hz <= 0:
        return "Unknown"
    if hz >= 1000:
        return f"{hz / 1000:.1f} kHz"
    return f"{hz} Hz"


def format_bitrate(bps: int) -> str:
    if bps <= 0:
        return "Unknown"
    if bps >= 1000000:
        return f"{bps / 1000000:.1f} Mbps"
    if bps >= 1000:
        return f"{bps // 1000} kbps"
    return f"{bps} bps"