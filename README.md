# youflac

A library for building lossless music-video files. It looks up and downloads
FLAC audio for a track, judges how good that audio really is, converts audio
between formats, and muxes FLAC with a video into an MKV using FFmpeg. It also
keeps a download history and a configuration file on disk.

FFmpeg and FFprobe must be installed. Each is looked for first in
`~/.youflac/bin` and then on `PATH` (`youflac.ffmpeg.get_ffmpeg_path()`,
`get_ffprobe_path()`).

## Installation

```
pip install youflac
```

To run the test suite:

```
pip install "youflac[test]"
pytest
```

## Configuration

```python
from youflac.config import load_config_with_env, save_config

config = load_config_with_env()
config.theme = "dark"
save_config(config)
```

`Config` is a dataclass; `get_default_config()` returns the defaults. The
settings are stored as `config.json`, in `CONFIG_DIR` when that variable is set
and otherwise in the user configuration directory under `youflac`. A missing
file gives the defaults.

`load_config_with_env()` lets environment variables override the file, among
them `OUTPUT_DIR`, `VIDEO_QUALITY`, `CONCURRENT_DOWNLOADS` (1 to 10),
`NAMING_TEMPLATE`, `AUDIO_SOURCE_PRIORITY` (comma separated), `PROXY_URL`,
`DOWNLOAD_TIMEOUT_MINUTES`, `FETCH_CACHE_ENABLED` and `FETCH_CACHE_TTL`. It
also reconfigures the shared metadata cache (`youflac.fetch_cache`).
`NAMING_TEMPLATE` accepts a preset name (`jellyfin`, `plex`, `flat`, `album`,
`year`, `album tracks`, `genre`, `date`) or a template string such as
`{artist}/{title}`; see `resolve_naming_template()`.

`set_data_dir()` overrides the data directory used by `get_data_dir()` and
`get_data_path()`.

## Muxing a video with FLAC audio

```python
from youflac.mux import mux_video_with_flac

result = mux_video_with_flac(
    "clip.mp4", "track.flac", "out/Artist - Title.mkv",
    metadata=None, cover_path="cover.jpg",
    progress=lambda pct, stage: print(f"{pct:5.1f}% {stage}"),
)
print(result.output_path, result.duration, result.file_size)
```

`metadata` may be any object with `title`, `artist`, `album`, `year` and
`isrc` attributes; they are written as tags. Before muxing, the leading silence
of the video's own audio is compared with that of the FLAC. When they differ by
more than 50 ms, the FLAC is either delayed (`-itsoffset`) or its excess
silence is trimmed so that sound and picture stay in sync. The streams are
copied, not re-encoded.

For audio-only output, `create_flac_with_metadata()` writes a tagged FLAC with
an optional embedded cover. `youflac.ffmpeg` has the smaller tools:
`get_media_info()`, `extract_audio_stream()`, `extract_video_stream()`,
`convert_to_mkv()`, `download_thumbnail()`, `format_duration()` and
`format_file_size()`. Failures raise `FFmpegError` (`MuxError` for the mux).

## Analysing audio quality

```python
from youflac.analyzer import analyze_audio

analysis = analyze_audio("track.flac")
print(analysis.quality_score, analysis.quality_rating, analysis.quality_badge())
print(analysis.issues, analysis.is_hi_res())
```

The score runs from 0 to 100 and is rated Excellent, Good, Fair or Poor. A
lossless file whose bitrate is very low for its sample rate, bit depth and
channels is flagged as possible fake lossless. `generate_spectrogram()` and
`generate_waveform()` render images with FFmpeg; `get_audio_fingerprint()`
needs chromaprint's `fpcalc`.

## Converting

```python
from youflac.converter import ConvertRequest, convert_audio
from youflac.converter_directory import ConvertDirOptions, convert_directory

convert_audio(ConvertRequest(source_path="track.flac", target_format="mp3"))
convert_directory(ConvertDirOptions(dir="library", target_format="ogg"), print, None)
```

The supported targets are `mp3`, `wav`, `aac`, `ogg`, `alac` (written as
`.m4a`) and `flac`. Output goes next to the source. `convert_directory()`
reports each file and then a summary to its callback; pass a
`threading.Event` as the third argument to stop it, which raises
`ConversionCancelled` before the next file.

## Finding lossless sources

```python
from youflac.tidal import TidalHifiService, extract_tidal_id
from youflac.amazon import parse_amazon_url

extract_tidal_id("https://tidal.com/browse/track/12345")   # 12345
parse_amazon_url("https://music.amazon.com/albums/B0ABC")  # ("B0ABC", "album")
```

`LucidaService`, `TidalHifiService` and `OrpheusDLService` share the
`AudioDownloadService` interface (`get_track_info`, `download`,
`supports_format`, `is_available`) and raise `DownloadError` on failure.
`OrpheusDLService` runs the external `rip` (streamrip) or `orpheusdl` tools.
`UnifiedAudioDownloader` tries its services in order and returns the first
download that succeeds; by default it uses `LucidaService` alone.
`youflac.amazon` downloads Amazon Music links through it.

HTTP requests go through `youflac.httpclient.new_http_client()`, which honours
`PROXY_URL` (http, https or socks5).

## History

```python
from youflac.history import History

history = History()
for entry in history.recent(10):
    print(entry.title, entry.status)
```

The history is kept newest first in `history.json` in the data directory and
can be searched, filtered, grouped by date and summarised with `stats()`.

## What the package does not do

- It has no command-line program and no download queue or scheduler; it is a
  library to be called from one.
- It does not fetch videos or their metadata from YouTube, and it does not
  check whether a video is available. `youflac.availability` only classifies
  an error message into a reason such as `private` or `geo_blocked`.
- It does not resolve a link on one platform to the same track on another.
- It does not install FFmpeg, and it does not write chapter markers into MKV
  files.