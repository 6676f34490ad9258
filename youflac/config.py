"""Application configuration, data paths and environment overrides."""

from __future__ import annotations

import json
import os
import re
import sys
import tempfile
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, List, Mapping, Optional

from .fetch_cache import configure_fetch_cache

_APP_NAME = "youflac"
_data_dir = ""


def _field(kind: type) -> Any:
    meta = {"kind": kind}
    if kind is list:
        return field(default_factory=list, metadata=meta)
    return field(default=kind(), metadata=meta)


def _json_name(attr: str) -> str:
    """The on-disk key for an attribute: snake_case becomes camelCase."""
    head, *rest = attr.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


@dataclass
class Config:
    """User settings. A bare Config() holds zero values; see get_default_config()."""

    output_directory: str = _field(str)
    video_quality: str = _field(str)
    audio_source_priority: List[str] = _field(list)
    naming_template: str = _field(str)
    generate_nfo: bool = _field(bool)
    concurrent_downloads: int = _field(int)
    embed_cover_art: bool = _field(bool)
    theme: str = _field(str)
    cookies_browser: str = _field(str)
    accent_color: str = _field(str)
    sound_effects_enabled: bool = _field(bool)
    lyrics_enabled: bool = _field(bool)
    lyrics_embed_mode: str = _field(str)
    log_level: str = _field(str)
    proxy_url: str = _field(str)
    auto_proxy_fallback: bool = _field(bool)
    download_timeout_minutes: float = _field(float)
    preferred_quality: str = _field(str)
    generate_m3u8: bool = _field(bool)
    skip_explicit: bool = _field(bool)
    sound_volume: int = _field(int)
    save_cover_file: bool = _field(bool)
    first_artist_only: bool = _field(bool)
    artist_separator: str = _field(str)
    auto_quality_fallback: bool = _field(bool)
    search_results_limit: int = _field(int)
    qobuz_app_id: str = _field(str)
    qobuz_app_secret: str = _field(str)
    qobuz_user_token: str = _field(str)
    fetch_cache_enabled: bool = _field(bool)
    fetch_cache_ttl_seconds: int = _field(int)
    quality_fallback_order: List[str] = _field(list)
    ui_font: str = _field(str)

    def to_dict(self) -> dict:
        """JSON-ready mapping with the on-disk key names."""
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            result[_json_name(f.name)] = list(value) if isinstance(value, list) else value
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Config":
        """Build from on-disk keys; absent or null keys keep their zero value."""
        if not isinstance(data, Mapping):
            raise ValueError("config must be a JSON object")
        values = {}
        for f in fields(cls):
            key = _json_name(f.name)
            raw = data.get(key)
            if raw is None:
                continue
            values[f.name] = _coerce(key, raw, f.metadata["kind"])
        return cls(**values)


def _coerce(key: str, value: Any, kind: type) -> Any:
    if kind is bool:
        ok = isinstance(value, bool)
    elif kind is int:
        ok = isinstance(value, int) and not isinstance(value, bool)
    elif kind is float:
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
        if ok:
            value = float(value)
    elif kind is str:
        ok = isinstance(value, str)
    else:
        ok = isinstance(value, list) and all(isinstance(v, str) for v in value)
        if ok:
            value = list(value)
    if not ok:
        raise ValueError(
            f"config field {key!r}: expected {kind.__name__}, got {type(value).__name__}"
        )
    return value


def get_default_config() -> Config:
    """A fresh copy of the default settings."""
    return Config(
        output_directory="",
        video_quality="best",
        audio_source_priority=["tidal", "qobuz", "amazon"],
        naming_template="{artist}/{title}/{title}",
        generate_nfo=True,
        concurrent_downloads=2,
        embed_cover_art=True,
        theme="system",
        accent_color="pink",
        sound_effects_enabled=True,
        lyrics_enabled=False,
        lyrics_embed_mode="lrc",
        log_level="info",
        proxy_url="",
        auto_proxy_fallback=True,
        download_timeout_minutes=10.0,
        preferred_quality="highest",
        generate_m3u8=False,
        skip_explicit=False,
        sound_volume=70,
        save_cover_file=False,
        first_artist_only=False,
        artist_separator="; ",
        auto_quality_fallback=True,
        search_results_limit=10,
        fetch_cache_enabled=True,
        fetch_cache_ttl_seconds=3600,
        quality_fallback_order=["highest", "24bit", "16bit"],
        ui_font="outfit",
    )


def _user_config_dir() -> Optional[Path]:
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA", "")
        return Path(appdata) if appdata else None
    home = os.environ.get("HOME", "")
    if sys.platform == "darwin":
        return Path(home, "Library", "Application Support") if home else None
    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    if xdg:
        return Path(xdg) if os.path.isabs(xdg) else None
    return Path(home, ".config") if home else None


def _home_dir() -> Path:
    name = "USERPROFILE" if sys.platform == "win32" else "HOME"
    return Path(os.environ.get(name, ""))


def set_data_dir(directory: "str | os.PathLike[str]") -> None:
    """Override the data directory used by the path helpers; empty clears it."""
    global _data_dir
    _data_dir = os.fspath(directory)


def get_data_dir() -> Path:
    """The configured data directory, else the user config dir, else the temp dir."""
    if _data_dir:
        return Path(_data_dir)
    base = _user_config_dir()
    if base is None:
        return Path(tempfile.gettempdir()) / _APP_NAME
    return base / _APP_NAME


def get_config_path() -> Path:
    return (_user_config_dir() or Path("")) / _APP_NAME / "config.json"


def get_data_path() -> Path:
    """The data directory override, else ~/.youflac."""
    if _data_dir:
        return Path(_data_dir)
    return _home_dir() / ".youflac"


def get_bin_path() -> Path:
    return get_data_path() / "bin"


def get_config_path_with_env() -> Path:
    directory = os.environ.get("CONFIG_DIR", "")
    if directory:
        return Path(directory) / "config.json"
    return get_config_path()


def get_data_path_with_env() -> Path:
    directory = os.environ.get("CONFIG_DIR", "")
    if directory:
        return Path(directory)
    return get_data_path()


def load_config() -> Config:
    """Read the config file; a missing file yields the defaults."""
    path = get_config_path_with_env()
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return get_default_config()
    return Config.from_dict(json.loads(text))


def save_config(config: Config) -> None:
    path = get_config_path_with_env()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(config.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8"
    )


def get_default_output_directory() -> Path:
    directory = os.environ.get("OUTPUT_DIR", "")
    if directory:
        return Path(directory)
    return _home_dir() / "MusicVideos"


_NAMING_TEMPLATES = {
    "jellyfin": "{artist}/{title}/{title}",
    "plex": "{artist}/{title}",
    "flat": "{artist} - {title}",
    "album": "{artist}/{album}/{title}",
    "year": "{year}/{artist} - {title}",
    "album tracks": "{artist} - {album}/{track} {title}",
    "genre": "{genre}/{artist}/{title}",
    "date": "{date}/{artist} - {title}",
}


def resolve_naming_template(template: str) -> str:
    """Map a template name to its pattern; other strings pass through unchanged."""
    return _NAMING_TEMPLATES.get(template.lower(), template)


_INT_RE = re.compile(r"[+-]?[0-9]+")


def _parse_int(text: str) -> Optional[int]:
    return int(text) if _INT_RE.fullmatch(text) else None


def _parse_float(text: str) -> Optional[float]:
    if text != text.strip() or "_" in text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _env_bool(value: str) -> bool:
    return value.lower() == "true" or value == "1"


def load_config_with_env() -> Config:
    """Load the config file (or defaults) and apply environment overrides."""
    try:
        config = load_config()
    except (OSError, ValueError):
        config = get_default_config()

    env = os.environ
    if v := env.get("OUTPUT_DIR", ""):
        config.output_directory = v
    if v := env.get("VIDEO_QUALITY", ""):
        config.video_quality = v
    if v := env.get("CONCURRENT_DOWNLOADS", ""):
        n = _parse_int(v)
        if n is not None and 0 < n <= 10:
            config.concurrent_downloads = n
    if v := env.get("NAMING_TEMPLATE", ""):
        config.naming_template = resolve_naming_template(v)
    if v := env.get("GENERATE_NFO", ""):
        config.generate_nfo = _env_bool(v)
    if v := env.get("EMBED_COVER_ART", ""):
        config.embed_cover_art = _env_bool(v)
    if v := env.get("THEME", ""):
        config.theme = v
    if v := env.get("ACCENT_COLOR", ""):
        config.accent_color = v
    if v := env.get("SOUND_EFFECTS_ENABLED", ""):
        config.sound_effects_enabled = _env_bool(v)
    if v := env.get("LYRICS_ENABLED", ""):
        config.lyrics_enabled = _env_bool(v)
    if v := env.get("LYRICS_EMBED_MODE", ""):
        config.lyrics_embed_mode = v
    if v := env.get("COOKIES_BROWSER", ""):
        config.cookies_browser = v
    if v := env.get("AUDIO_SOURCE_PRIORITY", ""):
        config.audio_source_priority = [s.strip() for s in v.split(",")]
    if v := env.get("LOG_LEVEL", ""):
        config.log_level = v
    if v := env.get("PROXY_URL", ""):
        config.proxy_url = v
    if v := env.get("AUTO_PROXY_FALLBACK", ""):
        config.auto_proxy_fallback = _env_bool(v)
    if v := env.get("DOWNLOAD_TIMEOUT_MINUTES", ""):
        f = _parse_float(v)
        if f is not None and f > 0:
            config.download_timeout_minutes = f
    if v := env.get("FETCH_CACHE_ENABLED", ""):
        config.fetch_cache_enabled = _env_bool(v)
    if v := env.get("FETCH_CACHE_TTL", ""):
        n = _parse_int(v)
        if n is not None and n > 0:
            config.fetch_cache_ttl_seconds = n

    configure_fetch_cache(config.fetch_cache_enabled, config.fetch_cache_ttl_seconds)
    return config