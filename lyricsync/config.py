from __future__ import annotations

import json
import logging
from dataclasses import dataclass
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_SOURCES = "lrclib,netease,lrclib_search,genius"


def _config_dir() -> Path:
    xdg = os.getenv("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "lyricsync"
    return Path.home() / ".config" / "lyricsync"


def _config_file() -> Path:
    return _config_dir() / "config.json"


@dataclass(frozen=True)
class AppConfig:
    # Storage
    data_dir: Path
    cache_dir: Path
    config_dir: Path
    token_path: Path
    shared_store_path: Path

    # Locale
    lang: str

    # Spotify OAuth
    client_id: str | None
    client_secret: str | None
    redirect_uri: str

    # Sources
    sources: tuple[str, ...]
    api_max_retries: int
    api_backoff_base_s: float
    http_timeout_s: float

    # Cache
    cache_ttl_days: float

    # Sync loop
    poll_interval_foreground_s: float
    poll_interval_background_s: float
    line_tick_s: float
    debounce_s: float
    seek_threshold_s: float
    autosync_lead_in_s: float
    heartbeat_s: float
    stale_after_s: float

    # Rendering
    context_lines: int  # lines above/below current
    use_alt_screen: bool


def load_config() -> AppConfig:
    # XDG base dir fallback
    xdg = os.getenv("XDG_CACHE_HOME")
    data_dir = Path(xdg) if xdg else Path.home() / ".cache"
    data_dir = data_dir / "lyricsync"

    sources_env = os.getenv("LYRICSYNC_SOURCES", DEFAULT_SOURCES)
    sources = tuple(s.strip() for s in sources_env.split(",") if s.strip())

    config_dir = _config_dir()
    stored = _read_config_json(config_dir)
    lang = _load_lang(stored)

    return AppConfig(
        data_dir=data_dir,
        cache_dir=data_dir / "lyrics",
        config_dir=config_dir,
        token_path=config_dir / "credentials.json",
        shared_store_path=data_dir / "shared.json",
        lang=lang,
        client_id=stored.get("client_id") or os.getenv("LYRICSYNC_CLIENT_ID") or None,
        client_secret=stored.get("client_secret") or os.getenv("LYRICSYNC_CLIENT_SECRET") or None,
        redirect_uri=os.getenv("LYRICSYNC_REDIRECT_URI", "http://127.0.0.1:8888/callback"),
        sources=sources,
        api_max_retries=int(os.getenv("LYRICSYNC_API_MAX_RETRIES", "2")),
        api_backoff_base_s=float(os.getenv("LYRICSYNC_API_BACKOFF_BASE", "1.0")),
        http_timeout_s=float(os.getenv("LYRICSYNC_HTTP_TIMEOUT", "10.0")),
        cache_ttl_days=float(os.getenv("LYRICSYNC_CACHE_TTL_DAYS", "30")),
        poll_interval_foreground_s=float(os.getenv("LYRICSYNC_POLL_INTERVAL", "1.0")),
        poll_interval_background_s=float(os.getenv("LYRICSYNC_POLL_INTERVAL_BACKGROUND", "2.0")),
        line_tick_s=0.1,
        debounce_s=0.1,
        seek_threshold_s=2.0,
        autosync_lead_in_s=1.5,
        heartbeat_s=float(os.getenv("LYRICSYNC_HEARTBEAT", "5.0")),
        stale_after_s=45.0,
        context_lines=int(os.getenv("LYRICSYNC_CONTEXT_LINES", "1")),
        use_alt_screen=os.getenv("LYRICSYNC_ALT_SCREEN", "1") not in ("0", "false", "False"),
    )


def _read_config_json(config_dir: Path) -> dict[str, Any]:
    cfg_path = config_dir / "config.json"
    if not cfg_path.exists():
        return {}
    try:
        data = json.loads(cfg_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable config %s: %s", cfg_path, e)
        return {}
    return data if isinstance(data, dict) else {}


def _load_lang(stored: dict[str, Any]) -> str:
    # Priority: config.json → LYRICSYNC_LANG → "EN"
    raw = str(stored.get("lang") or "").upper()
    if raw in ("RU", "EN"):
        return raw
    env_lang = os.getenv("LYRICSYNC_LANG")
    if env_lang and env_lang.upper() in ("RU", "EN"):
        return env_lang.upper()
    return "EN"


def save_config_value(key: str, value: str) -> Path:
    cfg_path = _config_file()
    cfg_path.parent.mkdir(parents=True, exist_ok=True)
    data = _read_config_json(cfg_path.parent)
    data[key] = value.upper() if key == "lang" else value
    cfg_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    return cfg_path


def save_config_lang(lang: str) -> None:
    save_config_value("lang", lang)
