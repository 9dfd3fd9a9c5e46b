from __future__ import annotations

import json
import logging
from importlib.resources import files

logger = logging.getLogger(__name__)

SUPPORTED_LANGS = ("en", "ru")

_current_lang = "en"
_strings: dict[str, str] = {}
_fallback: dict[str, str] = {}


def _normalize(lang: str | None) -> str:
    lang_lower = (lang or "en").lower()
    return lang_lower if lang_lower in SUPPORTED_LANGS else "en"


def _load_locale(lang: str) -> dict[str, str]:
    try:
        path = files("lyricsync.i18n") / f"{lang}.json"
        return dict(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError) as e:
        logger.warning("Locale '%s' could not be loaded: %s", lang, e)
        return {}


def set_lang(lang: str | None) -> None:
    global _current_lang, _strings, _fallback
    _current_lang = _normalize(lang)
    _strings = _load_locale(_current_lang)
    if not _fallback:
        _fallback = _strings if _current_lang == "en" else _load_locale("en")


def current_lang() -> str:
    return _current_lang


def t(key: str, **kwargs: str | int) -> str:
    """Status string for ``key``; missing keys fall back to English, then to the key."""
    s = _strings.get(key) or _fallback.get(key) or key
    if kwargs:
        try:
            return s.format(**kwargs)
        except KeyError:
            return s
    return s


# Load default on import
set_lang("en")
