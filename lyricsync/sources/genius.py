"""Plain lyrics from Genius: search API for the song page, then scrape it."""

from __future__ import annotations

import html
import logging
import re
from typing import Any

from bs4 import BeautifulSoup

from lyricsync.errors import ParseFailure

from .base import FetchResult, HttpLyricsSource, require
from .types import TrackKey

logger = logging.getLogger(__name__)

GENIUS_SEARCH = "https://genius.com/api/search/song"
BROWSER_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/143.0.0.0 Safari/537.36"
)

_SECTION_RE = re.compile(r"\[[^\]\n]*\]")
_BLANKS_RE = re.compile(r"\n{3,}")
_CONTAINER_CLASS_RE = re.compile(r"^Lyrics__Container")


def _fold(s: str) -> str:
    return re.sub(r"[^\w ]+", "", (s or "").lower()).strip()


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def clean_lyrics(text: str) -> str:
    """Decode entities and drop section markers like [Chorus] or [Verse 1: X]."""
    text = html.unescape(text)
    text = _SECTION_RE.sub("", text)
    lines = [ln.strip() for ln in text.splitlines()]
    text = "\n".join(lines).strip()
    return _BLANKS_RE.sub("\n\n", text)


def extract_lyrics(page: str) -> str | None:
    soup = BeautifulSoup(page, "html.parser")

    containers = soup.find_all("div", attrs={"data-lyrics-container": "true"})
    if not containers:
        # older markup: hashed class names, or the legacy single div
        containers = soup.find_all("div", class_=_CONTAINER_CLASS_RE) or soup.find_all("div", class_="lyrics")
    if not containers:
        return None

    parts: list[str] = []
    for box in containers:
        for junk in box.find_all(attrs={"data-exclude-from-selection": "true"}):
            junk.decompose()
        for br in box.find_all("br"):
            br.replace_with("\n")
        parts.append(box.get_text())

    text = clean_lyrics("\n".join(parts))
    return text or None


class GeniusSource(HttpLyricsSource):
    name = "genius"

    def _song_url(self, track: TrackKey) -> str | None:
        data = self._get_json(GENIUS_SEARCH, params={"q": f"{track.artist} {track.title}".strip(), "per_page": 5})
        if data is None:
            return None
        response = require(data, "response", dict, self.name)
        sections: list[Any] = require(response, "sections", list, self.name)

        want_title = _fold(track.title)
        want_artist = _fold(track.artist)
        fallback: str | None = None
        for section in sections:
            if not isinstance(section, dict):
                raise ParseFailure(f"genius: section has type {type(section).__name__}")
            if section.get("type") != "song":
                continue
            hits = require(section, "hits", list, self.name)
            for hit in hits:
                result = hit.get("result") if isinstance(hit, dict) else None
                if not isinstance(result, dict):
                    raise ParseFailure("genius: search hit without a result object")
                url = result.get("url")
                if not isinstance(url, str) or not url.endswith("-lyrics") or "/artists/" in url:
                    continue
                title = _fold(_text(result.get("title")))
                primary = result.get("primary_artist")
                artist = _fold(_text(primary.get("name")) if isinstance(primary, dict) else "")
                if title == want_title and (not want_artist or artist == want_artist):
                    return url
                if fallback is None and want_title and want_title in title:
                    fallback = url
        return fallback

    def fetch(self, track: TrackKey) -> FetchResult:
        url = self._song_url(track)
        if not url:
            return FetchResult(self.name, definitive_not_found=True)
        r = self._get(url, headers={"User-Agent": BROWSER_UA, "Accept": "text/html"})
        if r is None:
            return FetchResult(self.name, definitive_not_found=True)
        text = extract_lyrics(r.text)
        if not text:
            logger.warning("genius: no lyrics container on %s", url)
            return FetchResult(self.name)
        return FetchResult(self.name, plain_text=text + "\n")
