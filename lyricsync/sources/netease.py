from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from lyricsync.errors import ParseFailure

from .base import FetchResult, HttpLyricsSource, require
from .types import TrackKey

logger = logging.getLogger(__name__)

NETEASE_API = "https://music.163.com/api"


@dataclass(frozen=True, slots=True)
class NeteaseSong:
    id: int
    name: str
    artists: tuple[str, ...]
    duration: float | None

    @classmethod
    def from_json(cls, data: Any) -> "NeteaseSong":
        src = "netease"
        artists = require(data, "artists", list, src)
        duration_ms = data.get("duration")
        return cls(
            id=require(data, "id", int, src),
            name=require(data, "name", str, src),
            artists=tuple(str(a.get("name", "")) for a in artists if isinstance(a, dict)),
            duration=duration_ms / 1000 if isinstance(duration_ms, (int, float)) else None,
        )


def _fold(s: str) -> str:
    return " ".join((s or "").lower().split())


class NeteaseSource(HttpLyricsSource):
    """
    Unofficial NetEase Cloud Music endpoints: search by title (artist is
    only used to break ties), then fetch the LRC body by song id.
    """

    name = "netease"

    def _search(self, track: TrackKey) -> list[NeteaseSong]:
        query = f"{track.title} {track.artist}".strip() if track.artist else track.title
        data = self._get_json(
            f"{NETEASE_API}/search/get/web",
            params={"s": query, "type": 1, "limit": 10, "offset": 0},
        )
        if data is None:
            return []
        require(data, "code", int, self.name)
        result = data.get("result")
        if result is None:
            return []
        if not isinstance(result, dict):
            raise ParseFailure(f"netease: 'result' has type {type(result).__name__}")
        songs = result.get("songs")
        if songs is None:
            return []
        if not isinstance(songs, list):
            raise ParseFailure("netease: 'songs' is not a list")
        out = []
        for item in songs:
            try:
                out.append(NeteaseSong.from_json(item))
            except ParseFailure as e:
                logger.debug("Skipping malformed netease hit: %s", e)
        return out

    def _pick(self, track: TrackKey, songs: list[NeteaseSong]) -> NeteaseSong | None:
        title = _fold(track.title)
        artist = _fold(track.artist)
        titled = [s for s in songs if _fold(s.name) == title]
        if not titled:
            return None
        if artist:
            for s in titled:
                if any(_fold(a) == artist or artist in _fold(a) or _fold(a) in artist for a in s.artists if a):
                    return s
            return None
        return titled[0]

    def _lyric(self, song_id: int) -> str | None:
        data = self._get_json(
            f"{NETEASE_API}/song/lyric",
            params={"id": song_id, "lv": 1, "kv": 1, "tv": -1},
        )
        if data is None:
            return None
        require(data, "code", int, self.name)
        if data.get("nolyric") or data.get("uncollected"):
            return None
        lrc = data.get("lrc")
        if lrc is None:
            return None
        text = require(lrc, "lyric", str, self.name)
        return text.rstrip() + "\n" if text.strip() else None

    def fetch(self, track: TrackKey) -> FetchResult:
        if not track.title:
            return FetchResult(self.name, definitive_not_found=True)
        song = self._pick(track, self._search(track))
        if song is None:
            return FetchResult(self.name, definitive_not_found=True)
        logger.debug("netease: matched %s (id=%s)", song.name, song.id)
        return FetchResult(self.name, lrc_text=self._lyric(song.id))
