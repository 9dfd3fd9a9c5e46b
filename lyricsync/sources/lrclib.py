from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from lyricsync.errors import ParseFailure

from .base import FetchResult, HttpLyricsSource, require
from .ranking import rank_candidates, single_best
from .types import SearchCandidate, TrackKey

logger = logging.getLogger(__name__)

LRCLIB_API = "https://lrclib.net/api"


@dataclass(frozen=True, slots=True)
class LrcLibRecord:
    id: int
    track_name: str
    artist_name: str
    album_name: str
    duration: float | None
    instrumental: bool
    plain_lyrics: str | None
    synced_lyrics: str | None

    @classmethod
    def from_json(cls, data: Any) -> "LrcLibRecord":
        src = "lrclib"
        synced = require(data, "syncedLyrics", (str, type(None)), src)
        plain = require(data, "plainLyrics", (str, type(None)), src)
        duration = data.get("duration")
        return cls(
            id=require(data, "id", int, src),
            track_name=require(data, "trackName", str, src),
            artist_name=require(data, "artistName", str, src),
            album_name=data.get("albumName") or "",
            duration=float(duration) if isinstance(duration, (int, float)) else None,
            instrumental=bool(data.get("instrumental", False)),
            plain_lyrics=plain.rstrip() + "\n" if plain and plain.strip() else None,
            synced_lyrics=synced.rstrip() + "\n" if synced and synced.strip() else None,
        )

    def to_candidate(self) -> SearchCandidate:
        return SearchCandidate(
            id=self.id,
            name=self.track_name,
            artist_name=self.artist_name,
            album_name=self.album_name,
            duration=self.duration,
            instrumental=self.instrumental,
        )


class LrcLibSource(HttpLyricsSource):
    """Timed lyrics looked up by exact track metadata (/api/get)."""

    name = "lrclib"

    def fetch(self, track: TrackKey) -> FetchResult:
        params: dict[str, Any] = {
            "artist_name": track.artist,
            "track_name": track.title,
        }
        if track.album:
            params["album_name"] = track.album
        if track.duration:
            params["duration"] = int(round(track.duration))

        data = self._get_json(f"{LRCLIB_API}/get", params=params)
        if data is None:
            return FetchResult(self.name, definitive_not_found=True)
        rec = LrcLibRecord.from_json(data)
        if rec.instrumental:
            logger.info("lrclib: %s is instrumental", track.display)
            return FetchResult(self.name, definitive_not_found=True)
        return FetchResult(self.name, lrc_text=rec.synced_lyrics, plain_text=rec.plain_lyrics)


class LrcLibSearchSource(HttpLyricsSource):
    """
    Free-text search (/api/search?q=). A single best candidate is fetched by
    id (/api/get/{id}); several plausible ones are handed back ranked.
    """

    name = "lrclib_search"

    def search(self, query: str) -> list[SearchCandidate]:
        if not query.strip():
            return []
        data = self._get_json(f"{LRCLIB_API}/search", params={"q": query})
        if data is None:
            return []
        if not isinstance(data, list):
            raise ParseFailure("lrclib_search: expected a JSON array")

        out: list[SearchCandidate] = []
        for item in data:
            try:
                rec = LrcLibRecord.from_json(item)
            except ParseFailure as e:
                logger.debug("Skipping malformed search hit: %s", e)
                continue
            if rec.synced_lyrics or rec.plain_lyrics or rec.instrumental:
                out.append(rec.to_candidate())
        return out

    def fetch_by_id(self, candidate_id: int) -> str | None:
        data = self._get_json(f"{LRCLIB_API}/get/{int(candidate_id)}")
        if data is None:
            return None
        return LrcLibRecord.from_json(data).synced_lyrics

    def fetch(self, track: TrackKey) -> FetchResult:
        query = f"{track.artist} {track.title}".strip()
        candidates = [c for c in self.search(query) if not c.instrumental]
        if not candidates:
            return FetchResult(self.name, definitive_not_found=True)

        ranked = rank_candidates(track, candidates)
        best = single_best(ranked)
        if best is None:
            logger.info("lrclib_search: %d candidates for %s, asking the user", len(ranked), track.display)
            return FetchResult(self.name, candidates=tuple(ranked))

        logger.info("lrclib_search: auto-selected %s (id=%s)", best.display, best.id)
        lrc = self.fetch_by_id(best.id)
        if not lrc:
            return FetchResult(self.name)
        return FetchResult(self.name, lrc_text=lrc)
