from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Sequence

from lyricsync.cache.files import LyricCacheStore
from lyricsync.config import AppConfig
from lyricsync.errors import NetworkFailure, NotFound, ParseFailure
from lyricsync.lrc.model import SyncedLyrics
from lyricsync.lrc.parse import parse_lrc

from .base import HttpLyricsSource, LyricsSource
from .genius import GeniusSource
from .lrclib import LrcLibSearchSource, LrcLibSource
from .netease import NeteaseSource
from .types import SearchCandidate, TrackKey

logger = logging.getLogger(__name__)


class ResolutionStatus(enum.Enum):
    SYNCED = "synced"
    PLAIN = "plain"
    AMBIGUOUS = "ambiguous"
    NOT_FOUND = "not_found"


@dataclass(frozen=True, slots=True)
class Resolution:
    status: ResolutionStatus
    source: str | None = None
    document: SyncedLyrics | None = None
    plain_text: str | None = None
    candidates: tuple[SearchCandidate, ...] = ()

    @property
    def found(self) -> bool:
        return self.status in (ResolutionStatus.SYNCED, ResolutionStatus.PLAIN)

    @property
    def from_cache(self) -> bool:
        return self.source == "cache"


NOT_FOUND = Resolution(ResolutionStatus.NOT_FOUND)


class LyricsService:
    """
    Ordered lyric resolution: local cache, then each configured source until
    one yields timed lyrics. Plain text is only returned when no timed source
    had anything; the caller decides whether to estimate timing for it.
    """

    def __init__(self, cache: LyricCacheStore, sources: Sequence[LyricsSource]):
        self.cache = cache
        self.sources = list(sources)

    @classmethod
    def from_config(cls, cfg: AppConfig, cache: LyricCacheStore) -> "LyricsService":
        return cls(cache, cls._build_sources(cfg))

    @staticmethod
    def _build_sources(cfg: AppConfig) -> list[LyricsSource]:
        kwargs = dict(
            max_retries=cfg.api_max_retries,
            backoff_base_s=cfg.api_backoff_base_s,
            timeout_s=cfg.http_timeout_s,
        )
        known: dict[str, type[HttpLyricsSource]] = {
            "lrclib": LrcLibSource,
            "netease": NeteaseSource,
            "lrclib_search": LrcLibSearchSource,
            "genius": GeniusSource,
        }
        out: list[LyricsSource] = []
        for s in cfg.sources:
            name = s.strip().lower()
            src_cls = known.get(name)
            if src_cls is None:
                logger.info("Unknown source '%s' in config, skipping", s)
                continue
            out.append(src_cls(**kwargs))
        return out

    def cached(self, track: TrackKey) -> SyncedLyrics | None:
        rec = self.cache.get(track.artist, track.title)
        if rec is None:
            return None
        doc = parse_lrc(rec.raw_text)
        if doc.is_empty:
            # first-write-wins would keep a broken entry forever
            logger.warning("Dropping unparsable cache entry for %s", track.display)
            self.cache.delete(track.artist, track.title)
            return None
        return doc

    def resolve(self, artist: str, title: str, *, album: str = "", duration: float | None = None) -> Resolution:
        track = TrackKey(artist=artist, title=title, album=album, duration=duration)

        doc = self.cached(track)
        if doc is not None:
            logger.info("Cache hit for %s", track.display)
            return Resolution(ResolutionStatus.SYNCED, source="cache", document=doc)

        plain: tuple[str, str] | None = None
        for src in self.sources:
            try:
                res = src.fetch(track)
            except (NetworkFailure, ParseFailure) as e:
                logger.warning("%s failed for %s: %s", src.name, track.display, e)
                continue

            if res.lrc_text:
                doc = parse_lrc(res.lrc_text)
                if not doc.is_empty:
                    self.cache.put(track.artist, track.title, res.lrc_text)
                    logger.info("Timed lyrics for %s from %s", track.display, res.source)
                    return Resolution(ResolutionStatus.SYNCED, source=res.source, document=doc)
                logger.warning("%s returned LRC without usable timestamps", src.name)

            if res.plain_text and plain is None:
                plain = (res.plain_text, res.source)

            if res.candidates:
                return Resolution(
                    ResolutionStatus.AMBIGUOUS,
                    source=res.source,
                    candidates=res.candidates,
                    plain_text=plain[0] if plain else None,
                )

        if plain is not None:
            logger.info("Only plain lyrics for %s (from %s)", track.display, plain[1])
            return Resolution(ResolutionStatus.PLAIN, source=plain[1], plain_text=plain[0])

        logger.info("No lyrics for %s after %d sources", track.display, len(self.sources))
        return NOT_FOUND

    def search(self, query: str) -> list[SearchCandidate]:
        src = self._search_source()
        if src is None:
            return []
        return src.search(query)

    def select_candidate(self, artist: str, title: str, candidate: SearchCandidate) -> Resolution:
        """
        Finish a disambiguation: fetch the chosen candidate and cache it under
        the track it was chosen for.
        """
        src = self._search_source()
        if src is None:
            raise NotFound("No search-capable source configured")
        lrc = src.fetch_by_id(candidate.id)
        doc = parse_lrc(lrc) if lrc else None
        if lrc is None or doc is None or doc.is_empty:
            return NOT_FOUND
        self.cache.put(artist, title, lrc)
        return Resolution(ResolutionStatus.SYNCED, source=src.name, document=doc)

    def _search_source(self) -> LrcLibSearchSource | None:
        src = next((s for s in self.sources if isinstance(s, LrcLibSearchSource)), None)
        if src is None:
            logger.info("Search requested but no lrclib_search source is configured")
        return src
