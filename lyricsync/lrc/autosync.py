from __future__ import annotations

import logging

from lyricsync.errors import PreconditionFailed

from .model import LyricLine, SyncedLyrics

logger = logging.getLogger(__name__)

DEFAULT_LEAD_IN_S = 1.5


def generate_timing(text: str, duration: float, lead_in: float = DEFAULT_LEAD_IN_S) -> SyncedLyrics:
    """
    Best-effort timing for plain lyrics: each line gets a share of the track
    duration proportional to its word count.

    The first line starts at ``lead_in`` and every later line is shifted by
    the same amount, so [2, 4, 2] words over 80s start at [1.5, 21.5, 61.5].
    The lead-in is not taken back from later lines; the last line may end
    ``lead_in`` seconds after the track does.
    """
    if not duration or duration <= 0:
        raise PreconditionFailed("Cannot generate timing without a track duration")

    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
    counts = [len(ln.split()) for ln in lines]
    total_words = sum(counts)
    if total_words == 0:
        raise PreconditionFailed("Cannot generate timing for text without words")

    out: list[LyricLine] = []
    elapsed = 0.0
    for line, words in zip(lines, counts):
        out.append(LyricLine(timestamp=round(lead_in + elapsed, 3), text=line))
        elapsed += duration * words / total_words

    logger.debug("Generated timing for %d lines over %.1fs", len(out), duration)
    return SyncedLyrics(lines=tuple(out))
