from __future__ import annotations

from dataclasses import replace
from typing import Iterable

from .types import SearchCandidate, TrackKey


def _split_artists(artist: str) -> list[str]:
    return [a.strip().lower() for a in (artist or "").replace("&", ",").split(",") if a.strip()]


def score_candidate(track: TrackKey, c: SearchCandidate) -> int:
    """Title/artist similarity, 0..110. Exact title and artist give 100."""
    score = 0
    t_title = (track.title or "").lower().strip()
    t_artist = (track.artist or "").lower().strip()
    t_artists = _split_artists(track.artist) or ([t_artist] if t_artist else [])
    c_title = (c.name or "").lower().strip()
    c_artist = (c.artist_name or "").lower().strip()

    if c_title == t_title:
        score += 50
    elif t_title and c_title and (t_title in c_title or c_title in t_title):
        score += 15

    if t_artist:
        if c_artist == t_artist:
            score += 50
        elif c_artist in t_artists:
            score += 45
        elif c_artist and any(c_artist in ta or ta in c_artist for ta in t_artists):
            score += 20

    if track.duration and c.duration:
        delta = abs(track.duration - c.duration)
        if delta <= 2:
            score += 10
        elif delta <= 5:
            score += 5
    return score


def rank_candidates(track: TrackKey, candidates: Iterable[SearchCandidate]) -> list[SearchCandidate]:
    scored = [replace(c, score=score_candidate(track, c)) for c in candidates]
    # sorted() is stable, so equal scores keep the API's order
    return sorted(scored, key=lambda c: c.score, reverse=True)


def single_best(ranked: list[SearchCandidate]) -> SearchCandidate | None:
    """
    The only candidate, or the top one when it is an exact title+artist match
    and nothing else ties with it. Otherwise there is nothing to auto-pick.
    """
    if len(ranked) == 1:
        return ranked[0]
    if len(ranked) >= 2 and ranked[0].score >= 100 and ranked[1].score < ranked[0].score:
        return ranked[0]
    return None
