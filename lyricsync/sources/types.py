from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TrackKey:
    artist: str
    title: str
    album: str = ""
    duration: float | None = None  # seconds

    @property
    def display(self) -> str:
        if self.artist and self.title:
            return f"{self.artist} - {self.title}"
        return self.title or self.artist or "Unknown track"


@dataclass(frozen=True, slots=True)
class SearchCandidate:
    """One hit of the free-text lyric search."""
    id: int
    name: str
    artist_name: str
    album_name: str
    duration: float | None
    instrumental: bool
    score: int = 0

    @property
    def display(self) -> str:
        return f"{self.artist_name} - {self.name}"
