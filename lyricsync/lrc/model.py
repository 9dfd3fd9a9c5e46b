from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True, slots=True)
class LyricLine:
    timestamp: float  # seconds from track start
    text: str

    def __post_init__(self) -> None:
        if self.timestamp < 0:
            raise ValueError(f"Negative timestamp: {self.timestamp}")
        if not self.text.strip():
            raise ValueError("Lyric line text must not be blank")


@dataclass(frozen=True, slots=True)
class SyncedLyrics:
    lines: tuple[LyricLine, ...]
    tags: dict[str, str] = field(default_factory=dict, compare=False)

    @property
    def is_empty(self) -> bool:
        # an empty synced document means "not found", never an empty song
        return not self.lines

    @property
    def timestamps(self) -> list[float]:
        return [ln.timestamp for ln in self.lines]


@dataclass(frozen=True, slots=True)
class PlainLyrics:
    text: str

    @property
    def lines(self) -> list[str]:
        return [ln.strip() for ln in self.text.splitlines() if ln.strip()]

    @property
    def is_empty(self) -> bool:
        return not self.lines


LyricDocument = Union[SyncedLyrics, PlainLyrics]
