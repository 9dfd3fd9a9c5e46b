from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass
import enum
import logging
import threading
import time
from typing import Callable

from lyricsync.lrc.model import SyncedLyrics
from lyricsync.player.client import PlaybackSnapshot

logger = logging.getLogger(__name__)

SEEK_THRESHOLD_S = 2.0


@dataclass(slots=True)
class LineTracker:
    """
    Efficient lookup: O(log n) via bisect + update only on change.
    """

    times: list[float]
    texts: list[str]
    last_idx: int = -1

    @classmethod
    def from_document(cls, doc: SyncedLyrics) -> "LineTracker":
        return cls(times=doc.timestamps, texts=[ln.text for ln in doc.lines])

    def current_index(self, now_s: float) -> int:
        # last line whose timestamp <= now
        i = bisect_right(self.times, now_s) - 1
        return i if i >= 0 else -1

    def changed_index(self, now_s: float) -> int | None:
        i = self.current_index(now_s)
        if i != self.last_idx:
            self.last_idx = i
            return i
        return None

    def force(self, idx: int) -> None:
        self.last_idx = idx


class SyncState(enum.Enum):
    WAITING = "waiting"
    PLAYING = "playing"
    PAUSED = "paused"
    SEEKING = "seeking"
    STOPPED = "stopped"


class PlaybackClock:
    """
    Elapsed time between polls, extrapolated from the last polled position.
    A manual resync wins over polled time until ``resume_auto_sync``.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._elapsed = 0.0
        self._at: float | None = None
        self._playing = False
        self._manual: tuple[float, float] | None = None  # (position, set at)

    @property
    def manual(self) -> bool:
        return self._manual is not None

    def polled_elapsed(self, now: float | None = None) -> float:
        if self._at is None:
            return 0.0
        now = self._clock() if now is None else now
        if not self._playing:
            return self._elapsed
        return self._elapsed + max(now - self._at, 0.0)

    def elapsed(self, now: float | None = None) -> float:
        now = self._clock() if now is None else now
        if self._manual is not None:
            pos, at = self._manual
            return pos + (max(now - at, 0.0) if self._playing else 0.0)
        return self.polled_elapsed(now)

    def anchor(self, elapsed: float, at: float, playing: bool) -> None:
        if self._manual is not None and playing != self._playing:
            # freeze or restart the manual position at the play/pause edge
            self._manual = (self.elapsed(at), at)
        self._elapsed, self._at, self._playing = elapsed, at, playing

    def freeze(self, now: float | None = None) -> None:
        """Hold the current position as if paused."""
        if self._at is None:
            return
        now = self._clock() if now is None else now
        self.anchor(self.polled_elapsed(now), now, False)

    def resync(self, position: float, now: float | None = None) -> None:
        now = self._clock() if now is None else now
        self._manual = (max(position, 0.0), now)

    def resume_auto_sync(self) -> None:
        self._manual = None

    def reset(self) -> None:
        self._elapsed, self._at, self._playing, self._manual = 0.0, None, False, None


StateListener = Callable[[SyncState, SyncState], None]
TrackListener = Callable[[PlaybackSnapshot], None]


class PlaybackStateTracker:
    """
    Turns polled snapshots into SyncState transitions.

    WAITING -> PLAYING on the first playing snapshot, PLAYING <-> PAUSED when
    is_playing flips, any -> SEEKING -> PLAYING/PAUSED when the reported
    position strays more than ``seek_threshold_s`` from the extrapolated one,
    any -> STOPPED on ``stop()``. A new track id fires ``on_track_change``
    once and re-anchors the clock.
    """

    def __init__(
        self,
        *,
        seek_threshold_s: float = SEEK_THRESHOLD_S,
        on_track_change: TrackListener | None = None,
        on_state_change: StateListener | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.seek_threshold_s = seek_threshold_s
        self.on_track_change = on_track_change
        self.on_state_change = on_state_change
        self.clock = PlaybackClock(clock)
        self._lock = threading.RLock()
        self._state = SyncState.WAITING
        self._snapshot: PlaybackSnapshot | None = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def snapshot(self) -> PlaybackSnapshot | None:
        return self._snapshot

    @property
    def track_id(self) -> str | None:
        snap = self._snapshot
        return snap.track_id if snap else None

    def _move(self, new: SyncState, out: list[tuple[SyncState, SyncState]]) -> None:
        if new is self._state:
            return
        out.append((self._state, new))
        logger.debug("Sync state %s -> %s", self._state.value, new.value)
        self._state = new

    def observe(self, snap: PlaybackSnapshot) -> bool:
        """Feed one polled snapshot. Returns True when it started a new track."""
        moves: list[tuple[SyncState, SyncState]] = []
        with self._lock:
            target = SyncState.PLAYING if snap.is_playing else SyncState.PAUSED
            changed = snap.track_id != self.track_id
            if changed:
                logger.info("Track changed: %s", snap.display)
                self.clock.reset()
            else:
                expected = self.clock.polled_elapsed(snap.observed_at)
                if abs(snap.elapsed - expected) > self.seek_threshold_s:
                    logger.debug("Seek detected: expected %.1fs, got %.1fs", expected, snap.elapsed)
                    self._move(SyncState.SEEKING, moves)
            self.clock.anchor(snap.elapsed, snap.observed_at, snap.is_playing)
            self._snapshot = snap
            self._move(target, moves)

        self._notify(moves)
        if changed and self.on_track_change is not None:
            self.on_track_change(snap)
        return changed

    def observe_idle(self) -> None:
        """The player reports nothing playing. The clock holds its position."""
        moves: list[tuple[SyncState, SyncState]] = []
        with self._lock:
            if self._state is not SyncState.STOPPED:
                self.clock.freeze()
                self._move(SyncState.WAITING, moves)
        self._notify(moves)

    def stop(self) -> None:
        moves: list[tuple[SyncState, SyncState]] = []
        with self._lock:
            self._snapshot = None
            self.clock.reset()
            self._move(SyncState.STOPPED, moves)
        self._notify(moves)

    def elapsed(self, now: float | None = None) -> float:
        with self._lock:
            return self.clock.elapsed(now)

    def resync(self, position: float, now: float | None = None) -> None:
        with self._lock:
            self.clock.resync(position, now)

    def resume_auto_sync(self) -> None:
        with self._lock:
            self.clock.resume_auto_sync()

    def _notify(self, moves: list[tuple[SyncState, SyncState]]) -> None:
        if self.on_state_change is None:
            return
        for old, new in moves:
            self.on_state_change(old, new)
