"""
Sync orchestrator.

Wires the pieces together: poll the player through the credential manager,
feed snapshots (debounced) to the playback tracker, resolve lyrics for each
new track on a worker thread, and push ``LyricSnapshot``s to subscribers and
to the shared store as the active line changes.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
import logging
import threading
import time
from typing import Any, Callable

from lyricsync.auth.credentials import CredentialManager
from lyricsync.cache.files import LyricCacheStore
from lyricsync.config import AppConfig
from lyricsync.errors import CredentialInvalid, NetworkFailure, ParseFailure, PreconditionFailed
from lyricsync.i18n import t
from lyricsync.lrc.autosync import generate_timing
from lyricsync.lrc.export import serialize_lrc
from lyricsync.lrc.model import LyricDocument, PlainLyrics, SyncedLyrics
from lyricsync.player.client import PlaybackSnapshot, SpotifyPlayerClient
from lyricsync.shared import SharedStore
from lyricsync.sources.service import NOT_FOUND, LyricsService, Resolution, ResolutionStatus
from lyricsync.sources.types import SearchCandidate
from lyricsync.sync.debounce import Debouncer
from lyricsync.sync.tracker import LineTracker, PlaybackStateTracker, SyncState

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "lyric_snapshot"
STALE_AFTER_S = 45.0


@dataclass(frozen=True, slots=True)
class LyricSnapshot:
    current_lyric: str
    song_title: str
    artist: str
    timestamp: float  # epoch seconds

    @classmethod
    def from_json(cls, data: Any) -> "LyricSnapshot | None":
        if not isinstance(data, dict):
            return None
        try:
            return cls(
                current_lyric=str(data["current_lyric"]),
                song_title=str(data["song_title"]),
                artist=str(data["artist"]),
                timestamp=float(data["timestamp"]),
            )
        except (KeyError, TypeError, ValueError):
            return None


@dataclass(frozen=True, slots=True)
class SnapshotReading:
    snapshot: LyricSnapshot | None
    age_s: float | None
    stale: bool


def read_shared_snapshot(
    store: SharedStore, stale_after: float = STALE_AFTER_S, now: float | None = None
) -> SnapshotReading:
    """What an out-of-process consumer sees. Older than ``stale_after`` means
    the engine stopped publishing and the display should show a closed state."""
    snap = LyricSnapshot.from_json(store.get(SNAPSHOT_KEY))
    written = store.written_at(SNAPSHOT_KEY)
    if snap is None or written is None:
        return SnapshotReading(None, None, True)
    age = max((time.time() if now is None else now) - written, 0.0)
    return SnapshotReading(snap, age, age > stale_after)


Consumer = Callable[[LyricSnapshot], None]


class SyncEngine:
    """
    One poll loop and one line timer per instance. Until ``start()`` is
    called (and after ``stop()``), background work runs on the calling
    thread, which keeps ``poll_once``/``tick`` usable from scripts and tests.
    """

    def __init__(
        self,
        cfg: AppConfig,
        credentials: CredentialManager,
        player: SpotifyPlayerClient,
        lyrics: LyricsService,
        cache: LyricCacheStore,
        tracker: PlaybackStateTracker | None = None,
        *,
        shared: SharedStore | None = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        self.cfg = cfg
        self.credentials = credentials
        self.player = player
        self.lyrics = lyrics
        self.cache = cache
        self.shared = shared
        self.tracker = tracker or PlaybackStateTracker(seek_threshold_s=cfg.seek_threshold_s, clock=clock)
        self.tracker.on_track_change = self._on_track_change
        self._clock = clock
        self._wall = wall_clock

        self._lock = threading.RLock()
        self._debouncer: Debouncer[PlaybackSnapshot] = Debouncer(self._observe, cfg.debounce_s)
        self._executor: ThreadPoolExecutor | None = None
        self._poll_stop: threading.Event | None = None
        self._poll_thread: threading.Thread | None = None
        self._line_stop: threading.Event | None = None
        self._line_thread: threading.Thread | None = None
        self._foreground = True

        self._poll_generation = 0
        self._resolve_generation = 0
        self._document: LyricDocument | None = None
        self._lines: LineTracker | None = None
        self._candidates: tuple[SearchCandidate, ...] = ()
        self._status_key = "status_waiting"

        self._subscribers: list[Consumer] = []
        self._last_emit: LyricSnapshot | None = None
        self._last_emit_at = 0.0

    @classmethod
    def from_config(cls, cfg: AppConfig) -> "SyncEngine":
        shared = SharedStore(cfg.shared_store_path)
        cache = LyricCacheStore(cfg.cache_dir, ttl_days=cfg.cache_ttl_days)
        return cls(
            cfg,
            CredentialManager.from_config(cfg, shared),
            SpotifyPlayerClient(timeout_s=cfg.http_timeout_s),
            LyricsService.from_config(cfg, cache),
            cache,
            shared=shared,
        )

    # -- public state ---------------------------------------------------------

    @property
    def state(self) -> SyncState:
        return self.tracker.state

    @property
    def status(self) -> str:
        state = self.tracker.state
        if state is SyncState.STOPPED:
            return t("status_stopped")
        with self._lock:
            key = self._status_key
            has_doc = self._document is not None
        if self.tracker.clock.manual and has_doc:
            return t("status_manual_sync")
        if state is SyncState.PAUSED and has_doc:
            return t("status_paused")
        return t(key)

    @property
    def document(self) -> LyricDocument | None:
        with self._lock:
            return self._document

    @property
    def candidates(self) -> tuple[SearchCandidate, ...]:
        with self._lock:
            return self._candidates

    @property
    def current_index(self) -> int:
        with self._lock:
            return self._lines.last_idx if self._lines is not None else -1

    @property
    def last_snapshot(self) -> LyricSnapshot | None:
        with self._lock:
            return self._last_emit

    def subscribe(self, consumer: Consumer) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(consumer)

        def unsubscribe() -> None:
            with self._lock:
                if consumer in self._subscribers:
                    self._subscribers.remove(consumer)

        return unsubscribe

    # -- lifecycle ------------------------------------------------------------

    def start(self) -> None:
        removed = self.cache.evict_expired()
        if removed:
            logger.info("Evicted %d expired cache entries", removed)
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="lyricsync")
        self._start_poll_loop()
        self._start_line_timer()

    def stop(self) -> None:
        self._cancel_poll_loop()
        self._cancel_line_timer()
        self._debouncer.cancel()
        with self._lock:
            executor, self._executor = self._executor, None
            self._resolve_generation += 1
            self._poll_generation += 1
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)
        self.tracker.stop()
        logger.info("Engine stopped")

    def set_foreground(self, foreground: bool) -> None:
        with self._lock:
            if foreground == self._foreground:
                return
            self._foreground = foreground
            running = self._poll_thread is not None
        logger.debug("Foreground=%s, poll interval %.1fs", foreground, self.poll_interval)
        if running:
            self._start_poll_loop()

    @property
    def poll_interval(self) -> float:
        if self._foreground:
            return self.cfg.poll_interval_foreground_s
        return self.cfg.poll_interval_background_s

    def _start_poll_loop(self) -> None:
        self._cancel_poll_loop()
        stop = threading.Event()
        thread = threading.Thread(
            target=self._poll_loop, args=(stop, self.poll_interval), name="lyricsync-poll", daemon=True
        )
        with self._lock:
            self._poll_stop, self._poll_thread = stop, thread
        thread.start()

    def _cancel_poll_loop(self) -> None:
        with self._lock:
            stop, thread = self._poll_stop, self._poll_thread
            self._poll_stop = self._poll_thread = None
        _halt(stop, thread)

    def _start_line_timer(self) -> None:
        self._cancel_line_timer()
        stop = threading.Event()
        thread = threading.Thread(target=self._line_loop, args=(stop,), name="lyricsync-lines", daemon=True)
        with self._lock:
            self._line_stop, self._line_thread = stop, thread
        thread.start()

    def _cancel_line_timer(self) -> None:
        with self._lock:
            stop, thread = self._line_stop, self._line_thread
            self._line_stop = self._line_thread = None
        _halt(stop, thread)

    def _poll_loop(self, stop: threading.Event, interval: float) -> None:
        while not stop.is_set():
            self._submit(self._poll_safely)
            stop.wait(interval)

    def _line_loop(self, stop: threading.Event) -> None:
        while not stop.wait(self.cfg.line_tick_s):
            try:
                self.tick()
            except Exception:
                logger.exception("Line tick failed")

    def _poll_safely(self) -> None:
        try:
            self.poll_once()
        except Exception:
            logger.exception("Poll tick failed")

    def _submit(self, fn: Callable[..., Any], *args: Any) -> None:
        with self._lock:
            executor = self._executor
        if executor is None:
            fn(*args)
            return
        try:
            executor.submit(fn, *args)
        except RuntimeError:
            # executor shut down between the check and the submit
            logger.debug("Engine stopping, dropped %s", getattr(fn, "__name__", fn))

    # -- polling --------------------------------------------------------------

    def poll_once(self) -> PlaybackSnapshot | None:
        """
        One poll tick. A tick that finishes after a newer tick started is
        discarded.
        """
        with self._lock:
            self._poll_generation += 1
            generation = self._poll_generation

        try:
            snap = self.credentials.with_valid_token(self.player.currently_playing)
        except CredentialInvalid as e:
            if self.credentials.logged_in:
                logger.info("Player rejected the access token; refreshing on next poll")
                self.credentials.invalidate_access()
            else:
                logger.warning("Reconnect required: %s", e)
                self._set_status("status_reconnect")
            return None
        except (NetworkFailure, ParseFailure) as e:
            logger.warning("Player poll failed: %s", e)
            with self._lock:
                if self._document is None:
                    self._status_key = "status_network"
            return None

        with self._lock:
            if generation != self._poll_generation:
                logger.debug("Discarding superseded poll tick %d", generation)
                return None
            if self._status_key in ("status_reconnect", "status_network") and self.tracker.track_id is None:
                self._status_key = "status_waiting"

        if snap is None:
            self._debouncer.cancel()
            self.tracker.observe_idle()
            return None
        self._debouncer.submit(snap)
        return snap

    def flush(self) -> None:
        """Deliver a pending debounced snapshot now."""
        self._debouncer.flush()

    def _observe(self, snap: PlaybackSnapshot) -> None:
        self.tracker.observe(snap)
        self.tick()

    # -- resolution -----------------------------------------------------------

    def _on_track_change(self, snap: PlaybackSnapshot) -> None:
        with self._lock:
            self._resolve_generation += 1
            generation = self._resolve_generation
            self._document = None
            self._lines = None
            self._candidates = ()
            self._status_key = "status_searching"
        self.tracker.resume_auto_sync()
        self._emit(t("loading"), snap)
        self._submit(self._resolve, snap, generation)

    def _resolve(self, snap: PlaybackSnapshot, generation: int) -> None:
        try:
            res = self.lyrics.resolve(snap.artist, snap.title, album=snap.album, duration=snap.duration)
        except Exception:
            logger.exception("Resolution failed for %s", snap.display)
            res = NOT_FOUND
        self._commit(snap, generation, res)

    def _commit(self, snap: PlaybackSnapshot, generation: int, res: Resolution) -> bool:
        doc, status_key = self._document_for(snap, res)
        with self._lock:
            if generation != self._resolve_generation or self.tracker.track_id != snap.track_id:
                logger.info("Discarding lyrics for %s: no longer current", snap.display)
                return False
            self._document = doc
            self._lines = LineTracker.from_document(doc) if isinstance(doc, SyncedLyrics) else None
            self._candidates = res.candidates
            self._status_key = status_key
        logger.info("%s: %s", snap.display, t(status_key))
        self._emit(self._current_text(snap), snap)
        return True

    def _document_for(self, snap: PlaybackSnapshot, res: Resolution) -> tuple[LyricDocument | None, str]:
        if res.status is ResolutionStatus.SYNCED:
            return res.document, "status_cached" if res.from_cache else "status_loaded"
        if res.status is ResolutionStatus.AMBIGUOUS:
            return (PlainLyrics(res.plain_text) if res.plain_text else None), "status_ambiguous"
        if res.status is ResolutionStatus.PLAIN and res.plain_text:
            try:
                doc = generate_timing(res.plain_text, snap.duration or 0.0, self.cfg.autosync_lead_in_s)
            except PreconditionFailed as e:
                logger.info("Showing untimed lyrics for %s: %s", snap.display, e)
                return PlainLyrics(res.plain_text), "status_unsynced"
            self.cache.put(snap.artist, snap.title, serialize_lrc(doc))
            return doc, "status_autosynced"
        return None, "status_not_found"

    # -- manual control -------------------------------------------------------

    def search(self, query: str) -> list[SearchCandidate]:
        """Manual search, "Artist - Title" or free text."""
        artist, sep, title = query.partition(" - ")
        q = f"{artist.strip()} {title.strip()}" if sep else query.strip()
        found = self.lyrics.search(q)
        with self._lock:
            self._candidates = tuple(found)
        return found

    def select_candidate(self, candidate: SearchCandidate) -> Resolution:
        """
        Use ``candidate`` for the current track. Supersedes any resolution
        still in flight for it.
        """
        snap = self.tracker.snapshot
        if snap is None:
            raise PreconditionFailed("No track is playing")
        with self._lock:
            self._resolve_generation += 1
            generation = self._resolve_generation
            self._status_key = "status_searching"
        res = self.lyrics.select_candidate(snap.artist, snap.title, candidate)
        self._commit(snap, generation, res)
        return res

    def resync(self, position: float) -> None:
        self.tracker.resync(position)
        with self._lock:
            if self._lines is not None:
                self._lines.force(-2)  # re-emit on next tick
        self.tick()

    def resume_auto_sync(self) -> None:
        self.tracker.resume_auto_sync()
        with self._lock:
            if self._lines is not None:
                self._lines.force(-2)
        self.tick()

    # -- output ---------------------------------------------------------------

    def tick(self) -> LyricSnapshot | None:
        """
        Recompute the active line from the extrapolated elapsed time. Emits
        only when the line changed, or when the heartbeat is due. Silent while
        nothing is playing, so readers see the snapshot go stale.
        """
        snap = self.tracker.snapshot
        if snap is None or self.tracker.state in (SyncState.STOPPED, SyncState.WAITING):
            return None
        with self._lock:
            lines = self._lines
            changed = lines.changed_index(self.tracker.elapsed()) if lines is not None else None
            last, last_at = self._last_emit, self._last_emit_at
        if lines is not None and changed is not None:
            return self._emit(_line_text(lines, changed), snap)
        if last is not None and self._clock() - last_at >= self.cfg.heartbeat_s:
            return self._emit(last.current_lyric, snap)
        return None

    def _current_text(self, snap: PlaybackSnapshot) -> str:
        with self._lock:
            doc, lines = self._document, self._lines
            if lines is not None:
                idx = lines.current_index(self.tracker.elapsed())
                lines.force(idx)
                return _line_text(lines, idx)
        if isinstance(doc, PlainLyrics):
            return doc.lines[0] if doc.lines else ""
        return self.status

    def _set_status(self, key: str) -> None:
        with self._lock:
            self._status_key = key

    def _emit(self, lyric: str, snap: PlaybackSnapshot) -> LyricSnapshot:
        out = LyricSnapshot(current_lyric=lyric, song_title=snap.title, artist=snap.artist, timestamp=self._wall())
        with self._lock:
            self._last_emit = out
            self._last_emit_at = self._clock()
            consumers = list(self._subscribers)
        if self.shared is not None:
            try:
                self.shared.set(SNAPSHOT_KEY, asdict(out), now=out.timestamp)
            except OSError as e:
                logger.warning("Could not publish snapshot: %s", e)
        for consumer in consumers:
            try:
                consumer(out)
            except Exception:
                logger.exception("Snapshot consumer failed")
        return out


def _line_text(lines: LineTracker, idx: int) -> str:
    return lines.texts[idx] if 0 <= idx < len(lines.texts) else ""


def _halt(stop: threading.Event | None, thread: threading.Thread | None) -> None:
    if stop is not None:
        stop.set()
    if thread is not None and thread is not threading.current_thread():
        thread.join(timeout=2.0)
