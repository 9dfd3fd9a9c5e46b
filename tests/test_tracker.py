from lyricsync.lrc.model import LyricLine, SyncedLyrics
from lyricsync.sync.tracker import LineTracker, PlaybackClock, PlaybackStateTracker, SyncState
from tests.mocks.player_mock import FakeClock, snapshot


def test_tracker_changed_only_on_change():
    doc = SyncedLyrics(lines=(LyricLine(0.0, "a"), LyricLine(1.0, "b"), LyricLine(2.0, "c")))
    tr = LineTracker.from_document(doc)
    assert tr.changed_index(0) == 0
    assert tr.changed_index(0.01) is None
    assert tr.changed_index(0.999) is None
    assert tr.changed_index(1.0) == 1
    assert tr.changed_index(1.5) is None
    assert tr.changed_index(2.5) == 2


def test_tracker_before_first_line():
    doc = SyncedLyrics(lines=(LyricLine(5.0, "a"),))
    tr = LineTracker.from_document(doc)
    assert tr.current_index(1.0) == -1
    assert tr.changed_index(1.0) is None
    assert tr.changed_index(5.0) == 0


def test_duplicate_timestamps_pick_last():
    doc = SyncedLyrics(lines=(LyricLine(1.0, "a"), LyricLine(1.0, "b"), LyricLine(3.0, "c")))
    assert LineTracker.from_document(doc).current_index(2.0) == 1


def test_state_sequence_and_track_change_callback():
    seen: list[str] = []
    moves: list[tuple[SyncState, SyncState]] = []
    tracker = PlaybackStateTracker(
        on_track_change=lambda snap: seen.append(snap.track_id),
        on_state_change=lambda old, new: moves.append((old, new)),
    )
    assert tracker.state is SyncState.WAITING

    tracker.observe(snapshot("A", elapsed=10.0, observed_at=100.0))
    assert tracker.state is SyncState.PLAYING
    assert seen == ["A"]

    tracker.observe(snapshot("A", elapsed=10.5, is_playing=False, observed_at=100.5))
    assert tracker.state is SyncState.PAUSED

    # jump of 10s while paused
    tracker.observe(snapshot("A", elapsed=20.5, is_playing=False, observed_at=101.0))
    assert tracker.state is SyncState.PAUSED

    tracker.observe(snapshot("B", elapsed=0.0, observed_at=102.0))
    assert tracker.state is SyncState.PLAYING
    assert seen == ["A", "B"]

    states = [SyncState.WAITING] + [new for _old, new in moves]
    assert states == [
        SyncState.WAITING,
        SyncState.PLAYING,
        SyncState.PAUSED,
        SyncState.SEEKING,
        SyncState.PAUSED,
        SyncState.PLAYING,
    ]


def test_normal_progress_is_not_a_seek():
    moves = []
    tracker = PlaybackStateTracker(on_state_change=lambda old, new: moves.append(new))
    tracker.observe(snapshot("A", elapsed=10.0, observed_at=100.0))
    tracker.observe(snapshot("A", elapsed=11.2, observed_at=101.0))
    tracker.observe(snapshot("A", elapsed=12.0, observed_at=102.0))
    assert SyncState.SEEKING not in moves


def test_repeated_snapshots_fire_track_change_once():
    seen = []
    tracker = PlaybackStateTracker(on_track_change=lambda snap: seen.append(snap.track_id))
    for i in range(5):
        tracker.observe(snapshot("A", elapsed=float(i), observed_at=float(i)))
    assert seen == ["A"]


def test_track_change_reanchors_elapsed():
    clock = FakeClock(200.0)
    tracker = PlaybackStateTracker(clock=clock)
    tracker.observe(snapshot("A", elapsed=120.0, observed_at=200.0))
    tracker.observe(snapshot("B", elapsed=3.0, observed_at=200.0))
    clock.advance(2.0)
    assert tracker.elapsed() == 5.0


def test_idle_and_stop():
    tracker = PlaybackStateTracker()
    tracker.observe(snapshot("A", observed_at=1.0))
    tracker.observe_idle()
    assert tracker.state is SyncState.WAITING
    assert tracker.track_id == "A"

    tracker.stop()
    assert tracker.state is SyncState.STOPPED
    assert tracker.track_id is None
    assert tracker.snapshot is None


def test_idle_holds_position():
    clock = FakeClock(0.0)
    tracker = PlaybackStateTracker(clock=clock)
    tracker.observe(snapshot("A", elapsed=20.0, observed_at=0.0))
    clock.advance(2.0)
    tracker.observe_idle()

    clock.advance(60.0)
    assert tracker.elapsed() == 22.0

    # resuming the same track is not a new track
    assert not tracker.observe(snapshot("A", elapsed=22.5, observed_at=62.0))
    assert tracker.state is SyncState.PLAYING


def test_clock_extrapolates_only_while_playing():
    clock = FakeClock(10.0)
    pc = PlaybackClock(clock)
    pc.anchor(30.0, 10.0, playing=True)
    clock.advance(1.5)
    assert pc.elapsed() == 31.5

    pc.anchor(31.5, clock.now, playing=False)
    clock.advance(5.0)
    assert pc.elapsed() == 31.5


def test_manual_resync_overrides_until_resumed():
    clock = FakeClock(0.0)
    tracker = PlaybackStateTracker(clock=clock)
    tracker.observe(snapshot("A", elapsed=50.0, observed_at=0.0))

    tracker.resync(10.0)
    clock.advance(1.0)
    assert tracker.elapsed() == 11.0

    # polls keep arriving but the override wins
    tracker.observe(snapshot("A", elapsed=51.0, observed_at=1.0))
    assert tracker.elapsed() == 11.0
    assert tracker.clock.manual

    tracker.resume_auto_sync()
    assert tracker.elapsed() == 51.0


def test_manual_position_freezes_on_pause():
    clock = FakeClock(0.0)
    tracker = PlaybackStateTracker(clock=clock)
    tracker.observe(snapshot("A", elapsed=50.0, observed_at=0.0))
    tracker.resync(10.0)
    clock.advance(2.0)
    tracker.observe(snapshot("A", elapsed=52.0, is_playing=False, observed_at=2.0))
    clock.advance(10.0)
    assert tracker.elapsed() == 12.0
