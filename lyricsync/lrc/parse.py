from __future__ import annotations

from dataclasses import dataclass
import re

from .model import LyricLine, SyncedLyrics

_TS_RE = re.compile(r"\[(\d{1,3}):(\d{2})(?:[.:](\d{1,3}))?\]")  # [mm:ss] / [mm:ss.x] / [mm:ss.xx] / [mm:ss.xxx]
_OFFSET_RE = re.compile(r"^\[offset:\s*([+-]?\d+)\]\s*$", re.IGNORECASE)
_TAG_RE = re.compile(r"^\[([a-zA-Z]{1,8}):(.*)\]\s*$")


class LrcParseError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class LrcParseStats:
    lines_total: int
    events_total: int
    lines_with_timestamps: int
    lines_ignored: int


def _parse_ts_to_ms(m: int, s: int, frac: str | None) -> int:
    if not (0 <= s <= 59):
        raise LrcParseError(f"Invalid seconds: {s}")
    if frac is None:
        ms = 0
    else:
        # scale by digit count: "5" -> 500ms, "50" -> 500ms, "500" -> 500ms
        ms = int(frac) * 1000 // (10 ** len(frac))
    return (m * 60 + s) * 1000 + ms


def parse_lrc(text: str) -> SyncedLyrics:
    """
    Supported:
    - [mm:ss], [mm:ss.x], [mm:ss.xx], [mm:ss.xxx]
    - multiple timestamps per line (one LyricLine per tag)
    - [offset:+/-ms]
    - basic tags: [ar:], [ti:], [al:], ...

    Result is normalized:
    - lines stably sorted by timestamp; equal timestamps keep input order
    - negative times clamped to 0
    - untagged lines and tagged lines without text are dropped

    An empty result means "no lyrics", callers must not treat it as a song.
    """
    doc, _stats = parse_lrc_with_stats(text)
    return doc


def parse_lrc_with_stats(text: str) -> tuple[SyncedLyrics, LrcParseStats]:
    offset_ms = 0
    tags: dict[str, str] = {}
    stamped: list[tuple[int, str]] = []

    total = 0
    lines_with_ts = 0
    ignored = 0

    for raw in text.splitlines():
        total += 1
        line = raw.strip()
        if not line:
            ignored += 1
            continue

        off = _OFFSET_RE.match(line)
        if off:
            offset_ms = int(off.group(1))
            continue

        tag = _TAG_RE.match(line)
        if tag and not _TS_RE.match(line):
            k = tag.group(1).strip().lower()
            v = tag.group(2).strip()
            if k and v:
                tags[k] = v
            continue

        ts = list(_TS_RE.finditer(line))
        if not ts:
            ignored += 1
            continue

        payload = line[ts[-1].end() :].strip()
        if not payload:
            ignored += 1
            continue

        lines_with_ts += 1
        for m in ts:
            try:
                t_ms = _parse_ts_to_ms(int(m.group(1)), int(m.group(2)), m.group(3))
            except LrcParseError:
                continue
            stamped.append((t_ms, payload))

    # list.sort is stable, ties stay in input order
    stamped = [(max(t + offset_ms, 0), s) for t, s in stamped]
    stamped.sort(key=lambda e: e[0])

    doc = SyncedLyrics(
        lines=tuple(LyricLine(timestamp=t / 1000, text=s) for t, s in stamped),
        tags=tags,
    )
    stats = LrcParseStats(
        lines_total=total,
        events_total=len(doc.lines),
        lines_with_timestamps=lines_with_ts,
        lines_ignored=ignored,
    )
    return doc, stats


def looks_like_lrc(text: str) -> bool:
    return _TS_RE.search(text or "") is not None
