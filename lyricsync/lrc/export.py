from __future__ import annotations

import json

from .model import SyncedLyrics


def _to_ms(seconds: float) -> int:
    return int(round(seconds * 1000))


def export_json(doc: SyncedLyrics) -> str:
    return json.dumps(
        {
            "tags": doc.tags or {},
            "lines": [{"t": ln.timestamp, "text": ln.text} for ln in doc.lines],
        },
        ensure_ascii=False,
        indent=2,
    )


def _fmt_lrc_time(ms: int) -> str:
    m, rem = divmod(ms, 60_000)
    s, ms2 = divmod(rem, 1_000)
    if ms2 % 10:
        # keep millisecond precision so parsing gives the same value back
        return f"{m:02d}:{s:02d}.{ms2:03d}"
    # 2 decimals for compatibility
    return f"{m:02d}:{s:02d}.{ms2 // 10:02d}"


def serialize_lrc(doc: SyncedLyrics, include_tags: bool = False) -> str:
    out: list[str] = []
    if include_tags and doc.tags:
        for k in sorted(doc.tags.keys()):
            out.append(f"[{k}:{doc.tags[k]}]")

    for ln in doc.lines:
        out.append(f"[{_fmt_lrc_time(_to_ms(ln.timestamp))}]{ln.text}")
    return "\n".join(out) + ("\n" if out else "")


def _fmt_srt_time(ms: int) -> str:
    # HH:MM:SS,mmm
    h, rem = divmod(ms, 3_600_000)
    m, rem = divmod(rem, 60_000)
    s, ms2 = divmod(rem, 1_000)
    return f"{h:02d}:{m:02d}:{s:02d},{ms2:03d}"


def export_srt(doc: SyncedLyrics, last_line_duration_ms: int = 2000) -> str:
    """
    End time is next start time, last line ends at +last_line_duration_ms.
    """
    lines = doc.lines
    if not lines:
        return ""
    out: list[str] = []
    for i, ln in enumerate(lines, start=1):
        start = _to_ms(ln.timestamp)
        if i < len(lines):
            end = max(_to_ms(lines[i].timestamp), start + 1)
        else:
            end = start + last_line_duration_ms
        out.append(str(i))
        out.append(f"{_fmt_srt_time(start)} --> {_fmt_srt_time(end)}")
        out.append(ln.text)
        out.append("")
    return "\n".join(out)
