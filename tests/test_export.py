import json

from lyricsync.lrc.export import export_json, export_srt, serialize_lrc
from lyricsync.lrc.model import LyricLine, SyncedLyrics
from lyricsync.lrc.parse import parse_lrc


def _doc(*pairs):
    return SyncedLyrics(lines=tuple(LyricLine(t, s) for t, s in pairs))


def test_export_srt_basic():
    doc = _doc((0.0, "a"), (1.0, "b"))
    srt = export_srt(doc, last_line_duration_ms=2000)
    assert "00:00:00,000 --> 00:00:01,000" in srt
    assert "00:00:01,000 --> 00:00:03,000" in srt
    assert "\na\n" in srt
    assert "\nb\n" in srt


def test_export_srt_empty():
    assert export_srt(SyncedLyrics(lines=())) == ""


def test_serialize_uses_two_decimals_by_default():
    doc = _doc((1.5, "a"), (62.25, "b"))
    assert serialize_lrc(doc) == "[00:01.50]a\n[01:02.25]b\n"


def test_serialize_keeps_millisecond_precision():
    doc = _doc((1.005, "a"))
    assert serialize_lrc(doc) == "[00:01.005]a\n"


def test_round_trip_preserves_lines():
    src = "[00:00.50]one\n[00:01.005]two\n[00:01.005]two again\n[02:03.40]three\n"
    doc = parse_lrc(src)
    again = parse_lrc(serialize_lrc(doc))
    assert again == doc


def test_serialize_tags_optional():
    doc = parse_lrc("[ti:Hello]\n[ar:Adele]\n[00:01.00]x\n")
    assert serialize_lrc(doc).startswith("[00:01.00]")
    assert serialize_lrc(doc, include_tags=True).startswith("[ar:Adele]\n[ti:Hello]\n")


def test_export_json_shape():
    doc = parse_lrc("[ar:Adele]\n[00:01.00]x\n")
    data = json.loads(export_json(doc))
    assert data == {"tags": {"ar": "Adele"}, "lines": [{"t": 1.0, "text": "x"}]}
