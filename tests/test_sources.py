from __future__ import annotations

from unittest.mock import Mock, patch

import pytest
import requests

from lyricsync.errors import NetworkFailure, ParseFailure
from lyricsync.sources.genius import GeniusSource, clean_lyrics, extract_lyrics
from lyricsync.sources.lrclib import LrcLibRecord, LrcLibSearchSource, LrcLibSource
from lyricsync.sources.netease import NeteaseSource
from lyricsync.sources.ranking import rank_candidates, single_best
from lyricsync.sources.types import SearchCandidate, TrackKey

HELLO = TrackKey(artist="Adele", title="Hello", album="25", duration=295.0)
LRC = "[00:01.00]Hello, it's me\n[00:05.00]I was wondering\n"


def _resp(status: int = 200, json_body=None, text: str = ""):
    r = Mock()
    r.status_code = status
    r.text = text
    if isinstance(json_body, Exception):
        r.json.side_effect = json_body
    else:
        r.json.return_value = json_body
    if status >= 400:
        r.raise_for_status.side_effect = requests.HTTPError(f"HTTP {status}")
    return r


def _lrclib_item(**over):
    item = {
        "id": 1,
        "trackName": "Hello",
        "artistName": "Adele",
        "albumName": "25",
        "duration": 295,
        "instrumental": False,
        "plainLyrics": "Hello, it's me",
        "syncedLyrics": LRC,
    }
    item.update(over)
    return item


class TestLrcLib:
    def test_get_returns_synced_and_plain(self):
        with patch("lyricsync.sources.base.requests.get") as get:
            get.return_value = _resp(200, _lrclib_item())
            res = LrcLibSource(max_retries=1).fetch(HELLO)
        assert res.lrc_text == LRC
        assert res.plain_text == "Hello, it's me\n"
        params = get.call_args.kwargs["params"]
        assert params == {"artist_name": "Adele", "track_name": "Hello", "album_name": "25", "duration": 295}

    def test_404_is_definitive_not_found(self):
        with patch("lyricsync.sources.base.requests.get", return_value=_resp(404)):
            res = LrcLibSource(max_retries=1).fetch(HELLO)
        assert res.empty
        assert res.definitive_not_found

    def test_instrumental_is_not_found(self):
        item = _lrclib_item(instrumental=True, syncedLyrics=None, plainLyrics=None)
        with patch("lyricsync.sources.base.requests.get", return_value=_resp(200, item)):
            res = LrcLibSource(max_retries=1).fetch(HELLO)
        assert res.empty

    @pytest.mark.parametrize("missing", ["syncedLyrics", "plainLyrics", "id", "trackName"])
    def test_missing_field_fails_closed(self, missing):
        item = _lrclib_item()
        del item[missing]
        with pytest.raises(ParseFailure):
            LrcLibRecord.from_json(item)

    def test_wrong_type_fails_closed(self):
        with pytest.raises(ParseFailure):
            LrcLibRecord.from_json(_lrclib_item(syncedLyrics=42))

    def test_invalid_json_is_parse_failure(self):
        with patch("lyricsync.sources.base.requests.get", return_value=_resp(200, ValueError("bad"))):
            with pytest.raises(ParseFailure):
                LrcLibSource(max_retries=1).fetch(HELLO)

    def test_transport_error_retried_then_network_failure(self):
        with patch("lyricsync.sources.base.requests.get", side_effect=requests.ConnectionError("down")) as get:
            with patch("lyricsync.sources.base.time.sleep"):
                with pytest.raises(NetworkFailure):
                    LrcLibSource(max_retries=2, backoff_base_s=0).fetch(HELLO)
        assert get.call_count == 2

    def test_client_error_is_network_failure(self):
        with patch("lyricsync.sources.base.requests.get", return_value=_resp(403)):
            with pytest.raises(NetworkFailure):
                LrcLibSource(max_retries=1).fetch(HELLO)


class TestLrcLibSearch:
    def test_single_exact_match_fetched_by_id(self):
        hits = [_lrclib_item(id=7), _lrclib_item(id=8, trackName="Hello (Live)", artistName="Someone")]
        with patch("lyricsync.sources.base.requests.get") as get:
            get.side_effect = [_resp(200, hits), _resp(200, _lrclib_item(id=7))]
            res = LrcLibSearchSource(max_retries=1).fetch(HELLO)
        assert res.lrc_text == LRC
        assert get.call_args_list[1].args[0].endswith("/get/7")

    def test_ties_are_handed_back(self):
        hits = [_lrclib_item(id=7, duration=None), _lrclib_item(id=8, duration=None)]
        with patch("lyricsync.sources.base.requests.get", return_value=_resp(200, hits)):
            res = LrcLibSearchSource(max_retries=1).fetch(TrackKey("Adele", "Hello"))
        assert [c.id for c in res.candidates] == [7, 8]
        assert res.lrc_text is None

    def test_search_skips_malformed_hits(self):
        hits = [{"id": "x"}, _lrclib_item(id=3)]
        with patch("lyricsync.sources.base.requests.get", return_value=_resp(200, hits)):
            found = LrcLibSearchSource(max_retries=1).search("adele hello")
        assert [c.id for c in found] == [3]

    def test_search_rejects_non_list(self):
        with patch("lyricsync.sources.base.requests.get", return_value=_resp(200, {"oops": 1})):
            with pytest.raises(ParseFailure):
                LrcLibSearchSource(max_retries=1).search("adele hello")

    def test_empty_query(self):
        assert LrcLibSearchSource().search("   ") == []


class TestRanking:
    def _c(self, id, name, artist, duration=None):
        return SearchCandidate(id, name, artist, "", duration, False)

    def test_exact_match_ranks_first(self):
        ranked = rank_candidates(HELLO, [self._c(1, "Hello (Remix)", "DJ"), self._c(2, "Hello", "Adele", 295)])
        assert ranked[0].id == 2
        assert ranked[0].score == 110
        assert single_best(ranked).id == 2

    def test_equal_scores_keep_order_and_stay_ambiguous(self):
        ranked = rank_candidates(HELLO, [self._c(1, "Hello", "Adele"), self._c(2, "Hello", "Adele")])
        assert [c.id for c in ranked] == [1, 2]
        assert single_best(ranked) is None

    def test_weak_match_not_auto_picked(self):
        ranked = rank_candidates(HELLO, [self._c(1, "Hello", "Lionel Richie"), self._c(2, "Hi", "Adele")])
        assert single_best(ranked) is None


class TestNetease:
    SEARCH = {
        "code": 200,
        "result": {
            "songs": [
                {"id": 10, "name": "Hello", "artists": [{"name": "Someone Else"}], "duration": 200000},
                {"id": 11, "name": "Hello", "artists": [{"name": "Adele"}], "duration": 295000},
            ]
        },
    }

    def test_picks_artist_match_and_fetches_lrc(self):
        lyric = {"code": 200, "lrc": {"lyric": LRC}}
        with patch("lyricsync.sources.base.requests.get") as get:
            get.side_effect = [_resp(200, self.SEARCH), _resp(200, lyric)]
            res = NeteaseSource(max_retries=1).fetch(HELLO)
        assert res.lrc_text == LRC
        assert get.call_args_list[1].kwargs["params"]["id"] == 11

    def test_no_lyric_flag(self):
        with patch("lyricsync.sources.base.requests.get") as get:
            get.side_effect = [_resp(200, self.SEARCH), _resp(200, {"code": 200, "nolyric": True})]
            res = NeteaseSource(max_retries=1).fetch(HELLO)
        assert res.empty

    def test_no_title_match(self):
        with patch("lyricsync.sources.base.requests.get", return_value=_resp(200, self.SEARCH)):
            res = NeteaseSource(max_retries=1).fetch(TrackKey("Adele", "Skyfall"))
        assert res.definitive_not_found

    def test_missing_code_fails_closed(self):
        with patch("lyricsync.sources.base.requests.get", return_value=_resp(200, {"result": {}})):
            with pytest.raises(ParseFailure):
                NeteaseSource(max_retries=1).fetch(HELLO)

    @pytest.mark.parametrize(
        "body",
        [
            {"code": 200, "result": "oops"},
            {"code": 200, "result": []},
            {"code": 200, "result": {"songs": {"id": 1}}},
            {"code": 200, "result": {"songs": "none"}},
        ],
    )
    def test_malformed_search_fails_closed(self, body):
        with patch("lyricsync.sources.base.requests.get", return_value=_resp(200, body)):
            with pytest.raises(ParseFailure):
                NeteaseSource(max_retries=1).fetch(HELLO)

    def test_null_result_is_no_match(self):
        with patch("lyricsync.sources.base.requests.get", return_value=_resp(200, {"code": 200, "result": None})):
            res = NeteaseSource(max_retries=1).fetch(HELLO)
        assert res.definitive_not_found

    def test_malformed_lyric_body_fails_closed(self):
        with patch("lyricsync.sources.base.requests.get") as get:
            get.side_effect = [_resp(200, self.SEARCH), _resp(200, {"code": 200, "lrc": "text"})]
            with pytest.raises(ParseFailure):
                NeteaseSource(max_retries=1).fetch(HELLO)


PAGE = """
<html><body>
<div data-lyrics-container="true">
  <div data-exclude-from-selection="true">12 Contributors</div>
  [Verse 1]<br/>Hello, it's me<br/>I was wondering<br/>
</div>
<div data-lyrics-container="true">[Chorus]<br/>Hello from the other side &amp; more</div>
</body></html>
"""


class TestGenius:
    def test_extract_lyrics(self):
        text = extract_lyrics(PAGE)
        assert text is not None
        lines = [ln for ln in text.splitlines() if ln]
        assert lines == ["Hello, it's me", "I was wondering", "Hello from the other side & more"]

    def test_extract_lyrics_without_container(self):
        assert extract_lyrics("<html><body><p>nothing</p></body></html>") is None

    def test_clean_lyrics(self):
        assert clean_lyrics("[Intro]\nla\n\n\n\nla") == "la\n\nla"

    def test_fetch_scrapes_song_page(self):
        search = {
            "response": {
                "sections": [
                    {
                        "type": "song",
                        "hits": [
                            {
                                "result": {
                                    "url": "https://genius.com/Adele-hello-lyrics",
                                    "title": "Hello",
                                    "primary_artist": {"name": "Adele"},
                                }
                            }
                        ],
                    }
                ]
            }
        }
        with patch("lyricsync.sources.base.requests.get") as get:
            get.side_effect = [_resp(200, search), _resp(200, text=PAGE)]
            res = GeniusSource(max_retries=1).fetch(HELLO)
        assert res.lrc_text is None
        assert res.plain_text.startswith("Hello, it's me")
        assert get.call_args_list[1].args[0] == "https://genius.com/Adele-hello-lyrics"

    def test_bad_search_shape(self):
        with patch("lyricsync.sources.base.requests.get", return_value=_resp(200, {"meta": {}})):
            with pytest.raises(ParseFailure):
                GeniusSource(max_retries=1).fetch(HELLO)

    @pytest.mark.parametrize(
        "response",
        [
            None,
            {"sections": None},
            {"sections": ["song"]},
            {"sections": [{"type": "song", "hits": None}]},
            {"sections": [{"type": "song", "hits": [None]}]},
            {"sections": [{"type": "song", "hits": [{"result": "x"}]}]},
        ],
    )
    def test_malformed_search_fails_closed(self, response):
        with patch("lyricsync.sources.base.requests.get", return_value=_resp(200, {"response": response})):
            with pytest.raises(ParseFailure):
                GeniusSource(max_retries=1).fetch(HELLO)

    def test_hits_with_odd_fields_are_skipped(self):
        search = {
            "response": {
                "sections": [
                    {"type": "artist"},
                    {
                        "type": "song",
                        "hits": [
                            {"result": {"url": None, "title": "Hello"}},
                            {"result": {"url": "https://genius.com/Adele-hello-lyrics", "title": 5, "primary_artist": "Adele"}},
                        ],
                    },
                ]
            }
        }
        with patch("lyricsync.sources.base.requests.get", return_value=_resp(200, search)):
            res = GeniusSource(max_retries=1).fetch(HELLO)
        assert res.definitive_not_found
