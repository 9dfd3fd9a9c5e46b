from __future__ import annotations

from dataclasses import dataclass
import logging
import time
from typing import Any

import requests

from lyricsync.errors import CredentialInvalid, NetworkFailure, ParseFailure

logger = logging.getLogger(__name__)

CURRENTLY_PLAYING_URL = "https://api.spotify.com/v1/me/player/currently-playing"


@dataclass(frozen=True, slots=True)
class PlaybackSnapshot:
    track_id: str
    title: str
    artist: str
    album: str
    elapsed: float  # seconds
    duration: float | None
    is_playing: bool
    observed_at: float  # time.monotonic() at receipt

    @property
    def display(self) -> str:
        return f"{self.artist} - {self.title}" if self.artist else self.title


def _field(data: Any, key: str, kind: type | tuple[type, ...]) -> Any:
    if not isinstance(data, dict) or key not in data or not isinstance(data[key], kind):
        raise ParseFailure(f"currently-playing: missing or invalid '{key}'")
    return data[key]


def parse_currently_playing(data: Any, observed_at: float) -> PlaybackSnapshot | None:
    """
    Decode the currently-playing payload. ``None`` means nothing is playing
    or the item is not a track (ads, podcasts). Missing fields fail loudly.
    """
    if not isinstance(data, dict):
        raise ParseFailure("currently-playing: expected a JSON object")
    item = data.get("item")
    if item is None:
        return None
    if data.get("currently_playing_type", "track") != "track":
        return None

    is_playing = _field(data, "is_playing", bool)
    progress_ms = _field(data, "progress_ms", (int, float))
    track_id = _field(item, "id", str)
    name = _field(item, "name", str)
    artists = _field(item, "artists", list)
    if not artists:
        raise ParseFailure("currently-playing: track has no artists")
    artist = _field(artists[0], "name", str)
    album = _field(_field(item, "album", dict), "name", str)
    duration_ms = item.get("duration_ms")

    return PlaybackSnapshot(
        track_id=track_id,
        title=name,
        artist=artist,
        album=album,
        elapsed=max(float(progress_ms), 0.0) / 1000,
        duration=duration_ms / 1000 if isinstance(duration_ms, (int, float)) and duration_ms > 0 else None,
        is_playing=is_playing,
        observed_at=observed_at,
    )


class SpotifyPlayerClient:
    def __init__(self, *, timeout_s: float = 10.0, url: str = CURRENTLY_PLAYING_URL):
        self.timeout_s = timeout_s
        self.url = url

    def currently_playing(self, token: str) -> PlaybackSnapshot | None:
        try:
            r = requests.get(
                self.url,
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
                timeout=self.timeout_s,
            )
        except requests.RequestException as e:
            raise NetworkFailure(f"player status unreachable: {e}") from e

        observed_at = time.monotonic()
        if r.status_code == 401:
            raise CredentialInvalid("player status rejected the access token")
        if r.status_code >= 400:
            raise NetworkFailure(f"player status returned HTTP {r.status_code}")
        if r.status_code == 204 or not r.content:
            return None
        try:
            data = r.json()
        except ValueError as e:
            raise ParseFailure("player status: invalid JSON") from e
        return parse_currently_playing(data, observed_at)
