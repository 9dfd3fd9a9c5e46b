from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import requests

from lyricsync.errors import NetworkFailure, ParseFailure

from .types import SearchCandidate, TrackKey

logger = logging.getLogger(__name__)

USER_AGENT = "lyricsync/0.1 (+https://github.com/lyricsync/lyricsync)"


@dataclass(frozen=True, slots=True)
class FetchResult:
    source: str
    lrc_text: str | None = None
    plain_text: str | None = None
    candidates: tuple[SearchCandidate, ...] = ()
    definitive_not_found: bool = False

    @property
    def empty(self) -> bool:
        return not (self.lrc_text or self.plain_text or self.candidates)


class LyricsSource:
    name: str

    def fetch(self, track: TrackKey) -> FetchResult:
        raise NotImplementedError


class HttpLyricsSource(LyricsSource):
    """
    Base for sources talking HTTP. ``_get`` retries transport errors and 5xx
    with linear backoff; 404 means "not there" and returns None.
    """

    def __init__(self, *, max_retries: int = 2, backoff_base_s: float = 1.0, timeout_s: float = 10.0):
        self.max_retries = max(1, max_retries)
        self.backoff_base_s = backoff_base_s
        self.timeout_s = timeout_s

    def _get(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response | None:
        hdrs = {"User-Agent": USER_AGENT, **(headers or {})}
        for attempt in range(1, self.max_retries + 1):
            try:
                r = requests.get(url, params=params, headers=hdrs, timeout=self.timeout_s)
                if r.status_code == 404:
                    return None
                if 400 <= r.status_code < 500 and r.status_code != 429:
                    raise NetworkFailure(f"{self.name}: HTTP {r.status_code} for {url}")
                r.raise_for_status()
                return r
            except requests.RequestException as e:
                logger.warning("%s error (attempt %s/%s): %s", self.name, attempt, self.max_retries, e)
                if attempt == self.max_retries:
                    raise NetworkFailure(f"{self.name}: {e}") from e
                time.sleep(self.backoff_base_s * attempt)
        return None

    def _get_json(self, url: str, *, params: dict[str, Any] | None = None) -> Any:
        r = self._get(url, params=params, headers={"Accept": "application/json"})
        if r is None:
            return None
        try:
            return r.json()
        except ValueError as e:
            raise ParseFailure(f"{self.name}: invalid JSON from {url}") from e


def require(data: Any, key: str, kind: type | tuple[type, ...], source: str) -> Any:
    """Read a mandatory field; a missing or mistyped field fails the whole response."""
    if not isinstance(data, dict) or key not in data:
        raise ParseFailure(f"{source}: missing field '{key}'")
    value = data[key]
    if not isinstance(value, kind):
        raise ParseFailure(f"{source}: field '{key}' has type {type(value).__name__}")
    return value
