from __future__ import annotations

import hashlib
import logging
import os
import re
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

DAY_S = 86_400.0
# most filesystems cap a name at 255 bytes
MAX_NAME_BYTES = 200
_STRIP_RE = re.compile(r"[^A-Za-z0-9 ]+")
_SPACES_RE = re.compile(r"\s+")


def _clean(value: str) -> str:
    return _SPACES_RE.sub(" ", _STRIP_RE.sub("", value or "")).strip().lower()


@dataclass(frozen=True, slots=True)
class CacheKey:
    artist: str
    title: str

    @classmethod
    def normalize(cls, artist: str, title: str) -> "CacheKey":
        """
        Keep [A-Za-z0-9 ] only. Different spellings that collapse to the same
        key are treated as the same song.
        """
        n_artist, n_title = _clean(artist), _clean(title)
        if not n_title:
            # titles in non-Latin scripts strip to nothing; keep them apart
            raw = f"{(artist or '').strip().lower()}\x00{(title or '').strip().lower()}"
            n_title = hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]
        return cls(artist=n_artist, title=n_title)

    @property
    def filename(self) -> str:
        name = f"{self.artist} - {self.title}.lrc"
        if len(name.encode("utf-8")) <= MAX_NAME_BYTES:
            return name
        digest = hashlib.sha1(f"{self.artist}\x00{self.title}".encode("utf-8")).hexdigest()
        return f"{digest}.lrc"


@dataclass(frozen=True, slots=True)
class CacheRecord:
    key: CacheKey
    raw_text: str
    last_access: float


class LyricCacheStore:
    """
    One .lrc file per normalized key; the file mtime is the last access time.
    """

    def __init__(self, directory: Path, ttl_days: float = 30.0):
        self.directory = Path(directory)
        self.ttl_s = ttl_days * DAY_S
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, artist: str, title: str) -> Path:
        return self.directory / CacheKey.normalize(artist, title).filename

    def _expired(self, mtime: float, now: float) -> bool:
        return now - mtime > self.ttl_s

    def get(self, artist: str, title: str) -> CacheRecord | None:
        key = CacheKey.normalize(artist, title)
        path = self.directory / key.filename
        now = time.time()
        try:
            mtime = path.stat().st_mtime
            if self._expired(mtime, now):
                logger.info("Cache entry expired: %s", path.name)
                path.unlink(missing_ok=True)
                return None
            raw = path.read_text(encoding="utf-8")
            # touch: a hit counts as an access
            os.utime(path, (now, now))
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Cache read failed for %s: %s", path.name, e)
            return None
        return CacheRecord(key=key, raw_text=raw, last_access=now)

    def put(self, artist: str, title: str, raw_text: str) -> bool:
        """
        Store ``raw_text`` unless a record already exists (first write wins).
        Returns True when this call created the record; a failed write is
        logged and returns False.
        """
        path = self.path_for(artist, title)
        try:
            if path.exists():
                logger.debug("Cache entry exists, keeping it: %s", path.name)
                return False

            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".lrc")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(raw_text)
                try:
                    # link() refuses to overwrite, readers never see a partial file
                    os.link(tmp_name, path)
                except FileExistsError:
                    return False
            finally:
                Path(tmp_name).unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Cache write failed for %s: %s", path.name, e)
            return False
        logger.debug("Cached lyrics: %s", path.name)
        return True

    def delete(self, artist: str, title: str) -> bool:
        path = self.path_for(artist, title)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def records(self) -> list[Path]:
        return sorted(p for p in self.directory.glob("*.lrc") if not p.name.startswith(".tmp-"))

    def evict_expired(self, now: float | None = None) -> int:
        now = time.time() if now is None else now
        removed = 0
        for path in self.records():
            try:
                if self._expired(path.stat().st_mtime, now):
                    path.unlink()
                    removed += 1
                    logger.info("Evicted unused cache entry: %s", path.name)
            except FileNotFoundError:
                continue
        return removed

    def clear(self) -> int:
        removed = 0
        for path in self.records():
            path.unlink(missing_ok=True)
            removed += 1
        return removed
