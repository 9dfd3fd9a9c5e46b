"""
Shared key-value store for out-of-process readers (status bars, widgets,
background pollers).

Writers replace the whole JSON file atomically, so a reader sees either the
old or the new content. Every key carries the time it was written; readers
decide how old is too old.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class SharedStore:
    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Shared store %s unreadable, starting empty: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".shared-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def set(self, key: str, value: Any, *, now: float | None = None) -> None:
        with self._lock:
            data = self._read()
            data[key] = {"value": value, "written_at": time.time() if now is None else now}
            self._write(data)

    def update(self, values: dict[str, Any], *, now: float | None = None) -> None:
        stamp = time.time() if now is None else now
        with self._lock:
            data = self._read()
            for k, v in values.items():
                data[k] = {"value": v, "written_at": stamp}
            self._write(data)

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._read().get(key)
        if not isinstance(entry, dict):
            return default
        return entry.get("value", default)

    def written_at(self, key: str) -> float | None:
        entry = self._read().get(key)
        if not isinstance(entry, dict):
            return None
        stamp = entry.get("written_at")
        return float(stamp) if isinstance(stamp, (int, float)) else None

    def delete(self, *keys: str) -> None:
        with self._lock:
            data = self._read()
            if not any(k in data for k in keys):
                return
            for k in keys:
                data.pop(k, None)
            self._write(data)
