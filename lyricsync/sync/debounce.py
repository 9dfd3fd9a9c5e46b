from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEBOUNCE_S = 0.1


class Debouncer(Generic[T]):
    """
    Collapse a burst of submissions into one call with the latest value,
    ``delay_s`` after the last submission.
    """

    def __init__(self, callback: Callable[[T], None], delay_s: float = DEBOUNCE_S):
        self.callback = callback
        self.delay_s = delay_s
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._pending: tuple[T] | None = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def submit(self, value: T) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._pending = (value,)
            self._timer = threading.Timer(self.delay_s, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> None:
        """Run the pending call now, on the caller's thread."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
        self._fire()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._pending = None

    def _fire(self) -> None:
        with self._lock:
            pending, self._pending, self._timer = self._pending, None, None
        if pending is None:
            return
        try:
            self.callback(pending[0])
        except Exception:
            logger.exception("Debounced callback failed")
