from __future__ import annotations

import threading


class Stats:
    """Counts failures that are reported out of band instead of raised."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._errors = 0

    def error(self) -> None:
        with self._lock:
            self._errors += 1

    @property
    def errors(self) -> int:
        with self._lock:
            return self._errors

    def reset(self) -> None:
        with self._lock:
            self._errors = 0
