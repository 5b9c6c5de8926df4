"""Shared progress accounting across workers."""

from __future__ import annotations

import threading


class ProgressCounter:
    """Running total of exported documents, shared by all sessions.

    The lock is only held inside add(), never across an await.
    """

    def __init__(self) -> None:
        self._total = 0
        self._lock = threading.Lock()

    def add(self, n: int) -> int:
        """Add n documents and return the new total."""
        if n < 0:
            raise ValueError(f"Cannot add a negative count: {n}")
        with self._lock:
            self._total += n
            return self._total

    @property
    def total(self) -> int:
        with self._lock:
            return self._total


def format_progress(batch: int, total: int) -> str:
    """Diagnostic line written after every page."""
    return f"Fetched batch of {batch}, have now processed {total}"
