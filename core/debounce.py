import time
import logging
from typing import Callable, Iterable, Optional

log = logging.getLogger(__name__)

# Aggregate subjects. Feed subjects are plain positive ints.
ALL_FEEDS = "all"
FOLDER_PREFIX = "folder:"


def folder_subject(folder_id: int) -> str:
    return f"{FOLDER_PREFIX}{int(folder_id)}"


def is_aggregate(subject) -> bool:
    return subject == ALL_FEEDS or (isinstance(subject, str) and subject.startswith(FOLDER_PREFIX))


class DebounceGate:
    """Answers "was this subject refreshed recently enough to skip?".

    Timestamps come from a monotonic clock. Windows are read on every call,
    so changing them at runtime affects the very next ``is_fresh``.
    A window of zero disables debouncing for that category.
    """

    def __init__(self, feed_window_seconds: float = 240, all_window_seconds: float = 0,
                 clock: Callable[[], float] = time.monotonic):
        self.feed_window_seconds = float(feed_window_seconds)
        self.all_window_seconds = float(all_window_seconds)
        self._clock = clock
        self._last_refreshed = {}

    def configure(self, feed_window_seconds: Optional[float] = None, all_window_seconds: Optional[float] = None):
        if feed_window_seconds is not None:
            self.feed_window_seconds = max(0.0, float(feed_window_seconds))
        if all_window_seconds is not None:
            self.all_window_seconds = max(0.0, float(all_window_seconds))
        log.debug(f"Debounce windows: feed={self.feed_window_seconds}s all={self.all_window_seconds}s")

    def window_for(self, subject) -> float:
        if is_aggregate(subject):
            return self.all_window_seconds
        return self.feed_window_seconds

    def last_refreshed(self, subject) -> Optional[float]:
        return self._last_refreshed.get(subject)

    def is_fresh(self, subject) -> bool:
        last = self._last_refreshed.get(subject)
        if last is None:
            return False
        return (self._clock() - last) < self.window_for(subject)

    def is_fresh_aggregate(self, subjects: Iterable) -> bool:
        return all(self.is_fresh(s) for s in subjects)

    def stale(self, subjects: Iterable) -> list:
        """Return the subjects that are not fresh, preserving order and dropping duplicates."""
        return [s for s in dict.fromkeys(subjects) if not self.is_fresh(s)]

    def mark_refreshed(self, subject, at: Optional[float] = None):
        when = self._clock() if at is None else float(at)
        # Replace the whole map so concurrent readers never see a partial update.
        updated = dict(self._last_refreshed)
        updated[subject] = when
        self._last_refreshed = updated
