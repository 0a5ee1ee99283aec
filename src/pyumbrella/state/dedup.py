"""Best-effort suppression of redelivered bus messages.

The broker delivers at-least-once and device payloads carry no sequence
number, so the only usable identity of a message is its topic plus its
bytes. Two identical messages inside the window are treated as one.
"""

from __future__ import annotations

import hashlib
import time
from collections import OrderedDict
from collections.abc import Callable


class DuplicateFilter:
    """Sliding-window filter keyed on ``(topic, sha256(payload))``.

    Memory is bounded by *max_entries*; the oldest entries are evicted
    first. A window of ``0`` disables filtering.
    """

    def __init__(
        self,
        window_seconds: float,
        *,
        max_entries: int = 4096,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = window_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._seen: OrderedDict[tuple[str, bytes], float] = OrderedDict()

    @property
    def enabled(self) -> bool:
        return self._window > 0

    def __len__(self) -> int:
        return len(self._seen)

    def _expire(self, now: float) -> None:
        cutoff = now - self._window
        while self._seen:
            _key, seen_at = next(iter(self._seen.items()))
            if seen_at >= cutoff:
                break
            self._seen.popitem(last=False)

    def is_duplicate(self, topic: str, payload: bytes) -> bool:
        """Record the message and report whether it was seen inside the window."""
        if not self.enabled:
            return False

        now = self._clock()
        self._expire(now)

        key = (topic, hashlib.sha256(payload).digest())
        if key in self._seen:
            return True

        self._seen[key] = now
        while len(self._seen) > self._max_entries:
            self._seen.popitem(last=False)
        return False
