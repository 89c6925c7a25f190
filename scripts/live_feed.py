"""
Detect new live-log events between polls and hand them to a publisher once.
"""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Callable

from log_events import LogEvent, LogReader

logger = logging.getLogger(__name__)

DEFAULT_MAX_KEYS = 100
POLL_WINDOW = 20


class RecentKeys:
    """Bounded set of recently published keys, oldest evicted first."""

    def __init__(self, max_size: int = DEFAULT_MAX_KEYS) -> None:
        if max_size < 1:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self._keys: OrderedDict[str, None] = OrderedDict()
        self._lock = threading.Lock()

    def add(self, key: str) -> bool:
        """Record ``key``; False when it was already present."""
        with self._lock:
            if key in self._keys:
                return False
            self._keys[key] = None
            while len(self._keys) > self.max_size:
                self._keys.popitem(last=False)
            return True

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def snapshot(self) -> list[str]:
        with self._lock:
            return list(self._keys)


def event_key(event: LogEvent) -> str:
    return f"{event.timestamp}-{event.kind.value}-{event.player_name}"


class LiveEventFeed:
    def __init__(
        self,
        reader: LogReader,
        publish: Callable[[LogEvent], None] | None = None,
        keys: RecentKeys | None = None,
    ) -> None:
        self.reader = reader
        self.publish = publish
        self.keys = keys if keys is not None else RecentKeys()
        self._last_seen: str | None = None
        self._lock = threading.Lock()

    def poll(self) -> list[LogEvent]:
        """Events that appeared since the previous poll; the first poll only primes."""
        recent = self.reader.recent_events(POLL_WINDOW)
        if not recent:
            return []

        with self._lock:
            last_seen = self._last_seen
            self._last_seen = recent[-1].timestamp
        if last_seen is None:
            return []

        candidates = _after_timestamp(recent, last_seen)
        fresh = [event for event in candidates if self.keys.add(event_key(event))]
        for event in fresh:
            if self.publish is None:
                continue
            try:
                self.publish(event)
            except Exception:
                logger.exception("Error publishing event %s", event_key(event))
        return fresh


def _after_timestamp(events: list[LogEvent], timestamp: str) -> list[LogEvent]:
    for index, event in enumerate(events):
        if event.timestamp == timestamp:
            return events[index + 1:]
    return []
