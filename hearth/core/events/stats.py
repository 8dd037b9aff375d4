from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Optional


def drop_category(reason: str) -> str:
    """`backlog_full:<worker>` counts under `backlog_full`; worker names stay in the dropped tail."""
    return reason.split(":", 1)[0]


@dataclass(frozen=True)
class BusStatsSnapshot:
    published_total: int = 0
    delivered_total: int = 0
    dropped_total: int = 0
    handler_errors_total: int = 0
    queue_depth: int = 0
    subscribers: int = 0
    per_type_published: Dict[str, int] = field(default_factory=dict)
    dropped_by_reason: Dict[str, int] = field(default_factory=dict)
    handler_errors_by_type: Dict[str, int] = field(default_factory=dict)


class BusCounters:
    """Thread-safe counters and gauges behind `EventBus.get_stats()`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._published: Counter = Counter()
        self._dropped: Counter = Counter()
        self._handler_errors: Counter = Counter()
        self._delivered = 0
        self._queue_depth = 0
        self._subscribers = 0

    def published(self, event_type: str) -> None:
        with self._lock:
            self._published[event_type] += 1

    def dropped(self, reason: str) -> None:
        with self._lock:
            self._dropped[drop_category(reason)] += 1

    def delivered(self, n: int) -> None:
        with self._lock:
            self._delivered += int(n)

    def handler_failed(self, event_type: str) -> None:
        with self._lock:
            self._handler_errors[event_type] += 1

    def gauges(self, *, queue_depth: Optional[int] = None, subscribers: Optional[int] = None) -> None:
        with self._lock:
            if queue_depth is not None:
                self._queue_depth = int(queue_depth)
            if subscribers is not None:
                self._subscribers = int(subscribers)

    def snapshot(self) -> BusStatsSnapshot:
        with self._lock:
            return BusStatsSnapshot(
                published_total=sum(self._published.values()),
                delivered_total=self._delivered,
                dropped_total=sum(self._dropped.values()),
                handler_errors_total=sum(self._handler_errors.values()),
                queue_depth=self._queue_depth,
                subscribers=self._subscribers,
                per_type_published=dict(self._published),
                dropped_by_reason=dict(self._dropped),
                handler_errors_by_type=dict(self._handler_errors),
            )
