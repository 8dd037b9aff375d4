from __future__ import annotations

import collections
import queue
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from hearth.core.events.dispatcher import start_worker, stop_worker
from hearth.core.events.models import BaseEvent, EventSeverity, SourceSubsystem
from hearth.core.events.registry import ERROR
from hearth.core.events.stats import BusCounters


class OverflowPolicy(str, Enum):
    DROP_OLDEST = "DROP_OLDEST"
    DROP_NEWEST = "DROP_NEWEST"


class EventBusConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    max_queue_size: int = Field(default=1000, ge=10, le=100_000)
    max_subscriber_backlog: int = Field(default=1000, ge=10, le=100_000)
    overflow_policy: OverflowPolicy = OverflowPolicy.DROP_OLDEST
    shutdown_grace_seconds: float = Field(default=5.0, ge=0.1, le=60.0)
    log_dropped_events: bool = True
    keep_recent: int = 500


@dataclass
class _Sub:
    event_type: str
    handler: Callable[[BaseEvent], None]
    priority: int
    worker_name: str
    worker: Any


class EventBus:
    """
    In-process event bus shared by the collector, retention and privacy filter.

    - publish is non-blocking (drop on overflow per policy)
    - ordering guarantee: each subscriber processes events sequentially
    - handler failures are isolated (caught) and emitted as `error` events
    - queues are bounded: the dispatch queue and every subscriber backlog
    """

    def __init__(self, *, cfg: EventBusConfig, logger=None):
        self.cfg = cfg
        self.logger = logger

        self._lock = threading.Lock()
        self._cv = threading.Condition(self._lock)
        self._queue: Deque[BaseEvent] = collections.deque()
        self._subs: List[_Sub] = []
        self._running = False
        self._accepting = True
        self._dispatching = False
        self._stats = BusCounters()
        self._dropped_tail: Deque[Dict[str, Any]] = collections.deque(maxlen=200)
        self._recent_events: Deque[Dict[str, Any]] = collections.deque(maxlen=max(100, int(cfg.keep_recent)))

        self._dispatcher_thread = threading.Thread(target=self._dispatch_loop, name="eventbus-dispatch", daemon=True)
        if self.cfg.enabled:
            self.start()

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._accepting = True
        self._dispatcher_thread.start()

    def enabled(self) -> bool:
        return bool(self.cfg.enabled) and self._running

    def subscribe(self, event_type: str, handler: Callable[[BaseEvent], None], priority: int = 50) -> None:
        """
        event_type supports:
        - exact match ("interaction:captured")
        - prefix match ("interaction:*", "retention.*")
        - wildcard all ("*")
        """
        if not callable(handler):
            raise ValueError("handler must be callable")
        event_type = str(event_type)
        with self._lock:
            # one worker per handler to preserve ordering for that subscriber
            worker_name = f"eventbus-sub-{len(self._subs)+1}"
            worker = start_worker(
                name=worker_name,
                handler=lambda ev, h=handler: self._safe_handle(h, ev),
                max_pending=int(self.cfg.max_subscriber_backlog),
            )
            self._subs.append(_Sub(event_type=event_type, handler=handler, priority=int(priority), worker_name=worker_name, worker=worker))
            self._subs.sort(key=lambda s: int(s.priority))
            self._stats.gauges(subscribers=len(self._subs))

    def unsubscribe(self, handler: Callable[[BaseEvent], None]) -> int:
        removed = 0
        stopping: List[_Sub] = []
        with self._lock:
            keep: List[_Sub] = []
            for s in self._subs:
                if s.handler is handler:
                    removed += 1
                    stopping.append(s)
                else:
                    keep.append(s)
            self._subs = keep
            self._stats.gauges(subscribers=len(self._subs))
        for s in stopping:
            stop_worker(s.worker, grace_seconds=0.5)
        return removed

    def publish(self, ev: BaseEvent) -> bool:
        return self._enqueue(ev)

    def publish_nowait(self, ev: BaseEvent) -> bool:
        return self._enqueue(ev)

    def emit(
        self,
        event_type: str,
        payload: Optional[Dict[str, Any]] = None,
        *,
        source_subsystem: SourceSubsystem = SourceSubsystem.system,
        severity: EventSeverity = EventSeverity.INFO,
        trace_id: Optional[str] = None,
    ) -> bool:
        return self._enqueue(
            BaseEvent(event_type=event_type, source_subsystem=source_subsystem, severity=severity, trace_id=trace_id, payload=dict(payload or {}))
        )

    def wait_idle(self, timeout: float = 1.0) -> bool:
        """Block until the dispatch queue and every subscriber backlog are empty."""
        deadline = time.time() + float(timeout)
        while time.time() < deadline:
            with self._lock:
                pending = bool(self._queue) or self._dispatching
                subs = list(self._subs)
            if not pending and all(s.worker.idle() for s in subs):
                return True
            time.sleep(0.01)
        return False

    def get_stats(self) -> Dict[str, Any]:
        st = self._stats.snapshot()
        with self._lock:
            recent = list(self._recent_events)[:50]
            dropped = list(self._dropped_tail)[:50]
        return {
            "enabled": self.enabled(),
            "published_total": st.published_total,
            "dropped_total": st.dropped_total,
            "delivered_total": st.delivered_total,
            "handler_errors_total": st.handler_errors_total,
            "queue_depth": st.queue_depth,
            "subscribers": st.subscribers,
            "per_type_published": st.per_type_published,
            "dropped_by_reason": st.dropped_by_reason,
            "handler_errors_by_type": st.handler_errors_by_type,
            "recent": recent,
            "dropped": dropped,
        }

    def list_subscribers(self) -> List[Dict[str, Any]]:
        with self._lock:
            subs = list(self._subs)
        return [{"event_type": s.event_type, "priority": s.priority, "handler": getattr(s.handler, "__name__", "handler")} for s in subs]

    def dump_recent(self, n: int = 200) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._recent_events)[: max(1, int(n))]

    def set_enabled(self, enabled: bool) -> None:
        self.cfg.enabled = bool(enabled)

    def shutdown(self, grace_seconds: Optional[float] = None) -> None:
        self._accepting = False
        if grace_seconds is None:
            grace_seconds = float(self.cfg.shutdown_grace_seconds)
        deadline = time.time() + float(grace_seconds)
        # drain dispatcher queue
        with self._lock:
            self._cv.notify_all()
        while time.time() < deadline:
            with self._lock:
                if not self._queue:
                    break
            time.sleep(0.05)
        # stop dispatcher
        self._running = False
        with self._lock:
            self._cv.notify_all()
        if self._dispatcher_thread.is_alive():
            self._dispatcher_thread.join(timeout=max(0.1, float(grace_seconds)))
        # stop workers
        with self._lock:
            subs = list(self._subs)
            self._subs = []
            self._stats.gauges(subscribers=0)
        for s in subs:
            stop_worker(s.worker, grace_seconds=0.5)

    # ---- internals ----
    def _record_drop(self, ev: BaseEvent, reason: str) -> None:
        self._stats.dropped(reason)
        if self.cfg.log_dropped_events:
            self._dropped_tail.appendleft({"event_type": ev.event_type, "trace_id": ev.trace_id, "reason": reason})

    def _enqueue(self, ev: BaseEvent) -> bool:
        if not self._accepting or not self.cfg.enabled:
            return False
        with self._lock:
            if len(self._queue) >= int(self.cfg.max_queue_size):
                if self.cfg.overflow_policy == OverflowPolicy.DROP_NEWEST:
                    self._record_drop(ev, "drop_newest")
                    return False
                # DROP_OLDEST
                dropped = self._queue.popleft()
                self._record_drop(dropped, "drop_oldest")
            self._queue.append(ev)
            self._stats.published(ev.event_type)
            self._stats.gauges(queue_depth=len(self._queue))
            self._recent_events.appendleft(ev.summary())
            self._cv.notify()
            return True

    def _dispatch_loop(self) -> None:
        while self._running:
            with self._lock:
                if not self._queue:
                    self._stats.gauges(queue_depth=0)
                    self._cv.wait(timeout=0.2)
                    continue
                ev = self._queue.popleft()
                self._dispatching = True
                self._stats.gauges(queue_depth=len(self._queue))
                subs = list(self._subs)
            # deliver to matching subscribers (subscriber priority already sorted)
            delivered = 0
            for s in subs:
                if not _match(s.event_type, ev.event_type):
                    continue
                try:
                    s.worker.q.put_nowait(ev)
                    delivered += 1
                except queue.Full:
                    with self._lock:
                        self._record_drop(ev, f"backlog_full:{s.worker_name}")
            if delivered:
                self._stats.delivered(delivered)
            with self._lock:
                self._dispatching = False

    def _safe_handle(self, handler: Callable[[BaseEvent], None], ev: BaseEvent) -> None:
        try:
            handler(ev)
        except Exception as e:  # noqa: BLE001
            self._stats.handler_failed(ev.event_type)
            name = getattr(handler, "__name__", "handler")
            if self.logger is not None:
                self.logger.warning(f"[{ev.trace_id or 'eventbus'}] Event handler {name} failed on {ev.event_type}: {type(e).__name__}")
            # avoid recursion storms: a failing `error` subscriber does not produce another `error` event
            if ev.event_type == ERROR:
                return
            self.publish_nowait(
                BaseEvent(
                    event_type=ERROR,
                    trace_id=ev.trace_id,
                    source_subsystem=SourceSubsystem.events,
                    severity=EventSeverity.ERROR,
                    payload={"handler": name, "event_type": ev.event_type, "error_type": type(e).__name__},
                )
            )


def _match(subscribed: str, event_type: str) -> bool:
    subscribed = str(subscribed)
    if subscribed == "*":
        return True
    if subscribed.endswith(".*") or subscribed.endswith(":*"):
        return str(event_type).startswith(subscribed[:-1])
    return subscribed == event_type
