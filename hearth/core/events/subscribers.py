from __future__ import annotations

import json
import os
import threading

from hearth.core.events.models import BaseEvent
from hearth.core.events.registry import is_core_event_type


class EventJsonlSubscriber:
    """
    Writes events to logs/events/hearth_events.jsonl.

    Core events carry sanitized/derived payloads and are written in full (after
    the model's redaction). Anything else, in particular raw `<source>:interaction`
    captures, is written as metadata only.
    """

    def __init__(self, *, path: str = os.path.join("logs", "events", "hearth_events.jsonl")):
        self.path = path
        self._lock = threading.Lock()
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)

    def __call__(self, ev: BaseEvent) -> None:
        if is_core_event_type(ev.event_type):
            rec = ev.model_dump(mode="json")
        else:
            rec = ev.summary()
        line = json.dumps(rec, ensure_ascii=False)
        with self._lock:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")


class LoggingSubscriber:
    def __init__(self, *, logger, enabled: bool = True):
        self.logger = logger
        self.enabled = bool(enabled)

    def __call__(self, ev: BaseEvent) -> None:
        if not self.enabled or self.logger is None:
            return
        self.logger.info(f"[{ev.trace_id or '-'}] event {ev.event_type} from {ev.source_subsystem.value} ({ev.severity.value})")
