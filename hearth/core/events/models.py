from __future__ import annotations

import json
import time
import uuid
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hearth.core.events.redaction import redact


class EventSeverity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class SourceSubsystem(str, Enum):
    collector = "collector"
    sources = "sources"
    retention = "retention"
    privacy_filter = "privacy_filter"
    compliance = "compliance"
    policy = "policy"
    events = "events"
    system = "system"


class BaseEvent(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    event_type: str
    timestamp: float = Field(default_factory=lambda: time.time())
    trace_id: Optional[str] = None
    source_subsystem: SourceSubsystem
    severity: EventSeverity = EventSeverity.INFO
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("event_type")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v = str(v or "").strip()
        if not v:
            raise ValueError("event_type required")
        return v

    @field_validator("payload", mode="before")
    @classmethod
    def _jsonable_and_redacted(cls, v: Any) -> Dict[str, Any]:
        if not isinstance(v, dict):
            raise ValueError("payload must be an object")
        safe = redact(v)
        try:
            json.dumps(safe, ensure_ascii=False)
        except Exception as e:  # noqa: BLE001
            raise ValueError("payload must be JSON-serializable") from e
        return safe

    def summary(self) -> Dict[str, Any]:
        """Event metadata without payload (kept in the bus's recent-events ring)."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "timestamp": self.timestamp,
            "trace_id": self.trace_id,
            "source_subsystem": self.source_subsystem.value,
            "severity": self.severity.value,
        }
