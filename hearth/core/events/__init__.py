"""
In-process event bus shared by the interaction pipeline.
"""

from hearth.core.events.bus import EventBus, EventBusConfig, OverflowPolicy
from hearth.core.events.models import BaseEvent, EventSeverity, SourceSubsystem
from hearth.core.events.redaction import redact

__all__ = [
    "redact",
    "BaseEvent",
    "EventSeverity",
    "SourceSubsystem",
    "EventBus",
    "OverflowPolicy",
    "EventBusConfig",
]
