from __future__ import annotations


INTERACTION_CAPTURED = "interaction:captured"
PATTERNS_DETECTED = "patterns:detected"
INTERACTION_ERROR = "interaction:error"
SOURCE_REGISTERED = "source:registered"
SOURCE_ERROR = "source:error"
RETENTION_CONFIGURED = "retention:configured"
RETENTION_APPLIED = "retention:applied"
DATA_PURGED = "data:purged"
PRIVACY_LEVEL_CONFIGURED = "privacy:level_configured"
PRIVACY_VIOLATION = "privacy:violation"
SYSTEM_SHUTDOWN = "system:shutdown"
ERROR = "error"


CORE_EVENT_TYPES: set[str] = {
    INTERACTION_CAPTURED,
    PATTERNS_DETECTED,
    INTERACTION_ERROR,
    SOURCE_REGISTERED,
    SOURCE_ERROR,
    RETENTION_CONFIGURED,
    RETENTION_APPLIED,
    DATA_PURGED,
    PRIVACY_LEVEL_CONFIGURED,
    PRIVACY_VIOLATION,
    SYSTEM_SHUTDOWN,
    ERROR,
}


def is_core_event_type(event_type: str) -> bool:
    return str(event_type) in CORE_EVENT_TYPES


def source_interaction_event(source: str) -> str:
    """Event type a registered interaction source publishes raw captures on."""
    return f"{source}:interaction"
