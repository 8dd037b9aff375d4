from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from hearth.core.events.redaction import redact


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class HearthError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def __str__(self) -> str:
        return f"{self.code}: {self.user_message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": redact(self.context or {}),
        }


# ---- Core types ----
class ValidationError(HearthError):
    """Malformed capture input. Raised before any side effect."""

    def __init__(self, user_message: str = "Invalid interaction.", **ctx: Any):
        super().__init__("validation_error", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class ChildSafetyViolation(HearthError):
    def __init__(self, user_message: str = "Interaction content failed child safety validation.", **ctx: Any):
        super().__init__("child_safety_violation", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class ConfigurationError(HearthError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("configuration_error", user_message, severity=Severity.ERROR, recoverable=False, context=ctx)


class ProcessingError(HearthError):
    """
    Internal fault while anonymizing or filtering.

    Never escapes the privacy filter: callers receive a degraded, safe artifact instead.
    """

    def __init__(self, user_message: str = "Privacy processing failed.", **ctx: Any):
        super().__init__("processing_error", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)


def normalize_exception(exc: BaseException, *, subsystem: str, context: Dict[str, Any] | None = None) -> HearthError:
    # Passthrough
    if isinstance(exc, HearthError):
        return exc
    ctx = dict(context or {})
    ctx["exception_type"] = type(exc).__name__
    if subsystem in {"filter", "anonymizer"}:
        return ProcessingError(**ctx)
    if subsystem == "config":
        return ConfigurationError(**ctx)
    # Exception messages may echo user content; only the type name is kept.
    return HearthError(code="internal_error", user_message="Something went wrong.", context=ctx)
