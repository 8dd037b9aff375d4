from __future__ import annotations

from typing import Any, Dict, List, Optional, Set

from hearth.core.interactions.models import UserInteraction
from hearth.core.privacy.detector import PiiDetector, PiiMatch
from hearth.core.privacy.models import PrivacyLevel


CYCLE_MARKER = "[CYCLE_REMOVED]"
DEPTH_MARKER = "[DEPTH_LIMIT]"
UNSUPPORTED_MARKER = "[UNSUPPORTED_REMOVED]"
REDACTED_MARKER = "[REDACTED]"


def removal_marker(category: str) -> str:
    return f"[{category.upper()}_REMOVED]"


def _replace_spans(text: str, matches: List[PiiMatch]) -> str:
    out: List[str] = []
    cursor = 0
    for m in matches:
        out.append(text[cursor : m.start])
        out.append(removal_marker(m.category))
        cursor = m.end
    out.append(text[cursor:])
    return "".join(out)


class Sanitizer:
    """
    Recursive PII removal over JSON-like values:
    str | int | float | bool | None | list | tuple | dict.

    Strings have every detected span replaced by `[<CATEGORY>_REMOVED]` and are
    re-scanned until clean. Other scalars pass through unchanged. Anything
    outside the union, cycles and over-deep nesting become fixed markers, so the
    result is always finite and JSON-safe.
    """

    def __init__(self, detector: Optional[PiiDetector] = None, *, max_depth: int = 32, max_passes: int = 3):
        self.detector = detector or PiiDetector()
        self.max_depth = int(max_depth)
        self.max_passes = max(1, int(max_passes))

    def sanitize_text(self, text: str, level: PrivacyLevel = PrivacyLevel.STANDARD) -> str:
        if not text:
            return text
        out = text
        for _ in range(self.max_passes):
            matches = self.detector.detect(out, level)
            if not matches:
                return out
            out = _replace_spans(out, matches)
        if self.detector.detect(out, level):
            return REDACTED_MARKER
        return out

    def sanitize(self, value: Any, level: PrivacyLevel = PrivacyLevel.STANDARD) -> Any:
        return self._visit(value, level, 0, set())

    def sanitize_interaction(self, interaction: UserInteraction, level: PrivacyLevel = PrivacyLevel.STANDARD) -> UserInteraction:
        """
        New interaction with every content-bearing field sanitized. Identifiers
        (user_id, session_id), timestamp, source and type are kept as-is.
        """
        data = interaction.model_dump()
        clean = dict(data)
        for key in ("context", "outcome", "patterns", "description", "metadata"):
            clean[key] = self.sanitize(data.get(key), level)
        return UserInteraction.model_validate(clean)

    # ---- visitor ----
    def _visit(self, value: Any, level: PrivacyLevel, depth: int, ancestors: Set[int]) -> Any:
        if value is None or isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, str):
            return self.sanitize_text(value, level)
        if isinstance(value, (dict, list, tuple)):
            if id(value) in ancestors:
                return CYCLE_MARKER
            if depth >= self.max_depth:
                return DEPTH_MARKER
            ancestors.add(id(value))
            try:
                if isinstance(value, dict):
                    return self._visit_dict(value, level, depth, ancestors)
                items = [self._visit(v, level, depth + 1, ancestors) for v in value]
                return tuple(items) if isinstance(value, tuple) else items
            finally:
                ancestors.discard(id(value))
        return UNSUPPORTED_MARKER

    def _visit_dict(self, value: Dict[Any, Any], level: PrivacyLevel, depth: int, ancestors: Set[int]) -> Dict[Any, Any]:
        out: Dict[Any, Any] = {}
        for k, v in value.items():
            if isinstance(k, str):
                key: Any = self.sanitize_text(k, level)
            elif k is None or isinstance(k, (bool, int, float)):
                key = k
            else:
                key = UNSUPPORTED_MARKER
            # two keys can collapse onto the same marker
            if key in out:
                n = 2
                while f"{key}#{n}" in out:
                    n += 1
                key = f"{key}#{n}"
            out[key] = self._visit(v, level, depth + 1, ancestors)
        return out
