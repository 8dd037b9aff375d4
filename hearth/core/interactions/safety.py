from __future__ import annotations

import re
from typing import Callable, Iterable, Optional, Pattern


# (serialized_content) -> True when the content may be stored
SafetyPredicate = Callable[[str], bool]

DEFAULT_BLOCKED_TERMS = ("violence", "inappropriate", "unsafe", "harmful")


class KeywordSafetyFilter:
    """
    Default content-safety gate: blocks content containing any listed term as
    a whole word (case-insensitive). "unsafe" blocks, "unsafely" does not.
    """

    def __init__(self, terms: Iterable[str] = DEFAULT_BLOCKED_TERMS):
        cleaned = sorted({str(t).strip().lower() for t in terms if str(t).strip()})
        self.terms = tuple(cleaned)
        self._rx: Optional[Pattern[str]] = None
        if cleaned:
            self._rx = re.compile(r"\b(?:" + "|".join(re.escape(t) for t in cleaned) + r")\b", re.IGNORECASE)

    def __call__(self, content: str) -> bool:
        if self._rx is None or not content:
            return True
        return self._rx.search(content) is None


def allow_all(content: str) -> bool:
    return True
