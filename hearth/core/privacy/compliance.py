from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel

from hearth.core.interactions.models import UserInteraction
from hearth.core.privacy.detector import TIER_SEVERITY, TIER_VIOLATION, PiiDetector
from hearth.core.privacy.models import (
    ConfidenceTier,
    PrivacyLevel,
    PrivacyRecommendation,
    PrivacyValidationResult,
    PrivacyViolation,
    RiskLevel,
)


MAX_WALK_DEPTH = 64
MAX_PATHS_PER_CATEGORY = 10

_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

_TIER_LABEL = {
    ConfidenceTier.HIGH: "High-confidence",
    ConfidenceTier.MEDIUM: "Medium-confidence",
    ConfidenceTier.LOW: "Low-confidence",
}

_TIER_ACTION = {
    ConfidenceTier.HIGH: "Remove or tokenize the value before it is stored or shared.",
    ConfidenceTier.MEDIUM: "Review the value and sanitize it if it identifies a person.",
    ConfidenceTier.LOW: "Generalize or drop the value while MAXIMUM privacy is active.",
}

_TIER_RECOMMENDATION = {
    ConfidenceTier.HIGH: ("remove_high_confidence_pii", "Run the payload through the sanitizer; it carries direct identifiers."),
    ConfidenceTier.MEDIUM: ("review_potential_pii", "Names, addresses or dates in the payload may identify a person."),
    ConfidenceTier.LOW: ("apply_maximum_privacy_generalization", "Coarsen free text, numbers and locations for this user."),
}


@dataclass
class _Finding:
    tier: ConfidenceTier
    paths: List[str] = field(default_factory=list)
    count: int = 0


class ComplianceValidator:
    """
    Audits arbitrary payloads for PII. Findings are returned, never raised, and
    never include the matched text itself (only where it was found).
    """

    def __init__(self, *, detector: Optional[PiiDetector] = None, policy_store=None, logger=None):
        self.detector = detector or PiiDetector()
        self.policy_store = policy_store
        self.logger = logger

    def validate_compliance(self, data: Any, user_id: str) -> PrivacyValidationResult:
        findings: Dict[str, _Finding] = {}
        complete = True
        try:
            level = self._level_for(data, user_id)
            self._walk(data, "$", level, findings, 0, set())
        except Exception as e:  # noqa: BLE001
            complete = False
            if self.logger is not None:
                self.logger.warning(f"Compliance scan incomplete: {type(e).__name__}")
        return self._result(findings, complete=complete)

    # ---- internals ----
    def _level_for(self, data: Any, user_id: str) -> PrivacyLevel:
        if self.policy_store is None:
            return PrivacyLevel.STANDARD
        participants: List[str] = []
        if isinstance(data, UserInteraction):
            participants = list(data.context.participants)
        elif isinstance(data, dict):
            raw = data.get("participants")
            if isinstance(raw, (list, tuple)):
                participants = [p for p in raw if isinstance(p, str)]
        return self.policy_store.effective_level(str(user_id), participants)

    def _scan_text(self, text: str, path: str, level: PrivacyLevel, findings: Dict[str, _Finding]) -> None:
        for m in self.detector.detect(text, level):
            f = findings.get(m.category)
            if f is None:
                f = _Finding(tier=m.tier)
                findings[m.category] = f
            f.count += 1
            if path not in f.paths and len(f.paths) < MAX_PATHS_PER_CATEGORY:
                f.paths.append(path)

    def _walk(self, obj: Any, path: str, level: PrivacyLevel, findings: Dict[str, _Finding], depth: int, seen: Set[int]) -> None:
        if obj is None or isinstance(obj, (bool, int, float, bytes, bytearray)):
            return
        if isinstance(obj, str):
            self._scan_text(obj, path, level, findings)
            return
        if depth >= MAX_WALK_DEPTH or id(obj) in seen:
            return
        seen.add(id(obj))
        if isinstance(obj, dict):
            for k, v in list(obj.items()):
                key = k if isinstance(k, str) else None
                if key is not None:
                    self._scan_text(key, f"{path}.<key>", level, findings)
                self._walk(v, f"{path}.{self._path_part(k, level)}", level, findings, depth + 1, seen)
            return
        if isinstance(obj, (list, tuple, set, frozenset)):
            for i, v in enumerate(list(obj)):
                self._walk(v, f"{path}[{i}]", level, findings, depth + 1, seen)
            return
        if isinstance(obj, BaseModel):
            for name, v in obj:
                self._walk(v, f"{path}.{name}", level, findings, depth + 1, seen)
            return
        if callable(obj):
            return
        attrs = getattr(obj, "__dict__", None)
        if isinstance(attrs, dict):
            for name, v in list(attrs.items()):
                if not str(name).startswith("_"):
                    self._walk(v, f"{path}.{name}", level, findings, depth + 1, seen)

    def _path_part(self, k: Any, level: PrivacyLevel) -> str:
        # paths name where a finding sits; a key that is or may be PII is never echoed
        s = str(k) if isinstance(k, (str, int)) else type(k).__name__
        if isinstance(k, bool) or not _IDENT.fullmatch(s) or self.detector.contains_pii(s, level):
            return "<key>"
        return s

    def _result(self, findings: Dict[str, _Finding], *, complete: bool) -> PrivacyValidationResult:
        violations: List[PrivacyViolation] = []
        tiers: List[ConfidenceTier] = []
        for category, f in findings.items():
            violations.append(
                PrivacyViolation(
                    violation_type=TIER_VIOLATION[f.tier],
                    severity=TIER_SEVERITY[f.tier],
                    category=category,
                    description=f"{_TIER_LABEL[f.tier]} PII detected: {category}",
                    affected_data=list(f.paths),
                    recommended_action=_TIER_ACTION[f.tier],
                )
            )
            if f.tier not in tiers:
                tiers.append(f.tier)
        risk = RiskLevel.LOW
        for v in violations:
            if v.severity.rank > risk.rank:
                risk = v.severity
        recommendations = []
        for tier in sorted(tiers, key=lambda t: -TIER_SEVERITY[t].rank):
            action, desc = _TIER_RECOMMENDATION[tier]
            recommendations.append(PrivacyRecommendation(priority=TIER_SEVERITY[tier], action=action, description=desc))
        if not complete:
            recommendations.append(
                PrivacyRecommendation(priority=RiskLevel.LOW, action="rescan_payload", description="The scan stopped early; findings may be partial.")
            )
        if violations and self.logger is not None:
            self.logger.warning(f"Compliance violations: {sorted(findings.keys())} risk={risk.value}")
        return PrivacyValidationResult(
            is_compliant=not violations,
            violations=violations,
            recommendations=recommendations,
            risk_level=risk,
            complete=complete,
        )

