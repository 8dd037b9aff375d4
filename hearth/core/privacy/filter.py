from __future__ import annotations

import json
import math
import secrets
import uuid
from typing import Any, Dict, List, Optional, Tuple

from hearth.core.crypto import KeyedHasher
from hearth.core.errors import ProcessingError, normalize_exception
from hearth.core.events.models import SourceSubsystem
from hearth.core.events.registry import PRIVACY_LEVEL_CONFIGURED
from hearth.core.interactions.models import UserInteraction
from hearth.core.privacy.compliance import ComplianceValidator
from hearth.core.privacy.detector import PiiDetector
from hearth.core.privacy.mapping import (
    ANONYMIZATION_LEVEL,
    DEFAULT_LEVEL_BY_TIER,
    EPSILON,
    GDPR_RIGHTS,
    MAX_RETENTION_DAYS,
    QUANTIZATION_STEPS,
    REGULATION_BY_TIER,
    filters_for,
    retention_days_for,
)
from hearth.core.privacy.models import (
    AgeTier,
    AnonymizationLevel,
    AnonymizationTechnique,
    AnonymizedData,
    AnonymizedPattern,
    ComplianceStatus,
    ConfidenceTier,
    DataTypeEntry,
    FilteredContext,
    FilteredInteraction,
    FilterMetadata,
    PrivacyLevel,
    PrivacyReport,
    PrivacyValidationResult,
    UserRight,
)
from hearth.core.privacy.noise import LaplaceNoise, NoiseGenerator
from hearth.core.privacy.policy import PrivacyPolicyStore, parse_privacy_level


# Technique used by anonymize_data when no user is given.
ANONYMOUS_LEVEL = PrivacyLevel.ENHANCED

_LEVEL_ORDER = [AnonymizationLevel.LIGHT, AnonymizationLevel.MODERATE, AnonymizationLevel.STRONG, AnonymizationLevel.COMPLETE]


def quantize(value: float, steps: int) -> float:
    return round(float(value) * steps) / steps


def _canonical(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, ensure_ascii=False, default=lambda o: type(o).__name__)


class PrivacyFilter:
    """
    Turns interactions and arbitrary payloads into anonymized transport artifacts.

    - identifiers: keyed HMAC (never the raw value, never reversible)
    - context: per-field HMACs; salted per call at ENHANCED/MAXIMUM so two
      interactions of the same user cannot be linked through them
    - pattern metrics: calibrated noise, clamped and quantized

    Every public read is total: internal faults are logged as ProcessingError
    and a degraded, safe artifact is returned.
    """

    def __init__(
        self,
        *,
        policy_store: PrivacyPolicyStore,
        hasher: KeyedHasher,
        detector: Optional[PiiDetector] = None,
        compliance: Optional[ComplianceValidator] = None,
        noise: Optional[NoiseGenerator] = None,
        sensitivity: float = 1.0,
        event_bus=None,
        logger=None,
    ):
        self.policy_store = policy_store
        self.hasher = hasher
        self.detector = detector or PiiDetector()
        self.compliance = compliance or ComplianceValidator(detector=self.detector, policy_store=policy_store, logger=logger)
        self.noise = noise or LaplaceNoise()
        self.sensitivity = float(sensitivity)
        self.event_bus = event_bus
        self.logger = logger

    # ---------- configuration ----------
    def configure_privacy_level(self, user_id: str, level: Any) -> PrivacyLevel:
        lvl = self.policy_store.set_privacy_level(user_id, parse_privacy_level(level))
        self._emit(PRIVACY_LEVEL_CONFIGURED, {"user_ref": self.hasher.user_ref(user_id), "privacy_level": lvl.value})
        return lvl

    def configure_family_privacy_level(self, family_id: str, user_id: str, level: Any) -> PrivacyLevel:
        lvl = self.policy_store.configure_family_privacy_level(family_id, user_id, parse_privacy_level(level))
        self._emit(
            PRIVACY_LEVEL_CONFIGURED,
            {"user_ref": self.hasher.user_ref(user_id), "family_ref": self.hasher.user_ref(f"family:{family_id}"), "privacy_level": lvl.value},
        )
        return lvl

    def noise_scale(self, level: PrivacyLevel) -> float:
        return self.noise.scale(EPSILON[level], self.sensitivity)

    def hash_user_id(self, user_id: str) -> str:
        try:
            h = self.hasher.digest("user_id", user_id)
            if h == user_id:
                h = self.hasher.digest("user_id", user_id, salt="rehash")
            return h
        except Exception as e:  # noqa: BLE001
            self._log_fault(e, op="hash_user_id")
            return uuid.uuid4().hex

    # ---------- filtering ----------
    def filter_interaction(self, interaction: Any) -> FilteredInteraction:
        try:
            if not isinstance(interaction, UserInteraction):
                interaction = UserInteraction.model_validate(interaction)
            return self._filter(interaction)
        except Exception as e:  # noqa: BLE001
            self._log_fault(e, op="filter_interaction")
            return self._degraded_filtered(interaction)

    def _filter(self, interaction: UserInteraction) -> FilteredInteraction:
        ctx = interaction.context
        level = self.policy_store.effective_level(interaction.user_id, ctx.participants)
        epsilon = EPSILON[level]
        steps = QUANTIZATION_STEPS[level]
        nonce = secrets.token_hex(8) if level >= PrivacyLevel.ENHANCED else None

        anon_level = ANONYMIZATION_LEVEL[level]
        # raw identifiers left in content push the label up, never down
        if self._has_high_confidence_pii(interaction):
            anon_level = max(anon_level, AnonymizationLevel.STRONG, key=_LEVEL_ORDER.index)

        patterns: List[AnonymizedPattern] = []
        for p in interaction.patterns:
            strength = quantize(p.strength + self.noise.sample(epsilon, self.sensitivity), steps)
            frequency = quantize(p.frequency + self.noise.sample(epsilon, self.sensitivity), steps)
            patterns.append(
                AnonymizedPattern(
                    pattern_hash=self.hasher.digest("pattern", p.pattern_id, salt=nonce, length=32),
                    type=p.type.value,
                    strength=min(1.0, max(0.0, strength)),
                    frequency=max(0.0, frequency),
                    context_hash=self.hasher.digest("context", _canonical(p.context), salt=nonce, length=32),
                    anonymization_level=anon_level,
                )
            )

        filtered_ctx = FilteredContext(
            temporal_hash=self._field_hash("temporal", f"{ctx.time_of_day.value}|{ctx.day_of_week.value}", nonce),
            location_hash=self._field_hash("location", ctx.location, nonce),
            device_type_hash=self._field_hash("device_type", ctx.device_type.value, nonce),
            environmental_hash=self._field_hash("environmental", _canonical(ctx.environmental_factors), nonce),
            privacy_level=level,
        )
        retention = min(retention_days_for(level), self.policy_store.retention_policy(interaction.user_id).retention_days)
        metadata = FilterMetadata(
            privacy_filters_applied=filters_for(level),
            retention_days=retention,
            noise_mechanism=self.noise.name,
            epsilon=epsilon,
            unlinkable=nonce is not None,
        )
        return FilteredInteraction(
            user_id=self.hash_user_id(interaction.user_id),
            patterns=patterns,
            context=filtered_ctx,
            metadata=metadata,
            privacy_level=level,
        )

    def _field_hash(self, name: str, value: str, nonce: Optional[str]) -> str:
        return self.hasher.digest(f"context.{name}", value, salt=nonce, length=32)

    def _has_high_confidence_pii(self, interaction: UserInteraction) -> bool:
        texts = [interaction.description, interaction.context.location, _canonical(interaction.context.environmental_factors), _canonical(interaction.metadata)]
        return any(self.detector.contains_pii(t, tiers=[ConfidenceTier.HIGH]) for t in texts if t)

    def _degraded_filtered(self, interaction: Any) -> FilteredInteraction:
        level = PrivacyLevel.MAXIMUM
        user_id = uuid.uuid4().hex
        raw_id = getattr(interaction, "user_id", None)
        if user_id == raw_id:
            user_id = uuid.uuid4().hex
        return FilteredInteraction(
            user_id=user_id,
            patterns=[],
            context=FilteredContext(
                temporal_hash=secrets.token_hex(16),
                location_hash=secrets.token_hex(16),
                device_type_hash=secrets.token_hex(16),
                environmental_hash=secrets.token_hex(16),
                privacy_level=level,
            ),
            metadata=FilterMetadata(
                privacy_filters_applied=filters_for(level),
                retention_days=retention_days_for(level),
                noise_mechanism=self.noise.name,
                epsilon=EPSILON[level],
                unlinkable=True,
                degraded=True,
            ),
            privacy_level=level,
        )

    # ---------- anonymize ----------
    def select_technique(self, data: Any) -> AnonymizationTechnique:
        if isinstance(data, str):
            return AnonymizationTechnique.TOKENIZATION
        if isinstance(data, UserInteraction):
            return AnonymizationTechnique.DIFFERENTIAL_PRIVACY
        if isinstance(data, dict) and "patterns" in data:
            return AnonymizationTechnique.DIFFERENTIAL_PRIVACY
        return AnonymizationTechnique.HASHING

    def anonymize_data(self, data: Any, user_id: Optional[str] = None) -> AnonymizedData:
        technique = AnonymizationTechnique.HASHING
        level = ANONYMOUS_LEVEL
        try:
            technique = self.select_technique(data)
            if user_id:
                level = self.policy_store.effective_level(user_id)
            if technique == AnonymizationTechnique.TOKENIZATION:
                anonymized, retained, removed = self._tokenize(data, level)
            elif technique == AnonymizationTechnique.DIFFERENTIAL_PRIVACY:
                anonymized, retained, removed = self._noise_patterns(data, level)
            else:
                anonymized, retained, removed = self._hash_value(data)
            return AnonymizedData(
                technique=technique,
                privacy_level=level,
                retained_patterns=retained,
                removed_elements=removed,
                anonymized=anonymized,
            )
        except Exception as e:  # noqa: BLE001
            self._log_fault(e, op="anonymize_data")
            return AnonymizedData(
                technique=technique,
                privacy_level=PrivacyLevel.MAXIMUM,
                removed_elements=["all"],
                anonymized=None,
                degraded=True,
            )

    def _tokenize(self, text: str, level: PrivacyLevel) -> Tuple[str, List[str], List[str]]:
        matches = self.detector.detect(text, level)
        out: List[str] = []
        cursor = 0
        for m in matches:
            out.append(text[cursor : m.start])
            out.append(f"[{m.category.upper()}_TOKEN_{self.hasher.digest('token', m.matched_text, length=12)}]")
            cursor = m.end
        out.append(text[cursor:])
        removed = sorted({m.category for m in matches})
        return "".join(out), ["text_structure"], removed

    def _noise_patterns(self, data: Any, level: PrivacyLevel) -> Tuple[Dict[str, Any], List[str], List[str]]:
        if isinstance(data, UserInteraction):
            filtered = self.filter_interaction(data)
            if filtered.metadata.degraded:
                raise ProcessingError("Interaction could not be filtered.")
            kinds = sorted({p.type for p in filtered.patterns})
            return filtered.model_dump(mode="json"), [f"{k}_patterns" for k in kinds], ["pii", "raw_content", "identifiers"]
        epsilon = EPSILON[level]
        steps = QUANTIZATION_STEPS[level]
        raw = data.get("patterns") or []
        noised: List[Dict[str, Any]] = []
        kinds: List[str] = []
        for p in raw if isinstance(raw, (list, tuple)) else []:
            if not isinstance(p, dict):
                continue
            kind = str(p.get("type") or "unknown")
            item: Dict[str, Any] = {"type": kind}
            for metric in ("strength", "frequency"):
                v = p.get(metric)
                if isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v):
                    nv = quantize(v + self.noise.sample(epsilon, self.sensitivity), steps)
                    item[metric] = min(1.0, max(0.0, nv)) if metric == "strength" else max(0.0, nv)
            noised.append(item)
            if kind not in kinds:
                kinds.append(kind)
        return {"patterns": noised}, [f"{k}_patterns" for k in kinds], ["pii", "raw_content", "identifiers"]

    def _hash_value(self, data: Any) -> Tuple[str, List[str], List[str]]:
        return self.hasher.digest("data", _canonical(data), length=32), [], ["raw_value"]

    # ---------- report ----------
    def validate_privacy_compliance(self, data: Any, user_id: str) -> PrivacyValidationResult:
        return self.compliance.validate_compliance(data, user_id)

    def generate_privacy_report(self, user_id: str) -> PrivacyReport:
        level = self.policy_store.effective_level(user_id)
        tier = self.policy_store.age_tier(user_id)
        retention = self.policy_store.retention_policy(user_id)
        days = int(retention.retention_days)

        issues: List[str] = []
        if days > MAX_RETENTION_DAYS:
            issues.append("retention_over_cap")
        if tier != AgeTier.ADULT and level < DEFAULT_LEVEL_BY_TIER[tier]:
            issues.append("privacy_level_below_age_tier")
        certifications = ["differential_privacy"]
        if self.policy_store.family_includes_minor(user_id):
            certifications.append("child_safety")

        erasure_time = "Immediate" if level == PrivacyLevel.MAXIMUM else "24 hours"
        rights = [
            UserRight(right_type="access", description="View anonymized behavioral patterns", exercise_method="API request", response_time="24 hours", reference=GDPR_RIGHTS["access"]),
            UserRight(right_type="erasure", description="Complete data deletion", exercise_method="User interface or API", response_time=erasure_time, reference=GDPR_RIGHTS["erasure"]),
            UserRight(
                right_type="restrict_processing",
                description="Raise the privacy level or pause collection",
                exercise_method="User interface or API",
                response_time="Immediate",
                reference=GDPR_RIGHTS["restrict_processing"],
            ),
            UserRight(right_type="data_portability", description="Export anonymized summaries", exercise_method="API request", response_time="24 hours", reference=GDPR_RIGHTS["data_portability"]),
        ]
        return PrivacyReport(
            user_id=user_id,
            privacy_level=level,
            age_tier=tier,
            data_types=[
                DataTypeEntry(data_type="interaction_patterns", purpose="personalization", retention_days=days),
                DataTypeEntry(data_type="behavioral_data", purpose="system_improvement", retention_days=days),
            ],
            retention_policies=[retention],
            sharing_activities=[],
            user_rights=rights,
            compliance_status=ComplianceStatus(
                regulation=REGULATION_BY_TIER[tier],
                is_compliant=not issues,
                issues=issues,
                certifications=certifications,
            ),
        )

    # ---------- internals ----------
    def _emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self.event_bus is None:
            return
        self.event_bus.emit(event_type, payload, source_subsystem=SourceSubsystem.privacy_filter)

    def _log_fault(self, exc: BaseException, *, op: str) -> None:
        err = normalize_exception(exc, subsystem="filter", context={"op": op})
        if self.logger is not None:
            self.logger.error(f"{err.code} in {op}: {err.context.get('exception_type', type(exc).__name__)}")
