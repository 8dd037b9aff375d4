from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PrivacyLevel(str, Enum):
    """
    Ordered MINIMAL < STANDARD < ENHANCED < MAXIMUM.
    Keep these stable: they are persisted in privacy.json.
    """

    MINIMAL = "MINIMAL"
    STANDARD = "STANDARD"
    ENHANCED = "ENHANCED"
    MAXIMUM = "MAXIMUM"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, PrivacyLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, PrivacyLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, PrivacyLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, PrivacyLevel):
            return NotImplemented
        return self.rank >= other.rank


_LEVEL_ORDER = [PrivacyLevel.MINIMAL, PrivacyLevel.STANDARD, PrivacyLevel.ENHANCED, PrivacyLevel.MAXIMUM]


def most_restrictive(levels: Iterable[PrivacyLevel]) -> Optional[PrivacyLevel]:
    out: Optional[PrivacyLevel] = None
    for lvl in levels:
        if out is None or lvl > out:
            out = lvl
    return out


class AgeTier(str, Enum):
    CHILD = "CHILD"
    TEEN = "TEEN"
    ADULT = "ADULT"


class Regulation(str, Enum):
    COPPA = "coppa"
    GDPR_ART8 = "gdpr_art8"
    GDPR = "gdpr"


class ConfidenceTier(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ViolationType(str, Enum):
    PII_EXPOSURE = "PII_EXPOSURE"
    POTENTIAL_PII_EXPOSURE = "POTENTIAL_PII_EXPOSURE"
    PRIVACY_LEVEL_VIOLATION = "PRIVACY_LEVEL_VIOLATION"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return ["LOW", "MEDIUM", "HIGH", "CRITICAL"].index(self.value)


class AnonymizationLevel(str, Enum):
    LIGHT = "light"
    MODERATE = "moderate"
    STRONG = "strong"
    COMPLETE = "complete"


class AnonymizationTechnique(str, Enum):
    TOKENIZATION = "tokenization"
    DIFFERENTIAL_PRIVACY = "differential_privacy"
    HASHING = "hashing"


class RetentionPolicy(BaseModel):
    """
    Per-user, per-data-type retention rule. The 30 day system cap is enforced
    when a policy is configured, not here, so callers get a ConfigurationError.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    data_type: str = Field(default="interaction_patterns", min_length=1, max_length=64)
    retention_days: int = Field(ge=1)
    auto_delete: bool = True
    archive_before_delete: bool = False
    user_notification: bool = False


# ---- compliance ----
class PrivacyViolation(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    violation_type: ViolationType
    severity: RiskLevel
    category: str
    description: str
    affected_data: List[str] = Field(default_factory=list)
    recommended_action: str
    detected_at: datetime = Field(default_factory=_utc_now)


class PrivacyRecommendation(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    priority: RiskLevel
    action: str
    description: str


class PrivacyValidationResult(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    is_compliant: bool
    violations: List[PrivacyViolation] = Field(default_factory=list)
    recommendations: List[PrivacyRecommendation] = Field(default_factory=list)
    risk_level: RiskLevel = RiskLevel.LOW
    complete: bool = True


# ---- filtered artifacts ----
class AnonymizedPattern(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    pattern_hash: str
    type: str
    strength: float = Field(ge=0.0, le=1.0)
    frequency: float = Field(ge=0.0)
    context_hash: str
    anonymization_level: AnonymizationLevel


class FilteredContext(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    temporal_hash: str
    location_hash: str
    device_type_hash: str
    environmental_hash: str
    privacy_level: PrivacyLevel


class FilterMetadata(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    processed_at: datetime = Field(default_factory=_utc_now)
    privacy_filters_applied: List[str]
    retention_days: int
    noise_mechanism: str
    epsilon: float
    unlinkable: bool = False
    degraded: bool = False


class FilteredInteraction(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    user_id: str
    patterns: List[AnonymizedPattern] = Field(default_factory=list)
    context: FilteredContext
    metadata: FilterMetadata
    privacy_level: PrivacyLevel


class AnonymizedData(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    data_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    anonymized_at: datetime = Field(default_factory=_utc_now)
    technique: AnonymizationTechnique
    privacy_level: PrivacyLevel
    retained_patterns: List[str] = Field(default_factory=list)
    removed_elements: List[str] = Field(default_factory=list)
    anonymized: Any = None
    degraded: bool = False


# ---- report ----
class DataTypeEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    data_type: str
    purpose: str
    retention_days: int
    sharing_scope: str = "none"


class UserRight(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    right_type: str
    is_available: bool = True
    description: str
    exercise_method: str
    response_time: str
    reference: str = ""


class ComplianceStatus(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    regulation: Regulation
    is_compliant: bool
    last_audit: datetime = Field(default_factory=_utc_now)
    issues: List[str] = Field(default_factory=list)
    certifications: List[str] = Field(default_factory=list)


class PrivacyReport(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    user_id: str
    generated_at: datetime = Field(default_factory=_utc_now)
    privacy_level: PrivacyLevel
    age_tier: AgeTier
    data_types: List[DataTypeEntry] = Field(default_factory=list)
    retention_policies: List[RetentionPolicy] = Field(default_factory=list)
    sharing_activities: List[Dict[str, Any]] = Field(default_factory=list)
    user_rights: List[UserRight] = Field(default_factory=list)
    compliance_status: ComplianceStatus

    @field_validator("sharing_activities")
    @classmethod
    def _no_sharing(cls, v: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if v:
            raise ValueError("third-party sharing is not supported")
        return v
