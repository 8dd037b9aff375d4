"""
Policy tables keyed by privacy level and age tier.

Every table is monotone in PrivacyLevel: a stricter level never keeps data
longer and never adds less noise.
"""

from __future__ import annotations

from typing import Dict

from hearth.core.privacy.models import AgeTier, AnonymizationLevel, PrivacyLevel, Regulation


# System-wide child-safety cap on any retention period.
MAX_RETENTION_DAYS = 30

RETENTION_DAYS: Dict[PrivacyLevel, int] = {
    PrivacyLevel.MINIMAL: 30,
    PrivacyLevel.STANDARD: 30,
    PrivacyLevel.ENHANCED: 14,
    PrivacyLevel.MAXIMUM: 7,
}

EPSILON: Dict[PrivacyLevel, float] = {
    PrivacyLevel.MINIMAL: 10.0,
    PrivacyLevel.STANDARD: 1.0,
    PrivacyLevel.ENHANCED: 0.1,
    PrivacyLevel.MAXIMUM: 0.01,
}

# Noised metrics are rounded to 1/steps.
QUANTIZATION_STEPS: Dict[PrivacyLevel, int] = {
    PrivacyLevel.MINIMAL: 100,
    PrivacyLevel.STANDARD: 20,
    PrivacyLevel.ENHANCED: 10,
    PrivacyLevel.MAXIMUM: 5,
}

ANONYMIZATION_LEVEL: Dict[PrivacyLevel, AnonymizationLevel] = {
    PrivacyLevel.MINIMAL: AnonymizationLevel.LIGHT,
    PrivacyLevel.STANDARD: AnonymizationLevel.MODERATE,
    PrivacyLevel.ENHANCED: AnonymizationLevel.STRONG,
    PrivacyLevel.MAXIMUM: AnonymizationLevel.COMPLETE,
}

DEFAULT_LEVEL_BY_TIER: Dict[AgeTier, PrivacyLevel] = {
    AgeTier.CHILD: PrivacyLevel.MAXIMUM,
    AgeTier.TEEN: PrivacyLevel.ENHANCED,
    AgeTier.ADULT: PrivacyLevel.STANDARD,
}

REGULATION_BY_TIER: Dict[AgeTier, Regulation] = {
    AgeTier.CHILD: Regulation.COPPA,
    AgeTier.TEEN: Regulation.GDPR_ART8,
    AgeTier.ADULT: Regulation.GDPR,
}

GDPR_RIGHTS = {
    "access": "Art. 15 (Right of access)",
    "rectification": "Art. 16 (Right to rectification)",
    "erasure": "Art. 17 (Right to erasure)",
    "restrict_processing": "Art. 18 (Right to restriction of processing)",
    "data_portability": "Art. 20 (Right to data portability)",
    "object": "Art. 21 (Right to object)",
}

# Filters named in FilteredInteraction.metadata.
BASE_FILTERS = ("multi_stage_pii_detection", "differential_privacy", "context_filtering")
BEHAVIORAL_FILTER = "behavioral_anonymization"


def retention_days_for(level: PrivacyLevel) -> int:
    return RETENTION_DAYS[level]


def filters_for(level: PrivacyLevel) -> list[str]:
    out = list(BASE_FILTERS)
    if level >= PrivacyLevel.ENHANCED:
        out.append(BEHAVIORAL_FILTER)
    return out
