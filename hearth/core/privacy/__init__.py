from __future__ import annotations

"""
Privacy core for the interaction pipeline.

This package provides:
- PII detection and sanitization (no raw identifiers past the collector)
- per-user / per-family privacy levels and retention overrides
- keyed-hash + noise anonymization of interactions and payloads
- compliance audits that report findings as data
"""

from hearth.core.privacy.compliance import ComplianceValidator
from hearth.core.privacy.detector import PiiDetector, PiiMatch
from hearth.core.privacy.filter import PrivacyFilter
from hearth.core.privacy.models import AgeTier, PrivacyLevel, RetentionPolicy
from hearth.core.privacy.noise import GaussianNoise, LaplaceNoise, NoiseGenerator
from hearth.core.privacy.policy import PrivacyPolicyStore
from hearth.core.privacy.sanitizer import Sanitizer

__all__ = [
    "AgeTier",
    "ComplianceValidator",
    "GaussianNoise",
    "LaplaceNoise",
    "NoiseGenerator",
    "PiiDetector",
    "PiiMatch",
    "PrivacyFilter",
    "PrivacyLevel",
    "PrivacyPolicyStore",
    "RetentionPolicy",
    "Sanitizer",
]
