from __future__ import annotations

import json

import pytest

from hearth.core.crypto import KeyedHasher
from hearth.core.errors import ConfigurationError
from hearth.core.privacy.filter import PrivacyFilter
from hearth.core.privacy.mapping import retention_days_for
from hearth.core.privacy.models import (
    AgeTier,
    AnonymizationLevel,
    AnonymizationTechnique,
    PrivacyLevel,
    Regulation,
)
from hearth.core.privacy.noise import LaplaceNoise

from helpers.builders import make_interaction


HABIT = {"pattern_id": "habit:evening_story", "type": "habit", "strength": 0.5, "frequency": 2.0}


class FailingNoise(LaplaceNoise):
    def sample(self, epsilon, sensitivity=1.0):  # noqa: ANN001
        raise RuntimeError("rng unavailable")


def _on_grid(value: float, steps: int) -> bool:
    return abs(value * steps - round(value * steps)) < 1e-6


def test_user_id_is_hashed_and_stable(privacy_filter):
    ui = make_interaction(location="Grandma's house", description="call 555-123-4567")
    a = privacy_filter.filter_interaction(ui)
    b = privacy_filter.filter_interaction(ui)
    assert a.user_id != ui.user_id
    assert a.user_id == b.user_id
    blob = json.dumps(a.model_dump(mode="json"))
    assert "user-1" not in blob
    assert "Grandma" not in blob
    assert "555-123-4567" not in blob


def test_hashed_id_never_equals_input(policy_store):
    class EchoHasher(KeyedHasher):
        def digest(self, purpose, value, *, salt=None, length=64):  # noqa: ANN001
            if salt is None:
                return value
            return super().digest(purpose, value, salt=salt, length=length)

    f = PrivacyFilter(policy_store=policy_store, hasher=EchoHasher.ephemeral())
    assert f.hash_user_id("user-1") != "user-1"


def test_context_linkable_at_standard_unlinkable_above(privacy_filter, policy_store):
    ui = make_interaction()
    a = privacy_filter.filter_interaction(ui)
    b = privacy_filter.filter_interaction(ui)
    assert a.context.temporal_hash == b.context.temporal_hash
    assert not a.metadata.unlinkable

    policy_store.set_privacy_level("user-1", PrivacyLevel.ENHANCED)
    c = privacy_filter.filter_interaction(ui)
    d = privacy_filter.filter_interaction(ui)
    assert c.metadata.unlinkable
    assert c.context.temporal_hash != d.context.temporal_hash
    assert c.context.location_hash != d.context.location_hash


@pytest.mark.parametrize(
    "level,filters,days,anon",
    [
        (PrivacyLevel.MINIMAL, 3, 30, AnonymizationLevel.LIGHT),
        (PrivacyLevel.STANDARD, 3, 30, AnonymizationLevel.MODERATE),
        (PrivacyLevel.ENHANCED, 4, 14, AnonymizationLevel.STRONG),
        (PrivacyLevel.MAXIMUM, 4, 7, AnonymizationLevel.COMPLETE),
    ],
)
def test_metadata_and_patterns_by_level(privacy_filter, policy_store, level, filters, days, anon):
    policy_store.set_privacy_level("user-1", level)
    out = privacy_filter.filter_interaction(make_interaction(patterns=[HABIT]))
    assert out.privacy_level == level
    assert len(out.metadata.privacy_filters_applied) == filters
    assert {"multi_stage_pii_detection", "differential_privacy", "context_filtering"} <= set(out.metadata.privacy_filters_applied)
    assert out.metadata.retention_days == days
    assert out.metadata.noise_mechanism == "laplace"
    [p] = out.patterns
    assert p.anonymization_level == anon
    assert p.type == "habit"
    assert p.pattern_hash != HABIT["pattern_id"]


def test_pattern_metrics_clamped_and_quantized(privacy_filter, policy_store):
    policy_store.set_privacy_level("user-1", PrivacyLevel.MAXIMUM)
    for _ in range(20):
        [p] = privacy_filter.filter_interaction(make_interaction(patterns=[HABIT])).patterns
        assert 0.0 <= p.strength <= 1.0
        assert p.frequency >= 0.0
        assert _on_grid(p.strength, 5)
        assert _on_grid(p.frequency, 5)


def test_residual_identifiers_raise_anonymization_level(privacy_filter, policy_store):
    policy_store.set_privacy_level("user-1", PrivacyLevel.MINIMAL)
    [p] = privacy_filter.filter_interaction(make_interaction(patterns=[HABIT], description="ssn 123-45-6789")).patterns
    assert p.anonymization_level == AnonymizationLevel.STRONG


def test_stricter_level_means_more_noise_and_shorter_retention(privacy_filter):
    levels = list(PrivacyLevel)
    for lo, hi in zip(levels, levels[1:]):
        assert privacy_filter.noise_scale(hi) > privacy_filter.noise_scale(lo)
        assert retention_days_for(hi) <= retention_days_for(lo)


def test_child_participant_applies_family_policy(privacy_filter, policy_store):
    policy_store.set_age_tier("kid", AgeTier.CHILD)
    out = privacy_filter.filter_interaction(make_interaction(participants=["kid"]))
    assert out.privacy_level == PrivacyLevel.MAXIMUM


def test_filter_faults_return_degraded_artifact(policy_store, hasher):
    f = PrivacyFilter(policy_store=policy_store, hasher=hasher, noise=FailingNoise())
    out = f.filter_interaction(make_interaction(patterns=[HABIT]))
    assert out.metadata.degraded
    assert out.patterns == []
    assert out.privacy_level == PrivacyLevel.MAXIMUM
    assert out.user_id != "user-1"

    bad = f.filter_interaction({"not": "an interaction"})
    assert bad.metadata.degraded


def test_anonymize_text_uses_tokens(privacy_filter):
    a = privacy_filter.anonymize_data("Email jane@example.com now")
    assert a.technique == AnonymizationTechnique.TOKENIZATION
    assert a.privacy_level == PrivacyLevel.ENHANCED
    assert a.anonymized.startswith("Email [EMAIL_TOKEN_")
    assert a.anonymized.endswith("] now")
    assert "jane" not in a.anonymized
    assert a.removed_elements == ["email"]
    assert privacy_filter.anonymize_data("Email jane@example.com now").anonymized == a.anonymized


def test_anonymize_patterns_mapping(privacy_filter):
    a = privacy_filter.anonymize_data({"patterns": [{"type": "temporal", "strength": 0.5, "frequency": 1}, "junk"], "name": "Jane Morgan"})
    assert a.technique == AnonymizationTechnique.DIFFERENTIAL_PRIVACY
    assert list(a.anonymized.keys()) == ["patterns"]
    [p] = a.anonymized["patterns"]
    assert p["type"] == "temporal"
    assert 0.0 <= p["strength"] <= 1.0
    assert a.retained_patterns == ["temporal_patterns"]


def test_anonymize_interaction(privacy_filter):
    a = privacy_filter.anonymize_data(make_interaction(patterns=[HABIT]), user_id="user-1")
    assert a.technique == AnonymizationTechnique.DIFFERENTIAL_PRIVACY
    assert a.anonymized["user_id"] != "user-1"
    assert a.retained_patterns == ["habit_patterns"]


@pytest.mark.parametrize("value", [42, 3.14, [1, 2, 3], None, object(), {"a": 1}])
def test_anonymize_other_values_hashes(privacy_filter, value):
    a = privacy_filter.anonymize_data(value)
    assert a.technique == AnonymizationTechnique.HASHING
    assert isinstance(a.anonymized, str) and len(a.anonymized) == 32
    assert a.data_id and a.anonymized_at


def test_anonymize_never_throws(policy_store, hasher):
    f = PrivacyFilter(policy_store=policy_store, hasher=hasher, noise=FailingNoise())
    a = f.anonymize_data({"patterns": [{"type": "x", "strength": 0.5}]})
    assert a.degraded
    assert a.technique == AnonymizationTechnique.DIFFERENTIAL_PRIVACY
    assert a.anonymized is None
    assert a.data_id and a.anonymized_at


def test_configure_privacy_level(privacy_filter, policy_store, bus):
    with pytest.raises(ConfigurationError):
        privacy_filter.configure_privacy_level("user-1", "ULTRA")
    assert privacy_filter.configure_privacy_level("user-1", "enhanced") == PrivacyLevel.ENHANCED
    assert policy_store.effective_level("user-1") == PrivacyLevel.ENHANCED
    [ev] = bus.of_type("privacy:level_configured")
    assert ev.payload["privacy_level"] == "ENHANCED"
    assert "user-1" not in json.dumps(ev.payload)


def test_configure_family_privacy_level(privacy_filter, policy_store):
    privacy_filter.configure_family_privacy_level("fam", "user-1", "MAXIMUM")
    assert policy_store.effective_level("user-1") == PrivacyLevel.MAXIMUM
    assert privacy_filter.generate_privacy_report("user-1").retention_policies[0].retention_days == 7


def test_report_for_adult(privacy_filter):
    r = privacy_filter.generate_privacy_report("user-1")
    assert r.privacy_level == PrivacyLevel.STANDARD
    assert r.sharing_activities == []
    assert r.compliance_status.regulation == Regulation.GDPR
    assert r.compliance_status.is_compliant
    assert r.compliance_status.certifications == ["differential_privacy"]
    rights = {u.right_type: u for u in r.user_rights}
    assert rights["erasure"].response_time == "24 hours"
    assert rights["access"].response_time == "24 hours"
    assert all(d.retention_days == 30 for d in r.data_types)


def test_report_for_maximum_and_minors(privacy_filter, policy_store):
    policy_store.set_privacy_level("user-1", PrivacyLevel.MAXIMUM)
    r = privacy_filter.generate_privacy_report("user-1")
    assert {u.right_type: u for u in r.user_rights}["erasure"].response_time == "Immediate"

    policy_store.set_age_tier("kid", AgeTier.CHILD)
    kid = privacy_filter.generate_privacy_report("kid")
    assert kid.compliance_status.regulation == Regulation.COPPA
    assert "child_safety" in kid.compliance_status.certifications
    assert kid.privacy_level == PrivacyLevel.MAXIMUM

    policy_store.set_age_tier("teen", AgeTier.TEEN)
    policy_store.configure_family_privacy_level("fam", "teen", PrivacyLevel.ENHANCED)
    policy_store.configure_family_privacy_level("fam", "parent", PrivacyLevel.ENHANCED)
    parent = privacy_filter.generate_privacy_report("parent")
    assert parent.compliance_status.regulation == Regulation.GDPR
    assert "child_safety" in parent.compliance_status.certifications


def test_validate_privacy_compliance_delegates(privacy_filter):
    res = privacy_filter.validate_privacy_compliance({"ssn": "123-45-6789"}, "user-1")
    assert not res.is_compliant
    assert len(res.violations) == 1
