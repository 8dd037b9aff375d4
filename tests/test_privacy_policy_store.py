from __future__ import annotations

import json
import os

import pytest

from hearth.core.config.manager import ConfigManager
from hearth.core.errors import ConfigurationError
from hearth.core.privacy.models import AgeTier, PrivacyLevel, RetentionPolicy
from hearth.core.privacy.policy import PrivacyPolicyStore, parse_privacy_level


def test_defaults_for_unknown_user(policy_store):
    assert policy_store.effective_level("nobody") == PrivacyLevel.STANDARD
    assert policy_store.age_tier("nobody") == AgeTier.ADULT
    pol = policy_store.retention_policy("nobody")
    assert pol.retention_days == 30
    assert pol.auto_delete


def test_minor_tiers_have_a_floor(policy_store):
    policy_store.set_age_tier("kid", "child")
    policy_store.set_privacy_level("kid", PrivacyLevel.MINIMAL)
    assert policy_store.effective_level("kid") == PrivacyLevel.MAXIMUM

    policy_store.set_age_tier("teen", AgeTier.TEEN)
    assert policy_store.effective_level("teen") == PrivacyLevel.ENHANCED
    policy_store.set_privacy_level("teen", PrivacyLevel.MAXIMUM)
    assert policy_store.effective_level("teen") == PrivacyLevel.MAXIMUM


def test_family_and_participants_only_raise_the_level(policy_store):
    policy_store.set_privacy_level("mum", PrivacyLevel.MINIMAL)
    policy_store.configure_family_privacy_level("fam", "mum", PrivacyLevel.ENHANCED)
    assert policy_store.effective_level("mum") == PrivacyLevel.ENHANCED
    assert policy_store.family_members("fam") == ["mum"]

    policy_store.set_privacy_level("dad", PrivacyLevel.MAXIMUM)
    policy_store.configure_family_privacy_level("fam", "dad", PrivacyLevel.MINIMAL)
    assert policy_store.effective_level("dad") == PrivacyLevel.MAXIMUM
    assert policy_store.effective_level("mum") == PrivacyLevel.MINIMAL

    policy_store.set_age_tier("kid", AgeTier.CHILD)
    assert policy_store.effective_level("mum", ["kid"]) == PrivacyLevel.MAXIMUM
    assert policy_store.effective_level("kid", ["kid"]) == PrivacyLevel.MAXIMUM


def test_family_includes_minor(policy_store):
    policy_store.configure_family_privacy_level("fam", "parent", "STANDARD")
    assert not policy_store.family_includes_minor("parent")
    policy_store.set_age_tier("teen", AgeTier.TEEN)
    policy_store.configure_family_privacy_level("fam", "teen", "STANDARD")
    assert policy_store.family_includes_minor("parent")


def test_retention_is_min_of_override_and_level(policy_store):
    policy_store.set_retention_override("u", {"retention_days": 20, "user_notification": True})
    pol = policy_store.retention_policy("u")
    assert pol.retention_days == 20
    assert pol.user_notification

    policy_store.set_privacy_level("u", PrivacyLevel.MAXIMUM)
    assert policy_store.retention_policy("u").retention_days == 7

    policy_store.clear_retention_overrides("u")
    assert policy_store.retention_override("u") is None


@pytest.mark.parametrize("bad", [{"retention_days": 31}, {"retention_days": 0}, {"retention_days": "soon"}, "30", None])
def test_invalid_retention_rejected(policy_store, bad):
    with pytest.raises(ConfigurationError):
        policy_store.set_retention_override("u", bad)
    assert policy_store.retention_override("u") is None


def test_over_cap_carries_context(policy_store):
    with pytest.raises(ConfigurationError) as ei:
        policy_store.set_retention_override("u", RetentionPolicy(retention_days=45))
    assert ei.value.context["max_retention_days"] == 30


@pytest.mark.parametrize("bad", ["ULTRA", "", None, 3])
def test_bogus_level_rejected(policy_store, bad):
    with pytest.raises(ConfigurationError):
        policy_store.set_privacy_level("u", bad)
    assert policy_store.explicit_level("u") is None


def test_parse_privacy_level_is_case_insensitive():
    assert parse_privacy_level(" maximum ") == PrivacyLevel.MAXIMUM


def test_mutations_written_through_to_privacy_json(config_manager, tmp_config_root):
    store = PrivacyPolicyStore(config_manager=config_manager)
    store.set_privacy_level("user-1", "ENHANCED")
    store.set_age_tier("kid", "CHILD")
    store.configure_family_privacy_level("fam", "kid", "ENHANCED")
    store.set_retention_override("user-1", {"retention_days": 10, "archive_before_delete": True})

    with open(tmp_config_root.privacy, "r", encoding="utf-8") as f:
        raw = json.load(f)
    assert raw["users"]["user-1"]["privacy_level"] == "ENHANCED"
    assert raw["families"]["fam"]["members"] == ["kid"]

    cm2 = ConfigManager(fs=tmp_config_root)
    cm2.load_all()
    reloaded = PrivacyPolicyStore(config_manager=cm2)
    assert reloaded.effective_level("user-1") == PrivacyLevel.ENHANCED
    assert reloaded.effective_level("kid") == PrivacyLevel.MAXIMUM
    assert reloaded.family_of("kid") == "fam"
    assert reloaded.retention_policy("user-1").archive_before_delete


def test_failed_write_leaves_memory_unchanged(config_manager, tmp_config_root):
    ro = ConfigManager(fs=tmp_config_root, read_only=True)
    ro.load_all()
    store = PrivacyPolicyStore(config_manager=ro)
    with pytest.raises(ConfigurationError):
        store.set_privacy_level("user-1", "MAXIMUM")
    assert store.explicit_level("user-1") is None
    assert store.effective_level("user-1") == PrivacyLevel.STANDARD


def test_invalid_privacy_json_rejected(config_manager, tmp_config_root):
    with open(tmp_config_root.privacy, "w", encoding="utf-8") as f:
        json.dump({"users": {"u": {"privacy_level": "LOUD"}}}, f)
    with pytest.raises(ConfigurationError):
        PrivacyPolicyStore(config_manager=config_manager)
    assert os.path.exists(tmp_config_root.privacy)
