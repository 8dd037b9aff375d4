from __future__ import annotations

import threading
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError as PydanticValidationError

from hearth.core.config.models import FamilyRecord, PrivacyPolicyFile, RetentionOverrideRecord, UserPolicyRecord
from hearth.core.errors import ConfigurationError
from hearth.core.locks import KeyedLocks
from hearth.core.privacy.mapping import DEFAULT_LEVEL_BY_TIER, MAX_RETENTION_DAYS, RETENTION_DAYS
from hearth.core.privacy.models import AgeTier, PrivacyLevel, RetentionPolicy, most_restrictive


DEFAULT_DATA_TYPE = "interaction_patterns"


def parse_privacy_level(value: Any) -> PrivacyLevel:
    if isinstance(value, PrivacyLevel):
        return value
    try:
        return PrivacyLevel(str(value).strip().upper())
    except (ValueError, AttributeError) as e:
        raise ConfigurationError("Invalid privacy level.", allowed=[lvl.value for lvl in PrivacyLevel]) from e


def parse_age_tier(value: Any) -> AgeTier:
    if isinstance(value, AgeTier):
        return value
    try:
        return AgeTier(str(value).strip().upper())
    except (ValueError, AttributeError) as e:
        raise ConfigurationError("Invalid age tier.", allowed=[t.value for t in AgeTier]) from e


def parse_retention_policy(policy: Any) -> RetentionPolicy:
    """
    Accepts a RetentionPolicy or a mapping. Anything over the 30 day cap, or
    not a valid policy at all, is a ConfigurationError.
    """
    if not isinstance(policy, RetentionPolicy):
        try:
            policy = RetentionPolicy.model_validate(policy)
        except PydanticValidationError as e:
            raise ConfigurationError("Invalid retention policy.") from e
    if policy.retention_days > MAX_RETENTION_DAYS:
        raise ConfigurationError(
            f"Retention period exceeds the {MAX_RETENTION_DAYS} day maximum.",
            retention_days=int(policy.retention_days),
            max_retention_days=MAX_RETENTION_DAYS,
        )
    return policy


class PrivacyPolicyStore:
    """
    Per-user and per-family privacy levels, age tiers and retention overrides.

    Effective level:
    - adults: explicit user level, else the deployment default
    - CHILD and TEEN users: explicit level, never below their tier default
    - family level and any participants present push the level up, never down

    When a ConfigManager is attached every mutation is written through to
    privacy.json before it becomes visible in memory.
    """

    def __init__(self, *, default_level: PrivacyLevel = PrivacyLevel.STANDARD, config_manager=None, logger=None):
        self.default_level = parse_privacy_level(default_level)
        self.config_manager = config_manager
        self.logger = logger
        self._locks = KeyedLocks()
        self._persist_lock = threading.Lock()
        self._users: Dict[str, UserPolicyRecord] = {}
        self._families: Dict[str, FamilyRecord] = {}
        if config_manager is not None:
            self._load(config_manager.read_non_sensitive("privacy.json"))

    # ---------- reads ----------
    def explicit_level(self, user_id: str) -> Optional[PrivacyLevel]:
        rec = self._users.get(user_id)
        if rec is None or rec.privacy_level is None:
            return None
        return PrivacyLevel(rec.privacy_level)

    def age_tier(self, user_id: str) -> AgeTier:
        rec = self._users.get(user_id)
        return AgeTier(rec.age_tier) if rec is not None else AgeTier.ADULT

    def family_of(self, user_id: str) -> Optional[str]:
        rec = self._users.get(user_id)
        return rec.family_id if rec is not None else None

    def family_members(self, family_id: str) -> List[str]:
        fam = self._families.get(family_id)
        return list(fam.members) if fam is not None else []

    def user_level(self, user_id: str) -> PrivacyLevel:
        """Level of one user on their own, before family and participants."""
        tier = self.age_tier(user_id)
        explicit = self.explicit_level(user_id)
        if tier == AgeTier.ADULT:
            return explicit if explicit is not None else self.default_level
        tier_default = DEFAULT_LEVEL_BY_TIER[tier]
        return max(explicit or tier_default, tier_default)

    def effective_level(self, user_id: str, participants: Iterable[str] = ()) -> PrivacyLevel:
        levels = [self.user_level(user_id)]
        fam_id = self.family_of(user_id)
        if fam_id is not None:
            fam = self._families.get(fam_id)
            if fam is not None and fam.privacy_level is not None:
                levels.append(PrivacyLevel(fam.privacy_level))
        for p in participants or ():
            if p and p != user_id:
                levels.append(self.user_level(str(p)))
        return most_restrictive(levels) or self.default_level

    def family_includes_minor(self, user_id: str) -> bool:
        if self.age_tier(user_id) in (AgeTier.CHILD, AgeTier.TEEN):
            return True
        fam_id = self.family_of(user_id)
        if fam_id is None:
            return False
        return any(self.age_tier(m) in (AgeTier.CHILD, AgeTier.TEEN) for m in self.family_members(fam_id))

    def retention_override(self, user_id: str, data_type: str = DEFAULT_DATA_TYPE) -> Optional[RetentionPolicy]:
        rec = self._users.get(user_id)
        if rec is None:
            return None
        o = rec.retention.get(data_type)
        if o is None:
            return None
        return RetentionPolicy.model_validate(o.model_dump())

    def retention_policy(self, user_id: str, data_type: str = DEFAULT_DATA_TYPE) -> RetentionPolicy:
        """
        Effective policy: days = min(override, level days); override flags are
        kept, defaults otherwise.
        """
        level_days = RETENTION_DAYS[self.effective_level(user_id)]
        override = self.retention_override(user_id, data_type)
        if override is None:
            return RetentionPolicy(data_type=data_type, retention_days=level_days)
        return override.model_copy(update={"retention_days": min(int(override.retention_days), level_days)})

    # ---------- writes ----------
    def set_privacy_level(self, user_id: str, level: Any) -> PrivacyLevel:
        lvl = parse_privacy_level(level)
        with self._locks.hold(f"user:{user_id}"):
            rec = self._users.get(user_id) or UserPolicyRecord()
            self._commit_user(user_id, rec.model_copy(update={"privacy_level": lvl.value}))
        return lvl

    def set_age_tier(self, user_id: str, tier: Any) -> AgeTier:
        t = parse_age_tier(tier)
        with self._locks.hold(f"user:{user_id}"):
            rec = self._users.get(user_id) or UserPolicyRecord()
            self._commit_user(user_id, rec.model_copy(update={"age_tier": t.value}))
        return t

    def set_retention_override(self, user_id: str, policy: Any) -> RetentionPolicy:
        pol = parse_retention_policy(policy)
        with self._locks.hold(f"user:{user_id}"):
            rec = self._users.get(user_id) or UserPolicyRecord()
            retention = dict(rec.retention)
            retention[pol.data_type] = RetentionOverrideRecord.model_validate(pol.model_dump())
            self._commit_user(user_id, rec.model_copy(update={"retention": retention}))
        return pol

    def restore_retention_override(self, user_id: str, data_type: str, previous: Optional[RetentionPolicy]) -> None:
        """Puts back an override read earlier; None removes it."""
        if previous is not None:
            self.set_retention_override(user_id, previous)
            return
        with self._locks.hold(f"user:{user_id}"):
            rec = self._users.get(user_id)
            if rec is None or data_type not in rec.retention:
                return
            retention = {k: v for k, v in rec.retention.items() if k != data_type}
            self._commit_user(user_id, rec.model_copy(update={"retention": retention}))

    def clear_retention_overrides(self, user_id: str) -> None:
        with self._locks.hold(f"user:{user_id}"):
            rec = self._users.get(user_id)
            if rec is None or not rec.retention:
                return
            self._commit_user(user_id, rec.model_copy(update={"retention": {}}))

    def configure_family_privacy_level(self, family_id: str, user_id: str, level: Any) -> PrivacyLevel:
        """Adds user_id to the family and sets the family-wide level."""
        lvl = parse_privacy_level(level)
        family_id = str(family_id or "").strip()
        if not family_id:
            raise ConfigurationError("Family id required.")
        with self._locks.hold(f"family:{family_id}"), self._locks.hold(f"user:{user_id}"):
            fam = self._families.get(family_id) or FamilyRecord()
            members = list(fam.members)
            if user_id not in members:
                members.append(user_id)
            new_fam = fam.model_copy(update={"members": members, "privacy_level": lvl.value})
            rec = self._users.get(user_id) or UserPolicyRecord()
            new_rec = rec.model_copy(update={"family_id": family_id})
            self._commit(users={user_id: new_rec}, families={family_id: new_fam})
        return lvl

    # ---------- persistence ----------
    def snapshot(self) -> Dict[str, Any]:
        return PrivacyPolicyFile(users=dict(self._users), families=dict(self._families)).model_dump()

    def _load(self, raw: Dict[str, Any]) -> None:
        try:
            f = PrivacyPolicyFile.model_validate(raw or {})
        except PydanticValidationError as e:
            raise ConfigurationError("privacy.json invalid.") from e
        self._users = dict(f.users)
        self._families = dict(f.families)
        if self.logger is not None:
            self.logger.info(f"Privacy policies loaded: users={len(self._users)} families={len(self._families)}")

    def _commit_user(self, user_id: str, rec: UserPolicyRecord) -> None:
        self._commit(users={user_id: rec}, families={})

    def _commit(self, *, users: Dict[str, UserPolicyRecord], families: Dict[str, FamilyRecord]) -> None:
        with self._persist_lock:
            if self.config_manager is not None:
                new_users = dict(self._users)
                new_users.update(users)
                new_families = dict(self._families)
                new_families.update(families)
                data = PrivacyPolicyFile(users=new_users, families=new_families).model_dump()
                self.config_manager.save_non_sensitive("privacy.json", data)
            self._users.update(users)
            self._families.update(families)
