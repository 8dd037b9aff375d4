from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


PrivacyLevelName = Literal["MINIMAL", "STANDARD", "ENHANCED", "MAXIMUM"]
AgeTierName = Literal["CHILD", "TEEN", "ADULT"]


class PipelineConfigFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default_privacy_level: PrivacyLevelName = "STANDARD"
    noise_mechanism: Literal["laplace", "gaussian"] = "laplace"
    gaussian_delta: float = Field(default=1e-5, gt=0.0, lt=1.0)
    sensitivity: float = Field(default=1.0, gt=0.0, le=100.0)
    retention_sweep_seconds: int = Field(default=3600, ge=1, le=86_400)
    sanitizer_max_depth: int = Field(default=32, ge=1, le=256)
    sanitizer_max_passes: int = Field(default=3, ge=1, le=10)
    hash_key_path: Optional[str] = None
    blocked_safety_terms: List[str] = Field(default_factory=lambda: ["violence", "inappropriate", "unsafe", "harmful"])


class EventsBusConfigFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    max_queue_size: int = Field(default=1000, ge=10, le=100_000)
    max_subscriber_backlog: int = Field(default=1000, ge=10, le=100_000)
    overflow_policy: Literal["DROP_OLDEST", "DROP_NEWEST"] = "DROP_OLDEST"
    shutdown_grace_seconds: float = Field(default=5.0, ge=0.1, le=60.0)
    log_dropped_events: bool = True
    jsonl_enabled: bool = False
    jsonl_path: str = "logs/events/hearth_events.jsonl"
    log_events: bool = False


class RetentionOverrideRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    data_type: str = Field(min_length=1, max_length=64)
    retention_days: int = Field(ge=1, le=30)
    auto_delete: bool = True
    archive_before_delete: bool = False
    user_notification: bool = False


class UserPolicyRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    privacy_level: Optional[PrivacyLevelName] = None
    age_tier: AgeTierName = "ADULT"
    family_id: Optional[str] = None
    retention: Dict[str, RetentionOverrideRecord] = Field(default_factory=dict)


class FamilyRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    members: List[str] = Field(default_factory=list)
    privacy_level: Optional[PrivacyLevelName] = None


class PrivacyPolicyFile(BaseModel):
    """
    config/privacy.json schema.

    Written through by the privacy policy store; per-user levels, tiers,
    family membership and retention overrides survive restarts.
    """

    model_config = ConfigDict(extra="forbid")

    schema_version: int = Field(default=1, ge=1, le=10)
    users: Dict[str, UserPolicyRecord] = Field(default_factory=dict)
    families: Dict[str, FamilyRecord] = Field(default_factory=dict)


class HearthConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    pipeline: PipelineConfigFile
    events: EventsBusConfigFile
    privacy: PrivacyPolicyFile


def default_files() -> Dict[str, Dict[str, Any]]:
    return {
        "pipeline.json": PipelineConfigFile().model_dump(),
        "events.json": EventsBusConfigFile().model_dump(),
        "privacy.json": PrivacyPolicyFile().model_dump(),
    }
