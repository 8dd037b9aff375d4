from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


SESSION_ID_PATTERN = r"^[A-Za-z0-9_-]+$"


def _as_utc(v: datetime) -> datetime:
    if v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc)


class InteractionSource(str, Enum):
    VOICE = "voice"
    UI = "ui"
    SCHEDULING = "scheduling"
    AVATAR = "avatar"
    SMART_HOME = "smart_home"


class InteractionType(str, Enum):
    QUERY = "query"
    COMMAND = "command"
    CONVERSATION = "conversation"
    TASK_ASSISTANCE = "task_assistance"
    ENTERTAINMENT = "entertainment"
    EDUCATION = "education"
    SCHEDULING = "scheduling"
    FEEDBACK = "feedback"


class TimeOfDay(str, Enum):
    LATE_NIGHT = "late_night"
    EARLY_MORNING = "early_morning"
    MORNING = "morning"
    EARLY_AFTERNOON = "early_afternoon"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


class DayOfWeek(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"


class DeviceType(str, Enum):
    SMART_DISPLAY = "smart_display"
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"
    VOICE_ONLY = "voice_only"


class PatternType(str, Enum):
    TEMPORAL = "temporal"
    BEHAVIORAL = "behavioral"
    CONTEXTUAL = "contextual"
    PREFERENCE = "preference"
    HABIT = "habit"


def time_of_day_bucket(dt: datetime) -> TimeOfDay:
    hour = dt.hour
    if hour < 6:
        return TimeOfDay.LATE_NIGHT
    if hour < 9:
        return TimeOfDay.EARLY_MORNING
    if hour < 12:
        return TimeOfDay.MORNING
    if hour < 14:
        return TimeOfDay.EARLY_AFTERNOON
    if hour < 18:
        return TimeOfDay.AFTERNOON
    if hour < 22:
        return TimeOfDay.EVENING
    return TimeOfDay.NIGHT


def day_of_week(dt: datetime) -> DayOfWeek:
    return list(DayOfWeek)[dt.weekday()]


class InteractionContext(BaseModel):
    model_config = ConfigDict(extra="forbid")

    time_of_day: TimeOfDay
    day_of_week: DayOfWeek
    location: str = Field(default="unknown", max_length=200)
    device_type: DeviceType = DeviceType.SMART_DISPLAY
    previous_interactions: List[str] = Field(default_factory=list)
    environmental_factors: Dict[str, Any] = Field(default_factory=dict)
    # family member user ids present during the interaction
    participants: List[str] = Field(default_factory=list)


class InteractionOutcome(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success: bool = True
    user_satisfaction: float = Field(default=0.5, ge=0.0, le=1.0)
    completion_time_ms: int = Field(default=0, ge=0)
    follow_up_required: bool = False
    error_occurred: bool = False


class BehaviorPattern(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    pattern_id: str = Field(min_length=1, max_length=200)
    type: PatternType
    strength: float = Field(ge=0.0, le=1.0)
    frequency: float = Field(default=1.0, ge=0.0)
    context: Dict[str, str] = Field(default_factory=dict)
    is_anonymized: bool = True


class UserInteraction(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(min_length=1, max_length=128)
    session_id: str = Field(min_length=1, max_length=128, pattern=SESSION_ID_PATTERN)
    timestamp: datetime
    source: InteractionSource
    type: InteractionType
    context: InteractionContext
    patterns: List[BehaviorPattern] = Field(default_factory=list)
    outcome: InteractionOutcome = Field(default_factory=InteractionOutcome)
    description: str = Field(default="", max_length=10_000)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("user_id")
    @classmethod
    def _user_id_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("user_id required")
        return v

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return _as_utc(v)


# ---- read side ----
class TimeRange(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    @model_validator(mode="after")
    def _ordered(self) -> "TimeRange":
        if self.end < self.start:
            raise ValueError("end must not precede start")
        return self

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts <= self.end


class InteractionTypeSummary(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    type: InteractionType
    count: int
    average_duration_ms: float
    success_rate: float
    satisfaction: float


class PatternSummary(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    pattern_id: str
    type: PatternType
    frequency: float
    strength: float
    last_seen: datetime


class InteractionTrend(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    trend_id: str
    direction: str
    strength: float
    description: str


class InteractionSummary(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    user_id: str
    time_range: TimeRange
    total_interactions: int
    interaction_types: List[InteractionTypeSummary] = Field(default_factory=list)
    patterns: List[PatternSummary] = Field(default_factory=list)
    trends: List[InteractionTrend] = Field(default_factory=list)
    sources: Optional[Dict[str, int]] = None
