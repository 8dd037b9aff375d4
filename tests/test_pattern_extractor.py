from __future__ import annotations

from datetime import datetime, timezone

import pytest

from hearth.core.interactions.extractor import PatternExtractor
from hearth.core.interactions.models import (
    DayOfWeek,
    DeviceType,
    InteractionSource,
    InteractionType,
    PatternType,
    TimeOfDay,
    day_of_week,
    time_of_day_bucket,
)

from helpers.builders import make_interaction


def test_three_patterns_from_categorical_fields():
    ui = make_interaction(type="education", source="ui", device_type="tablet", time_of_day="evening", success=True)
    temporal, behavioral, contextual = PatternExtractor().extract(ui)

    assert temporal.type == PatternType.TEMPORAL
    assert temporal.pattern_id == "temporal:evening"
    assert temporal.strength == 0.7

    assert behavioral.type == PatternType.BEHAVIORAL
    assert behavioral.pattern_id == "behavioral:education:success"
    assert behavioral.strength == 0.8

    assert contextual.type == PatternType.CONTEXTUAL
    assert contextual.pattern_id == "contextual:tablet:ui"
    assert contextual.strength == 0.6


def test_failure_and_follow_up_lower_strength():
    ui = make_interaction(success=False, follow_up_required=True)
    _, behavioral, contextual = PatternExtractor().extract(ui)
    assert behavioral.pattern_id.endswith(":failure")
    assert behavioral.strength == 0.3
    assert contextual.strength == 0.5


def test_patterns_hold_no_raw_content():
    ui = make_interaction(
        description="secret plan for Jane Morgan",
        location="Grandma's house at 123 Maple Street",
        participants=["kid-1"],
        metadata={"email": "jane@example.com"},
        environmental_factors={"weather": "rainy"},
    )
    allowed = (
        {t.value for t in TimeOfDay}
        | {d.value for d in DayOfWeek}
        | {d.value for d in DeviceType}
        | {s.value for s in InteractionSource}
        | {t.value for t in InteractionType}
        | {"success", "failure"}
    )
    for p in PatternExtractor().extract(ui):
        assert p.is_anonymized
        assert set(p.context.values()) <= allowed
        for part in p.pattern_id.split(":")[1:]:
            assert part in allowed


@pytest.mark.parametrize(
    "hour,bucket",
    [
        (0, TimeOfDay.LATE_NIGHT),
        (5, TimeOfDay.LATE_NIGHT),
        (6, TimeOfDay.EARLY_MORNING),
        (9, TimeOfDay.MORNING),
        (12, TimeOfDay.EARLY_AFTERNOON),
        (14, TimeOfDay.AFTERNOON),
        (18, TimeOfDay.EVENING),
        (22, TimeOfDay.NIGHT),
        (23, TimeOfDay.NIGHT),
    ],
)
def test_time_of_day_bucket(hour, bucket):
    assert time_of_day_bucket(datetime(2026, 3, 2, hour, 15, tzinfo=timezone.utc)) == bucket


def test_day_of_week():
    assert day_of_week(datetime(2026, 3, 2, tzinfo=timezone.utc)) == DayOfWeek.MONDAY
    assert day_of_week(datetime(2026, 3, 8, tzinfo=timezone.utc)) == DayOfWeek.SUNDAY
