from __future__ import annotations

from typing import List

from hearth.core.interactions.models import BehaviorPattern, PatternType, UserInteraction


TEMPORAL_STRENGTH = 0.7
BEHAVIORAL_SUCCESS_STRENGTH = 0.8
BEHAVIORAL_FAILURE_STRENGTH = 0.3
CONTEXTUAL_STRENGTH = 0.5
CONTEXTUAL_NO_FOLLOW_UP_STRENGTH = 0.6


class PatternExtractor:
    """
    Coarse behavioral signals from the categorical fields of an interaction.

    Only enum values are read (time bucket, weekday, device, source, type,
    outcome flags), so no free text, location or participant id can reach
    a pattern.
    """

    def extract(self, interaction: UserInteraction) -> List[BehaviorPattern]:
        ctx = interaction.context
        outcome = interaction.outcome
        result = "success" if outcome.success else "failure"

        temporal = BehaviorPattern(
            pattern_id=f"temporal:{ctx.time_of_day.value}",
            type=PatternType.TEMPORAL,
            strength=TEMPORAL_STRENGTH,
            frequency=1.0,
            context={"time_of_day": ctx.time_of_day.value, "day_of_week": ctx.day_of_week.value},
        )
        behavioral = BehaviorPattern(
            pattern_id=f"behavioral:{interaction.type.value}:{result}",
            type=PatternType.BEHAVIORAL,
            strength=BEHAVIORAL_SUCCESS_STRENGTH if outcome.success else BEHAVIORAL_FAILURE_STRENGTH,
            frequency=1.0,
            context={"interaction_type": interaction.type.value, "outcome": result},
        )
        contextual = BehaviorPattern(
            pattern_id=f"contextual:{ctx.device_type.value}:{interaction.source.value}",
            type=PatternType.CONTEXTUAL,
            strength=CONTEXTUAL_STRENGTH if outcome.follow_up_required else CONTEXTUAL_NO_FOLLOW_UP_STRENGTH,
            frequency=1.0,
            context={"device_type": ctx.device_type.value, "source": interaction.source.value},
        )
        return [temporal, behavioral, contextual]
