from __future__ import annotations

"""
Interaction capture: models, pattern extraction, per-user storage and retention.

Only models are re-exported here; import the collector from
`hearth.core.interactions.collector`.
"""

from hearth.core.interactions.models import (
    BehaviorPattern,
    InteractionContext,
    InteractionOutcome,
    InteractionSource,
    InteractionSummary,
    InteractionType,
    TimeRange,
    UserInteraction,
)

__all__ = [
    "BehaviorPattern",
    "InteractionContext",
    "InteractionOutcome",
    "InteractionSource",
    "InteractionSummary",
    "InteractionType",
    "TimeRange",
    "UserInteraction",
]
