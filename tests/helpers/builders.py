from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from hearth.core.interactions.models import UserInteraction

from helpers.fakes import DEFAULT_NOW


def interaction_dict(
    *,
    user_id: str = "user-1",
    session_id: str = "sess_1",
    timestamp: Optional[datetime] = None,
    source: str = "voice",
    type: str = "query",
    description: str = "",
    location: str = "kitchen",
    device_type: str = "smart_display",
    time_of_day: str = "morning",
    day_of_week: str = "monday",
    participants: Optional[List[str]] = None,
    environmental_factors: Optional[Dict[str, Any]] = None,
    success: bool = True,
    satisfaction: float = 0.8,
    completion_time_ms: int = 1200,
    follow_up_required: bool = False,
    patterns: Optional[List[Dict[str, Any]]] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return {
        "user_id": user_id,
        "session_id": session_id,
        "timestamp": timestamp or (DEFAULT_NOW - timedelta(hours=1)),
        "source": source,
        "type": type,
        "context": {
            "time_of_day": time_of_day,
            "day_of_week": day_of_week,
            "location": location,
            "device_type": device_type,
            "environmental_factors": environmental_factors or {},
            "participants": participants or [],
        },
        "patterns": patterns or [],
        "outcome": {
            "success": success,
            "user_satisfaction": satisfaction,
            "completion_time_ms": completion_time_ms,
            "follow_up_required": follow_up_required,
        },
        "description": description,
        "metadata": metadata or {},
    }


def make_interaction(**kwargs: Any) -> UserInteraction:
    return UserInteraction.model_validate(interaction_dict(**kwargs))
