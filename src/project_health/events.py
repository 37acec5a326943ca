"""Event payload builders for project health recalculation."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4


def build_project_health_recalculated_event(
    *,
    project_id: str,
    evaluated_at: datetime,
    trigger: str,
    health_score: int,
    previous_health_score: int,
    status: str,
    previous_status: str,
    status_guarded: bool,
    trace_id: str,
    produced_by: str,
) -> dict[str, Any]:
    """Build `project.health.recalculated` event envelope."""

    return {
        "event_id": str(uuid4()),
        "event_type": "project.health.recalculated",
        "event_version": "v1",
        "occurred_at": evaluated_at.isoformat(),
        "produced_by": produced_by,
        "trace_id": trace_id,
        "data": {
            "project_id": project_id,
            "evaluated_at": evaluated_at.isoformat(),
            "trigger": trigger,
            "health_score": health_score,
            "previous_health_score": previous_health_score,
            "status": status,
            "previous_status": previous_status,
            "status_guarded": status_guarded,
        },
    }
