"""Recalculation trigger: recompute a project's health and write it back."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from time import perf_counter
from typing import Any
from uuid import uuid4

from sqlalchemy import case, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .engine import ARCHIVED, COMPLETED, HealthAssessment, HealthScoreEngine, as_utc
from .events import build_project_health_recalculated_event
from .models import Project
from .observability import RecalculationMetrics, get_metrics, log_event
from .signals import SqlSignalRepository

logger = logging.getLogger("project_health")

PROTECTED_STATUSES = (COMPLETED, ARCHIVED)


@dataclass(frozen=True)
class RecalculationResult:
    project_id: str
    trigger: str
    assessment: HealthAssessment
    previous_health_score: int
    previous_status: str
    health_score: int
    status: str
    status_guarded: bool
    event: dict[str, Any]


def build_engine(
    session: Session,
    settings: Settings | None = None,
    metrics: RecalculationMetrics | None = None,
) -> HealthScoreEngine:
    """Return an engine reading signals through `session`."""

    settings = settings or get_settings()
    if metrics is None and settings.metrics_enabled:
        metrics = get_metrics()
    return HealthScoreEngine(
        SqlSignalRepository(session),
        window_days=settings.window_days,
        recent_limit=settings.recent_signal_limit,
        fallback_score=settings.fallback_score,
        metrics=metrics,
    )


def recalculate_project_health(
    session: Session,
    project: Project,
    *,
    trigger: str,
    as_of: datetime | None = None,
    trace_id: str | None = None,
    override_guard: bool = False,
    engine: HealthScoreEngine | None = None,
    settings: Settings | None = None,
) -> RecalculationResult:
    """Recompute `project`'s score and status and persist them before returning.

    The score is always written. The status is replaced by the classifier label
    unless the stored status is Completed or Archived; that check runs inside
    the UPDATE so it is atomic per project. `override_guard` is reserved for the
    unarchive path, which explicitly hands status back to the classifier.
    """

    settings = settings or get_settings()
    metrics = get_metrics() if settings.metrics_enabled else None
    engine = engine or build_engine(session, settings, metrics)
    trace_id = trace_id or uuid4().hex
    started = perf_counter()

    previous_score = project.health_score
    previous_status = project.status
    assessment = engine.assess(project, as_of or datetime.now(tz=timezone.utc))

    if override_guard:
        status_value: Any = assessment.status
    else:
        status_value = case(
            (Project.status.in_(PROTECTED_STATUSES), Project.status),
            else_=assessment.status,
        )
    stmt = (
        update(Project)
        .where(Project.id == project.id)
        .values(health_score=assessment.score, status=status_value)
        .execution_options(synchronize_session=False)
    )

    try:
        session.execute(stmt)
        session.commit()
        session.refresh(project)
    except SQLAlchemyError as exc:
        session.rollback()
        latency_ms = (perf_counter() - started) * 1000.0
        if metrics is not None:
            metrics.record_error(latency_ms)
        log_event(
            logger,
            "project_health_recalculation_error",
            level=logging.ERROR,
            project_id=project.id,
            trigger=trigger,
            trace_id=trace_id,
            latency_ms=round(latency_ms, 3),
            error=str(exc),
        )
        raise

    status_guarded = not override_guard and project.status in PROTECTED_STATUSES
    event = build_project_health_recalculated_event(
        project_id=project.id,
        evaluated_at=as_utc(assessment.evaluated_at),
        trigger=trigger,
        health_score=project.health_score,
        previous_health_score=previous_score,
        status=project.status,
        previous_status=previous_status,
        status_guarded=status_guarded,
        trace_id=trace_id,
        produced_by=settings.event_produced_by,
    )
    latency_ms = (perf_counter() - started) * 1000.0
    if metrics is not None:
        metrics.record_recalculation(latency_ms, project.health_score, guarded=status_guarded)
    log_event(
        logger,
        "project_health_recalculated",
        project_id=project.id,
        trigger=trigger,
        trace_id=trace_id,
        event_id=event["event_id"],
        health_score=project.health_score,
        previous_health_score=previous_score,
        status=project.status,
        previous_status=previous_status,
        status_guarded=status_guarded,
        fallback=assessment.fallback,
        latency_ms=round(latency_ms, 3),
    )

    return RecalculationResult(
        project_id=project.id,
        trigger=trigger,
        assessment=assessment,
        previous_health_score=previous_score,
        previous_status=previous_status,
        health_score=project.health_score,
        status=project.status,
        status_guarded=status_guarded,
        event=event,
    )
