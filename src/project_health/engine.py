"""Project health scoring: weighted score composer and status classifier.

The composite score starts at 100 and is blended, in a fixed order, with one
signal score per step. Each step blends against the running score, so the
order and the skip rules below change which weights end up applying:

1. client satisfaction   keep 0.70 / signal 0.30  (skipped without recent feedback)
2. employee confidence   keep 0.80 / signal 0.20  (skipped without recent check-ins)
3. schedule adherence    keep 0.80 / signal 0.20  (skipped without recent check-ins)
4. open risks            keep 0.85 / signal 0.15  (always)
5. high-severity risks   keep 0.90 / signal 0.10  (always)
6. flagged feedback      keep 0.95 / signal 0.05  (always)

The result is clamped to [0, 100] and rounded half-up.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging
import math
from typing import Protocol

from .observability import RecalculationMetrics, log_event
from .signals import CheckInSignal, FeedbackSignal, SignalQueryError, SignalRepository, SignalWindow

logger = logging.getLogger("project_health")

BASE_SCORE = 100.0

SATISFACTION_BLEND = (0.7, 0.3)
CONFIDENCE_BLEND = (0.8, 0.2)
SCHEDULE_BLEND = (0.8, 0.2)
OPEN_RISK_BLEND = (0.85, 0.15)
HIGH_RISK_BLEND = (0.9, 0.1)
FLAGGED_BLEND = (0.95, 0.05)

RATING_SCALE_MAX = 5
BEHIND_SCHEDULE_TOLERANCE = -10.0
SCHEDULE_DEFICIT_MULTIPLIER = 2.0

OPEN_RISK_PENALTY_STEP = 5
OPEN_RISK_PENALTY_CAP = 15
HIGH_RISK_PENALTY_STEP = 10
HIGH_RISK_PENALTY_CAP = 10
FLAGGED_PENALTY_STEP = 5
FLAGGED_PENALTY_CAP = 5

ON_TRACK_THRESHOLD = 80
AT_RISK_THRESHOLD = 60

ON_TRACK = "On Track"
AT_RISK = "At Risk"
CRITICAL = "Critical"
COMPLETED = "Completed"
ARCHIVED = "Archived"


class ProjectTimeline(Protocol):
    """What the engine needs to know about a project."""

    id: str
    start_date: datetime
    end_date: datetime


@dataclass(frozen=True)
class SignalSnapshot:
    """All signals read for one project at one as-of instant."""

    feedback: Sequence[FeedbackSignal] = ()
    check_ins: Sequence[CheckInSignal] = ()
    open_risk_count: int = 0
    high_open_risk_count: int = 0
    flagged_feedback_count: int = 0


@dataclass(frozen=True)
class BlendStep:
    """Outcome of one weighting step; `signal_score` is None when skipped."""

    name: str
    applied: bool
    signal_score: float | None
    weight: float
    score_after: float


@dataclass(frozen=True)
class HealthAssessment:
    score: int
    status: str
    evaluated_at: datetime
    steps: tuple[BlendStep, ...] = field(default_factory=tuple)
    fallback: bool = False


def classify_status(score: int) -> str:
    """Map a composite score to the engine-derived status label."""

    if score >= ON_TRACK_THRESHOLD:
        return ON_TRACK
    if score >= AT_RISK_THRESHOLD:
        return AT_RISK
    return CRITICAL


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps (as returned by SQLite) as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _ceil_days(delta: timedelta) -> int:
    return math.ceil(delta / timedelta(days=1))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def expected_progress(start_date: datetime, end_date: datetime, as_of: datetime) -> float:
    """Percent of the timeline elapsed at `as_of`, capped at 100."""

    start = as_utc(start_date)
    # end before start would otherwise divide by zero or flip the sign
    total_days = max(1, _ceil_days(as_utc(end_date) - start))
    days_elapsed = _ceil_days(as_utc(as_of) - start)
    return min(100.0, (days_elapsed / total_days) * 100)


def compose_health_score(
    snapshot: SignalSnapshot,
    *,
    start_date: datetime,
    end_date: datetime,
    as_of: datetime,
) -> HealthAssessment:
    """Blend a signal snapshot into a 0-100 score. Pure and deterministic."""

    score = BASE_SCORE
    steps: list[BlendStep] = []

    def blend(name: str, blend_weights: tuple[float, float], signal: float) -> None:
        nonlocal score
        keep, weight = blend_weights
        score = score * keep + signal * weight
        steps.append(BlendStep(name=name, applied=True, signal_score=signal, weight=weight, score_after=score))

    def skip(name: str, blend_weights: tuple[float, float]) -> None:
        steps.append(BlendStep(name=name, applied=False, signal_score=None, weight=blend_weights[1], score_after=score))

    if snapshot.feedback:
        avg_satisfaction = _mean([item.satisfaction_rating for item in snapshot.feedback])
        blend("satisfaction", SATISFACTION_BLEND, (avg_satisfaction / RATING_SCALE_MAX) * 100)
    else:
        skip("satisfaction", SATISFACTION_BLEND)

    if snapshot.check_ins:
        avg_confidence = _mean([item.confidence_level for item in snapshot.check_ins])
        blend("confidence", CONFIDENCE_BLEND, (avg_confidence / RATING_SCALE_MAX) * 100)

        avg_progress = _mean([item.estimated_completion for item in snapshot.check_ins])
        diff = avg_progress - expected_progress(start_date, end_date, as_of)
        if diff < BEHIND_SCHEDULE_TOLERANCE:
            # may go negative; the final clamp absorbs it
            blend("schedule", SCHEDULE_BLEND, 100 + diff * SCHEDULE_DEFICIT_MULTIPLIER)
        else:
            blend("schedule", SCHEDULE_BLEND, 100.0)
    else:
        skip("confidence", CONFIDENCE_BLEND)
        skip("schedule", SCHEDULE_BLEND)

    risk_penalty = min(OPEN_RISK_PENALTY_CAP, snapshot.open_risk_count * OPEN_RISK_PENALTY_STEP)
    blend("open_risks", OPEN_RISK_BLEND, float(100 - risk_penalty))

    high_risk_penalty = min(HIGH_RISK_PENALTY_CAP, snapshot.high_open_risk_count * HIGH_RISK_PENALTY_STEP)
    blend("high_risks", HIGH_RISK_BLEND, float(100 - high_risk_penalty))

    flagged_penalty = min(FLAGGED_PENALTY_CAP, snapshot.flagged_feedback_count * FLAGGED_PENALTY_STEP)
    blend("flagged_feedback", FLAGGED_BLEND, float(100 - flagged_penalty))

    final_score = round_half_up(max(0.0, min(100.0, score)))
    return HealthAssessment(
        score=final_score,
        status=classify_status(final_score),
        evaluated_at=as_utc(as_of),
        steps=tuple(steps),
    )


class HealthScoreEngine:
    """Reads signals for a project and composes its health score."""

    def __init__(
        self,
        repository: SignalRepository,
        *,
        window_days: int = 28,
        recent_limit: int = 4,
        fallback_score: int = 50,
        metrics: RecalculationMetrics | None = None,
    ) -> None:
        self.repository = repository
        self.window_days = window_days
        self.recent_limit = recent_limit
        self.fallback_score = fallback_score
        self.metrics = metrics

    def collect_signals(self, project_id: str, as_of: datetime) -> SignalSnapshot:
        window = SignalWindow.ending_at(as_of, self.window_days)
        return SignalSnapshot(
            feedback=self.repository.recent_feedback(project_id, window, self.recent_limit),
            check_ins=self.repository.recent_check_ins(project_id, window, self.recent_limit),
            open_risk_count=self.repository.count_risks(project_id, "Open"),
            high_open_risk_count=self.repository.count_risks(project_id, "Open", "High"),
            flagged_feedback_count=self.repository.count_flagged_feedback(project_id, window),
        )

    def assess(self, project: ProjectTimeline, as_of: datetime | None = None) -> HealthAssessment:
        """Compose the score for `project`, falling back to a neutral score if signals are unavailable."""

        as_of = as_utc(as_of or datetime.now(tz=timezone.utc))
        try:
            snapshot = self.collect_signals(project.id, as_of)
        except (SignalQueryError, TimeoutError) as exc:
            log_event(
                logger,
                "project_health_signal_query_failed",
                level=logging.WARNING,
                project_id=project.id,
                as_of=as_of,
                fallback_score=self.fallback_score,
                error=str(exc),
            )
            if self.metrics is not None:
                self.metrics.record_fallback()
            return HealthAssessment(
                score=self.fallback_score,
                status=classify_status(self.fallback_score),
                evaluated_at=as_of,
                fallback=True,
            )

        return compose_health_score(
            snapshot,
            start_date=project.start_date,
            end_date=project.end_date,
            as_of=as_of,
        )

    def compute_health_score(self, project: ProjectTimeline, as_of: datetime | None = None) -> int:
        return self.assess(project, as_of).score
