"""Read-only signal queries feeding the health score engine.

The engine only depends on the `SignalRepository` protocol; `SqlSignalRepository`
is the SQLAlchemy-backed implementation used by the service.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import CheckIn, Feedback, Risk


class SignalQueryError(Exception):
    """Raised when a signal query cannot be answered by the backing store."""


@dataclass(frozen=True)
class SignalWindow:
    """Trailing period bounding "recent" signals, inclusive on both ends."""

    start: datetime
    end: datetime

    @classmethod
    def ending_at(cls, as_of: datetime, days: int) -> "SignalWindow":
        return cls(start=as_of - timedelta(days=days), end=as_of)


@dataclass(frozen=True)
class FeedbackSignal:
    satisfaction_rating: int
    flagged_issue: bool
    created_at: datetime


@dataclass(frozen=True)
class CheckInSignal:
    confidence_level: int
    estimated_completion: int
    created_at: datetime


class SignalRepository(Protocol):
    """Query shapes the engine reads; implementations raise `SignalQueryError`."""

    def recent_feedback(self, project_id: str, window: SignalWindow, limit: int) -> list[FeedbackSignal]:
        ...

    def recent_check_ins(self, project_id: str, window: SignalWindow, limit: int) -> list[CheckInSignal]:
        ...

    def count_flagged_feedback(self, project_id: str, window: SignalWindow) -> int:
        ...

    def count_risks(self, project_id: str, status: str, severity: str | None = None) -> int:
        ...


class SqlSignalRepository:
    """Signal queries against the service database."""

    def __init__(self, session: Session):
        self.session = session

    def recent_feedback(self, project_id: str, window: SignalWindow, limit: int) -> list[FeedbackSignal]:
        stmt = (
            select(Feedback.satisfaction_rating, Feedback.flagged_issue, Feedback.created_at)
            .where(
                Feedback.project_id == project_id,
                Feedback.created_at >= window.start,
                Feedback.created_at <= window.end,
            )
            .order_by(Feedback.created_at.desc(), Feedback.id.desc())
            .limit(limit)
        )
        try:
            rows = self.session.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise SignalQueryError(f"recent feedback query failed for project {project_id}") from exc
        return [FeedbackSignal(*row) for row in rows]

    def recent_check_ins(self, project_id: str, window: SignalWindow, limit: int) -> list[CheckInSignal]:
        stmt = (
            select(CheckIn.confidence_level, CheckIn.estimated_completion, CheckIn.created_at)
            .where(
                CheckIn.project_id == project_id,
                CheckIn.created_at >= window.start,
                CheckIn.created_at <= window.end,
            )
            .order_by(CheckIn.created_at.desc(), CheckIn.id.desc())
            .limit(limit)
        )
        try:
            rows = self.session.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise SignalQueryError(f"recent check-in query failed for project {project_id}") from exc
        return [CheckInSignal(*row) for row in rows]

    def count_flagged_feedback(self, project_id: str, window: SignalWindow) -> int:
        stmt = select(func.count(Feedback.id)).where(
            Feedback.project_id == project_id,
            Feedback.flagged_issue.is_(True),
            Feedback.created_at >= window.start,
            Feedback.created_at <= window.end,
        )
        try:
            return int(self.session.scalar(stmt) or 0)
        except SQLAlchemyError as exc:
            raise SignalQueryError(f"flagged feedback count failed for project {project_id}") from exc

    def count_risks(self, project_id: str, status: str, severity: str | None = None) -> int:
        stmt = select(func.count(Risk.id)).where(Risk.project_id == project_id, Risk.status == status)
        if severity:
            stmt = stmt.where(Risk.severity == severity)
        try:
            return int(self.session.scalar(stmt) or 0)
        except SQLAlchemyError as exc:
            raise SignalQueryError(f"risk count failed for project {project_id}") from exc
