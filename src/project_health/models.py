"""SQLAlchemy models for projects and the signals recorded against them."""

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Project(Base):
    """Tracked project; `health_score` and `status` are derived by the engine."""

    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    client_id: Mapped[str] = mapped_column(String(64), nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    health_score: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="On Track")
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    check_ins: Mapped[list["CheckIn"]] = relationship(back_populates="project", cascade="all, delete-orphan")
    feedback: Mapped[list["Feedback"]] = relationship(back_populates="project", cascade="all, delete-orphan")
    risks: Mapped[list["Risk"]] = relationship(back_populates="project", cascade="all, delete-orphan")
    milestones: Mapped[list["Milestone"]] = relationship(
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="Milestone.position",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('On Track', 'At Risk', 'Critical', 'Completed', 'Archived')",
            name="ck_projects_status",
        ),
        CheckConstraint("health_score BETWEEN 0 AND 100", name="ck_projects_health_score"),
    )


class CheckIn(Base):
    """Weekly progress check-in submitted by an employee."""

    __tablename__ = "check_ins"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    employee_id: Mapped[str] = mapped_column(String(64), nullable=False)
    progress_summary: Mapped[str] = mapped_column(Text, nullable=False)
    blockers: Mapped[str] = mapped_column(Text, nullable=False, default="")
    confidence_level: Mapped[int] = mapped_column(Integer, nullable=False)
    estimated_completion: Mapped[int] = mapped_column(Integer, nullable=False)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    project: Mapped[Project] = relationship(back_populates="check_ins")

    __table_args__ = (
        UniqueConstraint("project_id", "employee_id", "week_start", name="uq_check_ins_weekly"),
        CheckConstraint("confidence_level BETWEEN 1 AND 5", name="ck_check_ins_confidence"),
        CheckConstraint("estimated_completion BETWEEN 0 AND 100", name="ck_check_ins_completion"),
    )


class Feedback(Base):
    """Weekly satisfaction feedback submitted by the project's client."""

    __tablename__ = "feedback"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    client_id: Mapped[str] = mapped_column(String(64), nullable=False)
    satisfaction_rating: Mapped[int] = mapped_column(Integer, nullable=False)
    communication_rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comments: Mapped[str] = mapped_column(Text, nullable=False, default="")
    flagged_issue: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    week_start: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    project: Mapped[Project] = relationship(back_populates="feedback")

    __table_args__ = (
        UniqueConstraint("project_id", "client_id", "week_start", name="uq_feedback_weekly"),
        CheckConstraint("satisfaction_rating BETWEEN 1 AND 5", name="ck_feedback_satisfaction"),
        CheckConstraint("communication_rating BETWEEN 1 AND 5", name="ck_feedback_communication"),
    )


class Risk(Base):
    """Risk logged against a project."""

    __tablename__ = "risks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    mitigation_plan: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Open")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    project: Mapped[Project] = relationship(back_populates="risks")

    __table_args__ = (
        CheckConstraint("severity IN ('Low', 'Medium', 'High')", name="ck_risks_severity"),
        CheckConstraint("status IN ('Open', 'Resolved')", name="ck_risks_status"),
    )


class Milestone(Base):
    """Named delivery checkpoint on a project timeline."""

    __tablename__ = "milestones"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    project_id: Mapped[str] = mapped_column(String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    target_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Pending")
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    project: Mapped[Project] = relationship(back_populates="milestones")

    __table_args__ = (CheckConstraint("status IN ('Pending', 'Completed')", name="ck_milestones_status"),)
