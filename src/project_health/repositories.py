"""Persistence operations for projects and their signals.

Every operation that changes a signal, or that reads projects back to a
caller, finishes by running the recalculation trigger for the affected project.
"""

from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .config import Settings, get_settings
from .engine import ARCHIVED, as_utc, round_half_up
from .errors import ConflictError, EditWindowClosedError, InvalidTimelineError, NotFoundError
from .models import CheckIn, Feedback, Milestone, Project, Risk
from .recalculation import RecalculationResult, recalculate_project_health
from .schemas import (
    AnalyticsAverages,
    AnalyticsRecentActivity,
    AnalyticsSummary,
    AnalyticsTotals,
    CreateCheckInRequest,
    CreateFeedbackRequest,
    CreateProjectRequest,
    CreateRiskRequest,
    MilestoneRequest,
    UpdateFeedbackRequest,
    UpdateProjectRequest,
    UpdateRiskRequest,
)


def week_start_for(moment: datetime) -> date:
    """Monday of the ISO week containing `moment` (UTC)."""

    day = as_utc(moment).date()
    return day - timedelta(days=day.weekday())


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class ProjectRepository:
    """Repository for projects, check-ins, feedback and risks."""

    def __init__(
        self,
        session: Session,
        clock: Callable[[], datetime] = _utcnow,
        settings: Settings | None = None,
    ):
        self.session = session
        self.clock = clock
        self.settings = settings or get_settings()

    def _now(self) -> datetime:
        return as_utc(self.clock())

    def _recalculate(
        self,
        project: Project,
        trigger: str,
        trace_id: str | None,
        *,
        override_guard: bool = False,
    ) -> RecalculationResult:
        return recalculate_project_health(
            self.session,
            project,
            trigger=trigger,
            as_of=self._now(),
            trace_id=trace_id,
            override_guard=override_guard,
            settings=self.settings,
        )

    def _commit(self, conflict_message: str) -> None:
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError(conflict_message) from exc

    @staticmethod
    def _build_milestones(items: list[MilestoneRequest]) -> list[Milestone]:
        return [
            Milestone(name=item.name, target_date=as_utc(item.target_date), status=item.status, position=index)
            for index, item in enumerate(items)
        ]

    # projects

    def create_project(self, payload: CreateProjectRequest, trace_id: str | None = None) -> Project:
        start_date, end_date = as_utc(payload.start_date), as_utc(payload.end_date)
        if end_date < start_date:
            raise InvalidTimelineError("Project end date is before its start date")

        now = self._now()
        project = Project(
            name=payload.name,
            description=payload.description,
            client_id=payload.client_id,
            start_date=start_date,
            end_date=end_date,
            created_at=now,
            updated_at=now,
            milestones=self._build_milestones(payload.milestones),
        )
        self.session.add(project)
        self._commit("Project violates constraints")
        self.session.refresh(project)

        self._recalculate(project, "project_created", trace_id)
        return project

    def get_project(self, project_id: str) -> Project:
        project = self.session.get(Project, project_id)
        if project is None:
            raise NotFoundError("Project not found")
        return project

    def read_project(self, project_id: str, trace_id: str | None = None) -> Project:
        project = self.get_project(project_id)
        self._recalculate(project, "project_read", trace_id)
        return project

    def list_projects(
        self,
        *,
        status: str | None = None,
        search: str | None = None,
        include_archived: bool = False,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        trace_id: str | None = None,
    ) -> list[Project]:
        stmt: Select[tuple[Project]] = select(Project)
        if not include_archived:
            stmt = stmt.where(Project.is_archived.is_(False))
        if search:
            stmt = stmt.where(Project.name.ilike(f"%{search}%"))

        projects = list(self.session.scalars(stmt))
        for project in projects:
            self._recalculate(project, "project_listed", trace_id)
        if status:
            projects = [project for project in projects if project.status == status]

        sort_keys: dict[str, Callable[[Project], object]] = {
            "name": lambda item: item.name.lower(),
            "health_score": lambda item: item.health_score,
            "created_at": lambda item: as_utc(item.created_at),
        }
        projects.sort(key=sort_keys[sort_by], reverse=sort_order == "desc")
        return projects

    def update_project(
        self,
        project_id: str,
        payload: UpdateProjectRequest,
        trace_id: str | None = None,
    ) -> Project:
        """Apply administrative edits.

        An explicit status is stored as given. Otherwise a timeline change
        moves the schedule-adherence input, so the score is recomputed.
        """

        project = self.get_project(project_id)
        start_date = as_utc(payload.start_date) if payload.start_date else as_utc(project.start_date)
        end_date = as_utc(payload.end_date) if payload.end_date else as_utc(project.end_date)
        if end_date < start_date:
            raise InvalidTimelineError("Project end date is before its start date")
        timeline_changed = (start_date, end_date) != (as_utc(project.start_date), as_utc(project.end_date))

        if payload.name is not None:
            project.name = payload.name
        if payload.description is not None:
            project.description = payload.description
        project.start_date = start_date
        project.end_date = end_date
        if payload.status is not None:
            project.status = payload.status
            project.is_archived = payload.status == ARCHIVED
        if payload.milestones is not None:
            project.milestones = self._build_milestones(payload.milestones)
        project.updated_at = self._now()

        self.session.add(project)
        self._commit("Project violates constraints")
        self.session.refresh(project)

        if timeline_changed and payload.status is None:
            self._recalculate(project, "project_updated", trace_id)
        return project

    def archive_project(self, project_id: str) -> Project:
        project = self.get_project(project_id)
        project.is_archived = True
        project.status = ARCHIVED
        project.updated_at = self._now()
        self.session.add(project)
        self.session.commit()
        self.session.refresh(project)
        return project

    def unarchive_project(self, project_id: str, trace_id: str | None = None) -> Project:
        project = self.get_project(project_id)
        project.is_archived = False
        project.updated_at = self._now()
        self.session.add(project)
        self.session.commit()

        self._recalculate(project, "project_unarchived", trace_id, override_guard=True)
        return project

    # check-ins

    def create_check_in(
        self,
        project_id: str,
        payload: CreateCheckInRequest,
        trace_id: str | None = None,
    ) -> CheckIn:
        project = self.get_project(project_id)
        now = self._now()
        week_start = week_start_for(now)

        existing = self.session.scalar(
            select(CheckIn.id).where(
                CheckIn.project_id == project.id,
                CheckIn.employee_id == payload.employee_id,
                CheckIn.week_start == week_start,
            )
        )
        if existing is not None:
            raise ConflictError("A check-in for this project was already submitted this week")

        check_in = CheckIn(
            project_id=project.id,
            employee_id=payload.employee_id,
            progress_summary=payload.progress_summary,
            blockers=payload.blockers,
            confidence_level=payload.confidence_level,
            estimated_completion=payload.estimated_completion,
            week_start=week_start,
            created_at=now,
        )
        self.session.add(check_in)
        self._commit("A check-in for this project was already submitted this week")
        self.session.refresh(check_in)

        self._recalculate(project, "check_in_created", trace_id)
        return check_in

    def list_check_ins(self, project_id: str) -> list[CheckIn]:
        project = self.get_project(project_id)
        stmt = (
            select(CheckIn)
            .where(CheckIn.project_id == project.id)
            .order_by(CheckIn.created_at.desc(), CheckIn.id.desc())
        )
        return list(self.session.scalars(stmt))

    # feedback

    def create_feedback(
        self,
        project_id: str,
        payload: CreateFeedbackRequest,
        trace_id: str | None = None,
    ) -> Feedback:
        project = self.get_project(project_id)
        now = self._now()
        week_start = week_start_for(now)

        existing = self.session.scalar(
            select(Feedback.id).where(
                Feedback.project_id == project.id,
                Feedback.client_id == payload.client_id,
                Feedback.week_start == week_start,
            )
        )
        if existing is not None:
            raise ConflictError("Feedback for this project was already submitted this week; edit it instead")

        feedback = Feedback(
            project_id=project.id,
            client_id=payload.client_id,
            satisfaction_rating=payload.satisfaction_rating,
            communication_rating=payload.communication_rating,
            comments=payload.comments,
            flagged_issue=payload.flagged_issue,
            week_start=week_start,
            created_at=now,
            updated_at=now,
        )
        self.session.add(feedback)
        self._commit("Feedback for this project was already submitted this week; edit it instead")
        self.session.refresh(feedback)

        self._recalculate(project, "feedback_created", trace_id)
        return feedback

    def get_feedback(self, feedback_id: str) -> Feedback:
        feedback = self.session.get(Feedback, feedback_id)
        if feedback is None:
            raise NotFoundError("Feedback not found")
        return feedback

    def update_feedback(
        self,
        feedback_id: str,
        payload: UpdateFeedbackRequest,
        trace_id: str | None = None,
    ) -> Feedback:
        feedback = self.get_feedback(feedback_id)
        now = self._now()
        if feedback.week_start != week_start_for(now):
            raise EditWindowClosedError("Feedback can only be edited during the week it was submitted for")

        if payload.satisfaction_rating is not None:
            feedback.satisfaction_rating = payload.satisfaction_rating
        if payload.communication_rating is not None:
            feedback.communication_rating = payload.communication_rating
        if payload.comments is not None:
            feedback.comments = payload.comments
        if payload.flagged_issue is not None:
            feedback.flagged_issue = payload.flagged_issue
        feedback.updated_at = now

        self.session.add(feedback)
        self.session.commit()
        self.session.refresh(feedback)

        self._recalculate(self.get_project(feedback.project_id), "feedback_updated", trace_id)
        return feedback

    def list_feedback(self, project_id: str) -> list[Feedback]:
        project = self.get_project(project_id)
        stmt = (
            select(Feedback)
            .where(Feedback.project_id == project.id)
            .order_by(Feedback.created_at.desc(), Feedback.id.desc())
        )
        return list(self.session.scalars(stmt))

    # risks

    def create_risk(self, project_id: str, payload: CreateRiskRequest, trace_id: str | None = None) -> Risk:
        project = self.get_project(project_id)
        now = self._now()
        risk = Risk(
            project_id=project.id,
            created_by=payload.created_by,
            title=payload.title,
            severity=payload.severity,
            mitigation_plan=payload.mitigation_plan,
            status="Open",
            created_at=now,
            updated_at=now,
        )
        self.session.add(risk)
        self._commit("Risk violates constraints")
        self.session.refresh(risk)

        self._recalculate(project, "risk_created", trace_id)
        return risk

    def get_risk(self, risk_id: str) -> Risk:
        risk = self.session.get(Risk, risk_id)
        if risk is None:
            raise NotFoundError("Risk not found")
        return risk

    def update_risk(self, risk_id: str, payload: UpdateRiskRequest, trace_id: str | None = None) -> Risk:
        risk = self.get_risk(risk_id)
        if payload.title is not None:
            risk.title = payload.title
        if payload.severity is not None:
            risk.severity = payload.severity
        if payload.mitigation_plan is not None:
            risk.mitigation_plan = payload.mitigation_plan
        if payload.status is not None:
            risk.status = payload.status
        risk.updated_at = self._now()

        self.session.add(risk)
        self.session.commit()
        self.session.refresh(risk)

        self._recalculate(self.get_project(risk.project_id), "risk_updated", trace_id)
        return risk

    def delete_risk(self, risk_id: str, trace_id: str | None = None) -> Project:
        """Delete a risk and return its project with the refreshed score."""

        risk = self.get_risk(risk_id)
        project = self.get_project(risk.project_id)
        self.session.delete(risk)
        self.session.commit()

        self._recalculate(project, "risk_deleted", trace_id)
        return project

    def list_risks(self, project_id: str) -> list[Risk]:
        project = self.get_project(project_id)
        stmt = select(Risk).where(Risk.project_id == project.id).order_by(Risk.created_at.desc(), Risk.id.desc())
        return list(self.session.scalars(stmt))

    # analytics

    def analytics(self, *, recent_days: int = 30, trace_id: str | None = None) -> AnalyticsSummary:
        """Portfolio roll-up over freshly recalculated projects.

        Status counts and the average score cover active projects; archived
        projects are only counted under "Archived". Severity counts cover open
        risks, rating averages cover all feedback.
        """

        now = self._now()
        projects = self.list_projects(include_archived=True, trace_id=trace_id)
        active = [project for project in projects if not project.is_archived]

        project_status = {label: 0 for label in ("On Track", "At Risk", "Critical", "Completed")}
        for project in active:
            if project.status in project_status:
                project_status[project.status] += 1
        project_status[ARCHIVED] = len(projects) - len(active)
        average_score = round_half_up(sum(p.health_score for p in active) / len(active)) if active else 0

        risk_severity = {"High": 0, "Medium": 0, "Low": 0}
        open_risks = self.session.execute(
            select(Risk.severity, func.count(Risk.id)).where(Risk.status == "Open").group_by(Risk.severity)
        )
        for severity, count in open_risks:
            risk_severity[severity] = count

        satisfaction, communication = self.session.execute(
            select(func.avg(Feedback.satisfaction_rating), func.avg(Feedback.communication_rating))
        ).one()

        since = now - timedelta(days=recent_days)
        return AnalyticsSummary(
            generated_at=now,
            totals=AnalyticsTotals(
                projects=len(active),
                check_ins=self._count(select(func.count(CheckIn.id))),
                feedback=self._count(select(func.count(Feedback.id))),
                risks=self._count(select(func.count(Risk.id))),
            ),
            project_status=project_status,
            risk_severity=risk_severity,
            averages=AnalyticsAverages(
                health_score=average_score,
                satisfaction_rating=round(float(satisfaction or 0), 2),
                communication_rating=round(float(communication or 0), 2),
            ),
            recent_activity=AnalyticsRecentActivity(
                days=recent_days,
                check_ins=self._count(select(func.count(CheckIn.id)).where(CheckIn.created_at >= since)),
                feedback=self._count(select(func.count(Feedback.id)).where(Feedback.created_at >= since)),
                risks=self._count(select(func.count(Risk.id)).where(Risk.created_at >= since)),
            ),
        )

    def _count(self, stmt: Select[tuple[int]]) -> int:
        return int(self.session.scalar(stmt) or 0)
