"""Tests for the recalculation trigger and the repository paths that fire it."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from project_health.config import Settings
from project_health.db import Base
from project_health.errors import ConflictError, EditWindowClosedError, InvalidTimelineError, NotFoundError
from project_health.models import Milestone, Project
from project_health.observability import get_metrics
from project_health.recalculation import recalculate_project_health
from project_health.repositories import ProjectRepository, week_start_for
from project_health.schemas import (
    CreateCheckInRequest,
    CreateFeedbackRequest,
    CreateProjectRequest,
    CreateRiskRequest,
    MilestoneRequest,
    UpdateFeedbackRequest,
    UpdateProjectRequest,
    UpdateRiskRequest,
)

from conftest import AS_OF


def _create_project(repo: ProjectRepository, name: str = "Billing revamp") -> Project:
    return repo.create_project(
        CreateProjectRequest(
            name=name,
            client_id="client-1",
            start_date=AS_OF - timedelta(days=50),
            end_date=AS_OF + timedelta(days=50),
        )
    )


def _high_risk() -> CreateRiskRequest:
    return CreateRiskRequest(created_by="emp-1", title="Vendor delay", severity="High", mitigation_plan="Escalate")


def _lagging_check_in(employee_id: str = "emp-1") -> CreateCheckInRequest:
    return CreateCheckInRequest(
        employee_id=employee_id,
        progress_summary="Blocked on vendor",
        confidence_level=1,
        estimated_completion=0,
    )


@pytest.fixture
def repo(session, clock) -> ProjectRepository:
    return ProjectRepository(session, clock=clock)


def test_new_project_is_scored_on_creation(repo) -> None:
    project = _create_project(repo)
    assert project.health_score == 100
    assert project.status == "On Track"
    assert get_metrics().recalculations_total == 1


def test_create_project_rejects_inverted_timeline(repo) -> None:
    with pytest.raises(InvalidTimelineError):
        repo.create_project(
            CreateProjectRequest(
                name="Backwards",
                client_id="client-1",
                start_date=AS_OF,
                end_date=AS_OF - timedelta(days=1),
            )
        )


def test_check_in_updates_score_and_status(repo) -> None:
    project = _create_project(repo)
    repo.create_check_in(project.id, _lagging_check_in())
    assert project.health_score == 76
    assert project.status == "At Risk"


def test_completed_project_keeps_status_when_risk_is_logged(repo) -> None:
    project = _create_project(repo)
    repo.update_project(project.id, UpdateProjectRequest(status="Completed"))

    repo.create_risk(project.id, _high_risk())

    assert project.health_score == 98
    assert project.status == "Completed"
    assert get_metrics().guarded_total == 1


def test_guard_applies_to_check_in_path(repo) -> None:
    project = _create_project(repo)
    repo.update_project(project.id, UpdateProjectRequest(status="Completed"))

    repo.create_check_in(project.id, _lagging_check_in())

    assert project.health_score == 76
    assert project.status == "Completed"


def test_archived_project_keeps_status_until_unarchived(repo) -> None:
    project = _create_project(repo)
    repo.archive_project(project.id)
    repo.create_check_in(project.id, _lagging_check_in())
    assert project.status == "Archived"
    assert project.is_archived is True

    restored = repo.unarchive_project(project.id)
    assert restored.is_archived is False
    assert restored.status == "At Risk"
    assert restored.health_score == 76


def test_guard_reads_stored_status_not_stale_object(session, repo) -> None:
    project = _create_project(repo)
    session.execute(
        update(Project)
        .where(Project.id == project.id)
        .values(status="Completed")
        .execution_options(synchronize_session=False)
    )
    session.commit()
    assert project.status == "On Track"

    result = recalculate_project_health(session, project, trigger="project_read", as_of=AS_OF)

    assert result.status == "Completed"
    assert result.status_guarded is True
    assert project.status == "Completed"


def test_recalculation_result_carries_event(session, repo) -> None:
    project = _create_project(repo)
    result = recalculate_project_health(
        session,
        project,
        trigger="risk_updated",
        as_of=AS_OF,
        trace_id="trace-recalc-0001",
    )
    assert result.event["event_type"] == "project.health.recalculated"
    assert result.event["trace_id"] == "trace-recalc-0001"
    assert result.event["data"]["project_id"] == project.id
    assert result.event["data"]["trigger"] == "risk_updated"
    assert result.event["data"]["health_score"] == 100
    assert result.event["data"]["status_guarded"] is False


def test_recalculation_is_idempotent(session, repo) -> None:
    project = _create_project(repo)
    repo.create_risk(project.id, _high_risk())
    first = recalculate_project_health(session, project, trigger="project_read", as_of=AS_OF)
    second = recalculate_project_health(session, project, trigger="project_read", as_of=AS_OF)
    assert (first.health_score, first.status) == (second.health_score, second.status)


def test_write_back_failure_propagates(session, db_engine, repo) -> None:
    project = _create_project(repo)
    Base.metadata.drop_all(bind=db_engine)

    with pytest.raises(SQLAlchemyError):
        recalculate_project_health(session, project, trigger="project_read", as_of=AS_OF)

    assert get_metrics().fallback_total == 1
    assert get_metrics().errors_total == 1


def test_one_check_in_per_employee_per_week(repo, clock) -> None:
    project = _create_project(repo)
    repo.create_check_in(project.id, _lagging_check_in())
    with pytest.raises(ConflictError):
        repo.create_check_in(project.id, _lagging_check_in())

    repo.create_check_in(project.id, _lagging_check_in("emp-2"))
    clock.advance(days=7)
    repo.create_check_in(project.id, _lagging_check_in())
    assert len(repo.list_check_ins(project.id)) == 3


def test_feedback_can_only_be_edited_in_its_week(repo, clock) -> None:
    project = _create_project(repo)
    feedback = repo.create_feedback(
        project.id,
        CreateFeedbackRequest(client_id="client-1", satisfaction_rating=5, communication_rating=4),
    )
    assert feedback.week_start == week_start_for(AS_OF)
    assert project.health_score == 100

    repo.update_feedback(feedback.id, UpdateFeedbackRequest(satisfaction_rating=1, flagged_issue=True))
    # 100 -> 76 (satisfaction 20) -> 79.6 -> 81.64 -> 82.308 (one flagged issue)
    assert repo.get_project(project.id).health_score == 82

    with pytest.raises(ConflictError):
        repo.create_feedback(
            project.id,
            CreateFeedbackRequest(client_id="client-1", satisfaction_rating=2, communication_rating=2),
        )

    clock.advance(days=7)
    with pytest.raises(EditWindowClosedError):
        repo.update_feedback(feedback.id, UpdateFeedbackRequest(satisfaction_rating=5))


def test_risk_lifecycle_recalculates(repo) -> None:
    project = _create_project(repo)
    risk = repo.create_risk(project.id, _high_risk())
    assert project.health_score == 98

    repo.update_risk(risk.id, UpdateRiskRequest(status="Resolved"))
    assert repo.get_project(project.id).health_score == 100

    repo.update_risk(risk.id, UpdateRiskRequest(status="Open", severity="Low"))
    # one open low risk: 99.25 -> 99.325 -> 99.359
    assert repo.get_project(project.id).health_score == 99

    refreshed = repo.delete_risk(risk.id)
    assert refreshed.health_score == 100
    assert repo.list_risks(project.id) == []
    with pytest.raises(NotFoundError):
        repo.get_risk(risk.id)


def test_list_projects_filters_recalculates_and_sorts(repo) -> None:
    healthy = _create_project(repo, "Alpha")
    lagging = _create_project(repo, "Beta")
    archived = _create_project(repo, "Gamma")
    repo.create_check_in(lagging.id, _lagging_check_in())
    repo.archive_project(archived.id)

    projects = repo.list_projects(sort_by="health_score", sort_order="asc")
    assert [item.id for item in projects] == [lagging.id, healthy.id]

    everything = repo.list_projects(include_archived=True, sort_by="name", sort_order="asc")
    assert [item.name for item in everything] == ["Alpha", "Beta", "Gamma"]
    assert everything[2].status == "Archived"

    assert [item.id for item in repo.list_projects(search="alp")] == [healthy.id]


def test_unknown_entities_raise_not_found(repo) -> None:
    with pytest.raises(NotFoundError):
        repo.read_project("missing")
    with pytest.raises(NotFoundError):
        repo.create_check_in("missing", _lagging_check_in())
    with pytest.raises(NotFoundError):
        repo.update_feedback("missing", UpdateFeedbackRequest(comments="x"))
    with pytest.raises(NotFoundError):
        repo.delete_risk("missing")


def test_status_filter_uses_recalculated_status(repo, clock) -> None:
    project = _create_project(repo)
    repo.create_check_in(project.id, _lagging_check_in())
    assert project.status == "At Risk"

    # the check-in leaves the 28-day window
    clock.advance(days=30)

    assert repo.list_projects(status="At Risk") == []
    on_track = repo.list_projects(status="On Track")
    assert [item.id for item in on_track] == [project.id]
    assert on_track[0].health_score == 100


def test_timeline_change_recalculates(repo) -> None:
    project = _create_project(repo)
    repo.create_check_in(
        project.id,
        CreateCheckInRequest(employee_id="emp-1", progress_summary="Halfway", confidence_level=5, estimated_completion=50),
    )
    assert project.health_score == 100
    recalculations = get_metrics().recalculations_total

    repo.update_project(project.id, UpdateProjectRequest(name="Billing revamp v2"))
    assert get_metrics().recalculations_total == recalculations

    # expected progress jumps to 100%, actual stays at 50%
    updated = repo.update_project(project.id, UpdateProjectRequest(end_date=AS_OF))
    assert updated.health_score == 85
    assert updated.status == "On Track"
    assert get_metrics().recalculations_total == recalculations + 1


def test_explicit_status_with_new_dates_is_not_recalculated(repo) -> None:
    project = _create_project(repo)
    repo.create_check_in(project.id, _lagging_check_in())
    recalculations = get_metrics().recalculations_total

    updated = repo.update_project(project.id, UpdateProjectRequest(end_date=AS_OF, status="Completed"))

    assert updated.status == "Completed"
    assert updated.health_score == 76
    assert get_metrics().recalculations_total == recalculations


def test_milestones_are_created_and_replaced(repo) -> None:
    project = repo.create_project(
        CreateProjectRequest(
            name="Billing revamp",
            client_id="client-1",
            start_date=AS_OF - timedelta(days=50),
            end_date=AS_OF + timedelta(days=50),
            milestones=[
                MilestoneRequest(name="Design sign-off", target_date=AS_OF - timedelta(days=30), status="Completed"),
                MilestoneRequest(name="Ledger cut-over", target_date=AS_OF + timedelta(days=20)),
            ],
        )
    )
    assert [(item.name, item.status) for item in project.milestones] == [
        ("Design sign-off", "Completed"),
        ("Ledger cut-over", "Pending"),
    ]

    repo.update_project(project.id, UpdateProjectRequest(description="Scope trimmed"))
    assert len(repo.get_project(project.id).milestones) == 2

    updated = repo.update_project(
        project.id,
        UpdateProjectRequest(milestones=[MilestoneRequest(name="Go-live", target_date=AS_OF + timedelta(days=45))]),
    )
    assert [item.name for item in updated.milestones] == ["Go-live"]
    assert repo.session.scalar(select(func.count(Milestone.id))) == 1


def test_analytics_summarises_recalculated_portfolio(repo, clock) -> None:
    alpha = _create_project(repo, "Alpha")
    beta = _create_project(repo, "Beta")
    gamma = _create_project(repo, "Gamma")
    delta = _create_project(repo, "Delta")

    repo.create_feedback(
        alpha.id,
        CreateFeedbackRequest(client_id="client-1", satisfaction_rating=5, communication_rating=4),
    )
    repo.create_check_in(beta.id, _lagging_check_in())
    repo.update_project(gamma.id, UpdateProjectRequest(status="Completed"))
    repo.create_risk(gamma.id, _high_risk())
    repo.create_risk(
        delta.id,
        CreateRiskRequest(created_by="emp-2", title="Scope creep", severity="Medium", mitigation_plan="Triage"),
    )
    repo.archive_project(delta.id)

    summary = repo.analytics()
    assert summary.project_status == {"On Track": 1, "At Risk": 1, "Critical": 0, "Completed": 1, "Archived": 1}
    assert summary.risk_severity == {"High": 1, "Medium": 1, "Low": 0}
    # (100 + 76 + 98) / 3
    assert summary.averages.health_score == 91
    assert summary.averages.satisfaction_rating == 5.0
    assert summary.averages.communication_rating == 4.0
    assert summary.totals.projects == 3
    assert (summary.totals.check_ins, summary.totals.feedback, summary.totals.risks) == (1, 1, 2)
    assert (summary.recent_activity.check_ins, summary.recent_activity.feedback) == (1, 1)
    assert summary.recent_activity.risks == 2

    clock.advance(days=31)
    later = repo.analytics()
    assert later.project_status["At Risk"] == 0
    assert later.project_status["On Track"] == 2
    # (100 + 100 + 98) / 3
    assert later.averages.health_score == 99
    assert (later.recent_activity.check_ins, later.recent_activity.feedback, later.recent_activity.risks) == (0, 0, 0)


def test_analytics_on_empty_portfolio(repo) -> None:
    summary = repo.analytics()
    assert summary.averages.health_score == 0
    assert summary.averages.satisfaction_rating == 0.0
    assert summary.totals.projects == 0
    assert sum(summary.project_status.values()) == 0


def test_repository_settings_reach_the_trigger(session, clock) -> None:
    repo = ProjectRepository(session, clock=clock, settings=Settings(window_days=7, database_url="sqlite://"))
    project = _create_project(repo)
    repo.create_check_in(project.id, _lagging_check_in())
    assert project.health_score == 76

    clock.advance(days=8)
    assert repo.read_project(project.id).health_score == 100
