"""Pydantic schemas for HTTP request and response models."""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


ProjectStatus = Literal["On Track", "At Risk", "Critical", "Completed", "Archived"]
DerivedStatus = Literal["On Track", "At Risk", "Critical"]
RiskSeverity = Literal["Low", "Medium", "High"]
RiskStatus = Literal["Open", "Resolved"]
MilestoneStatus = Literal["Pending", "Completed"]
ProjectSortField = Literal["created_at", "name", "health_score"]
SortOrder = Literal["asc", "desc"]


class MilestoneRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    target_date: datetime
    status: MilestoneStatus = "Pending"


class MilestoneResponseItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    target_date: datetime
    status: MilestoneStatus


class CreateProjectRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: str = Field(default="", max_length=4000)
    client_id: str = Field(min_length=1, max_length=64)
    start_date: datetime
    end_date: datetime
    milestones: list[MilestoneRequest] = Field(default_factory=list, max_length=50)


class UpdateProjectRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=4000)
    start_date: datetime | None = None
    end_date: datetime | None = None
    status: ProjectStatus | None = None
    milestones: list[MilestoneRequest] | None = Field(default=None, max_length=50)


class ProjectResponseItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str
    client_id: str
    start_date: datetime
    end_date: datetime
    health_score: int = Field(ge=0, le=100)
    status: ProjectStatus
    is_archived: bool
    created_at: datetime
    updated_at: datetime
    milestones: list[MilestoneResponseItem] = Field(default_factory=list)


class ProjectResponse(BaseModel):
    data: ProjectResponseItem


class ListProjectsResponse(BaseModel):
    data: list[ProjectResponseItem]


class CreateCheckInRequest(BaseModel):
    employee_id: str = Field(min_length=1, max_length=64)
    progress_summary: str = Field(min_length=1, max_length=4000)
    blockers: str = Field(default="", max_length=4000)
    confidence_level: int = Field(ge=1, le=5)
    estimated_completion: int = Field(ge=0, le=100)


class CheckInResponseItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    employee_id: str
    progress_summary: str
    blockers: str
    confidence_level: int
    estimated_completion: int
    week_start: date
    created_at: datetime


class CheckInResponse(BaseModel):
    data: CheckInResponseItem


class ListCheckInsResponse(BaseModel):
    data: list[CheckInResponseItem]


class CreateFeedbackRequest(BaseModel):
    client_id: str = Field(min_length=1, max_length=64)
    satisfaction_rating: int = Field(ge=1, le=5)
    communication_rating: int = Field(ge=1, le=5)
    comments: str = Field(default="", max_length=4000)
    flagged_issue: bool = False


class UpdateFeedbackRequest(BaseModel):
    satisfaction_rating: int | None = Field(default=None, ge=1, le=5)
    communication_rating: int | None = Field(default=None, ge=1, le=5)
    comments: str | None = Field(default=None, max_length=4000)
    flagged_issue: bool | None = None


class FeedbackResponseItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    client_id: str
    satisfaction_rating: int
    communication_rating: int
    comments: str
    flagged_issue: bool
    week_start: date
    created_at: datetime
    updated_at: datetime


class FeedbackResponse(BaseModel):
    data: FeedbackResponseItem


class ListFeedbackResponse(BaseModel):
    data: list[FeedbackResponseItem]


class CreateRiskRequest(BaseModel):
    created_by: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1, max_length=200)
    severity: RiskSeverity
    mitigation_plan: str = Field(min_length=1, max_length=4000)


class UpdateRiskRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    severity: RiskSeverity | None = None
    mitigation_plan: str | None = Field(default=None, min_length=1, max_length=4000)
    status: RiskStatus | None = None


class RiskResponseItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    project_id: str
    created_by: str
    title: str
    severity: RiskSeverity
    mitigation_plan: str
    status: RiskStatus
    created_at: datetime
    updated_at: datetime


class RiskResponse(BaseModel):
    data: RiskResponseItem


class ListRisksResponse(BaseModel):
    data: list[RiskResponseItem]


class DeleteRiskResponse(BaseModel):
    deleted: str
    project: ProjectResponseItem


class ScoreStep(BaseModel):
    """One blend applied to the running score."""

    name: str
    applied: bool
    signal_score: float | None
    weight: float
    score_after: float


class ProjectHealthResponse(BaseModel):
    project_id: str
    health_score: int = Field(ge=0, le=100)
    status: ProjectStatus
    derived_status: DerivedStatus
    evaluated_at: datetime
    fallback: bool
    steps: list[ScoreStep]


class ClassifyRequest(BaseModel):
    score: int = Field(ge=0, le=100)


class ClassifyResponse(BaseModel):
    score: int
    status: DerivedStatus


class HealthResponse(BaseModel):
    """Health endpoint response."""

    status: Literal["ok"] = "ok"
    service: str
    version: str
    timestamp: datetime


class ErrorBody(BaseModel):
    code: str
    message: str
    trace_id: str | None = None


class ErrorResponse(BaseModel):
    error: ErrorBody


class AnalyticsTotals(BaseModel):
    projects: int
    check_ins: int
    feedback: int
    risks: int


class AnalyticsAverages(BaseModel):
    health_score: int = Field(ge=0, le=100)
    satisfaction_rating: float
    communication_rating: float


class AnalyticsRecentActivity(BaseModel):
    days: int
    check_ins: int
    feedback: int
    risks: int


class AnalyticsSummary(BaseModel):
    """Portfolio-wide roll-up of scores, statuses and signals."""

    generated_at: datetime
    totals: AnalyticsTotals
    project_status: dict[ProjectStatus, int]
    risk_severity: dict[RiskSeverity, int]
    averages: AnalyticsAverages
    recent_activity: AnalyticsRecentActivity


class AnalyticsResponse(BaseModel):
    data: AnalyticsSummary
