"""Project routes, health read-outs and service endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse

from ..config import get_settings
from ..engine import classify_status
from ..observability import get_metrics
from ..recalculation import build_engine, recalculate_project_health
from ..repositories import ProjectRepository
from ..schemas import (
    ClassifyRequest,
    ClassifyResponse,
    CreateProjectRequest,
    ErrorResponse,
    HealthResponse,
    ListProjectsResponse,
    ProjectHealthResponse,
    ProjectResponse,
    ProjectResponseItem,
    ProjectSortField,
    ProjectStatus,
    ScoreStep,
    SortOrder,
    UpdateProjectRequest,
)
from .common import get_repository, trace_id_from

router = APIRouter(tags=["projects"])

_settings = get_settings()
_metrics = get_metrics()

_NOT_FOUND = {404: {"model": ErrorResponse}}


def _project_response(project) -> ProjectResponse:
    return ProjectResponse(data=ProjectResponseItem.model_validate(project))


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(
        service=_settings.service_name,
        version=_settings.service_version,
        timestamp=datetime.now(tz=timezone.utc),
    )


@router.get("/metrics", response_class=PlainTextResponse)
def metrics() -> str:
    if not _settings.metrics_enabled:
        raise HTTPException(status_code=404, detail="metrics endpoint disabled")
    return _metrics.render_prometheus()


@router.post("/classify", response_model=ClassifyResponse)
def classify(payload: ClassifyRequest) -> ClassifyResponse:
    return ClassifyResponse(score=payload.score, status=classify_status(payload.score))


@router.post(
    "/projects",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
def create_project(
    payload: CreateProjectRequest,
    request: Request,
    repo: ProjectRepository = Depends(get_repository),
) -> ProjectResponse:
    return _project_response(repo.create_project(payload, trace_id=trace_id_from(request)))


@router.get("/projects", response_model=ListProjectsResponse)
def list_projects(
    request: Request,
    status_filter: ProjectStatus | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None, min_length=1, max_length=120),
    include_archived: bool = Query(default=False),
    sort_by: ProjectSortField = Query(default="created_at"),
    sort_order: SortOrder = Query(default="desc"),
    repo: ProjectRepository = Depends(get_repository),
) -> ListProjectsResponse:
    projects = repo.list_projects(
        status=status_filter,
        search=search,
        include_archived=include_archived,
        sort_by=sort_by,
        sort_order=sort_order,
        trace_id=trace_id_from(request),
    )
    return ListProjectsResponse(data=[ProjectResponseItem.model_validate(project) for project in projects])


@router.get("/projects/{project_id}", response_model=ProjectResponse, responses=_NOT_FOUND)
def get_project(
    project_id: str,
    request: Request,
    repo: ProjectRepository = Depends(get_repository),
) -> ProjectResponse:
    return _project_response(repo.read_project(project_id, trace_id=trace_id_from(request)))


@router.patch(
    "/projects/{project_id}",
    response_model=ProjectResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def update_project(
    project_id: str,
    payload: UpdateProjectRequest,
    request: Request,
    repo: ProjectRepository = Depends(get_repository),
) -> ProjectResponse:
    return _project_response(repo.update_project(project_id, payload, trace_id=trace_id_from(request)))


@router.post("/projects/{project_id}/archive", response_model=ProjectResponse, responses=_NOT_FOUND)
def archive_project(project_id: str, repo: ProjectRepository = Depends(get_repository)) -> ProjectResponse:
    return _project_response(repo.archive_project(project_id))


@router.post("/projects/{project_id}/unarchive", response_model=ProjectResponse, responses=_NOT_FOUND)
def unarchive_project(
    project_id: str,
    request: Request,
    repo: ProjectRepository = Depends(get_repository),
) -> ProjectResponse:
    return _project_response(repo.unarchive_project(project_id, trace_id=trace_id_from(request)))


@router.get("/projects/{project_id}/health", response_model=ProjectHealthResponse, responses=_NOT_FOUND)
def project_health(
    project_id: str,
    request: Request,
    as_of: datetime | None = Query(default=None),
    repo: ProjectRepository = Depends(get_repository),
) -> ProjectHealthResponse:
    """Score breakdown; with `as_of` the assessment is read-only and nothing is written back."""

    project = repo.get_project(project_id)
    if as_of is None:
        result = recalculate_project_health(
            repo.session,
            project,
            trigger="project_read",
            trace_id=trace_id_from(request),
            settings=repo.settings,
        )
        assessment = result.assessment
    else:
        assessment = build_engine(repo.session, repo.settings).assess(project, as_of)

    return ProjectHealthResponse(
        project_id=project.id,
        health_score=assessment.score,
        status=project.status,
        derived_status=assessment.status,
        evaluated_at=assessment.evaluated_at,
        fallback=assessment.fallback,
        steps=[
            ScoreStep(
                name=step.name,
                applied=step.applied,
                signal_score=step.signal_score,
                weight=step.weight,
                score_after=step.score_after,
            )
            for step in assessment.steps
        ],
    )
