"""Check-in, feedback and risk routes.

Repository errors propagate to the application's `ProjectHealthError` handler.
"""

from fastapi import APIRouter, Depends, Request, status

from ..repositories import ProjectRepository
from ..schemas import (
    CheckInResponse,
    CheckInResponseItem,
    CreateCheckInRequest,
    CreateFeedbackRequest,
    CreateRiskRequest,
    DeleteRiskResponse,
    ErrorResponse,
    FeedbackResponse,
    FeedbackResponseItem,
    ListCheckInsResponse,
    ListFeedbackResponse,
    ListRisksResponse,
    ProjectResponseItem,
    RiskResponse,
    RiskResponseItem,
    UpdateFeedbackRequest,
    UpdateRiskRequest,
)
from .common import get_repository, trace_id_from

router = APIRouter(tags=["signals"])

_NOT_FOUND = {404: {"model": ErrorResponse}}
_NOT_FOUND_OR_CONFLICT = {404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}


@router.post(
    "/projects/{project_id}/check-ins",
    response_model=CheckInResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_NOT_FOUND_OR_CONFLICT,
)
def create_check_in(
    project_id: str,
    payload: CreateCheckInRequest,
    request: Request,
    repo: ProjectRepository = Depends(get_repository),
) -> CheckInResponse:
    check_in = repo.create_check_in(project_id, payload, trace_id=trace_id_from(request))
    return CheckInResponse(data=CheckInResponseItem.model_validate(check_in))


@router.get("/projects/{project_id}/check-ins", response_model=ListCheckInsResponse, responses=_NOT_FOUND)
def list_check_ins(project_id: str, repo: ProjectRepository = Depends(get_repository)) -> ListCheckInsResponse:
    check_ins = repo.list_check_ins(project_id)
    return ListCheckInsResponse(data=[CheckInResponseItem.model_validate(item) for item in check_ins])


@router.post(
    "/projects/{project_id}/feedback",
    response_model=FeedbackResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_NOT_FOUND_OR_CONFLICT,
)
def create_feedback(
    project_id: str,
    payload: CreateFeedbackRequest,
    request: Request,
    repo: ProjectRepository = Depends(get_repository),
) -> FeedbackResponse:
    feedback = repo.create_feedback(project_id, payload, trace_id=trace_id_from(request))
    return FeedbackResponse(data=FeedbackResponseItem.model_validate(feedback))


@router.get("/projects/{project_id}/feedback", response_model=ListFeedbackResponse, responses=_NOT_FOUND)
def list_feedback(project_id: str, repo: ProjectRepository = Depends(get_repository)) -> ListFeedbackResponse:
    feedback = repo.list_feedback(project_id)
    return ListFeedbackResponse(data=[FeedbackResponseItem.model_validate(item) for item in feedback])


@router.patch(
    "/feedback/{feedback_id}",
    response_model=FeedbackResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def update_feedback(
    feedback_id: str,
    payload: UpdateFeedbackRequest,
    request: Request,
    repo: ProjectRepository = Depends(get_repository),
) -> FeedbackResponse:
    feedback = repo.update_feedback(feedback_id, payload, trace_id=trace_id_from(request))
    return FeedbackResponse(data=FeedbackResponseItem.model_validate(feedback))


@router.post(
    "/projects/{project_id}/risks",
    response_model=RiskResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_NOT_FOUND,
)
def create_risk(
    project_id: str,
    payload: CreateRiskRequest,
    request: Request,
    repo: ProjectRepository = Depends(get_repository),
) -> RiskResponse:
    risk = repo.create_risk(project_id, payload, trace_id=trace_id_from(request))
    return RiskResponse(data=RiskResponseItem.model_validate(risk))


@router.get("/projects/{project_id}/risks", response_model=ListRisksResponse, responses=_NOT_FOUND)
def list_risks(project_id: str, repo: ProjectRepository = Depends(get_repository)) -> ListRisksResponse:
    risks = repo.list_risks(project_id)
    return ListRisksResponse(data=[RiskResponseItem.model_validate(item) for item in risks])


@router.patch("/risks/{risk_id}", response_model=RiskResponse, responses=_NOT_FOUND)
def update_risk(
    risk_id: str,
    payload: UpdateRiskRequest,
    request: Request,
    repo: ProjectRepository = Depends(get_repository),
) -> RiskResponse:
    risk = repo.update_risk(risk_id, payload, trace_id=trace_id_from(request))
    return RiskResponse(data=RiskResponseItem.model_validate(risk))


@router.delete("/risks/{risk_id}", response_model=DeleteRiskResponse, responses=_NOT_FOUND)
def delete_risk(
    risk_id: str,
    request: Request,
    repo: ProjectRepository = Depends(get_repository),
) -> DeleteRiskResponse:
    project = repo.delete_risk(risk_id, trace_id=trace_id_from(request))
    return DeleteRiskResponse(deleted=risk_id, project=ProjectResponseItem.model_validate(project))
