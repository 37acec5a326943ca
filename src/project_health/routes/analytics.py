"""Portfolio analytics endpoint."""

from fastapi import APIRouter, Depends, Query, Request

from ..repositories import ProjectRepository
from ..schemas import AnalyticsResponse
from .common import get_repository, trace_id_from

router = APIRouter(tags=["analytics"])


@router.get("/analytics", response_model=AnalyticsResponse)
def analytics(
    request: Request,
    recent_days: int = Query(default=30, ge=1, le=365),
    repo: ProjectRepository = Depends(get_repository),
) -> AnalyticsResponse:
    return AnalyticsResponse(data=repo.analytics(recent_days=recent_days, trace_id=trace_id_from(request)))
