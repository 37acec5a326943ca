"""FastAPI application entrypoint for project health service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError

from .config import get_settings
from .db import init_db
from .errors import ProjectHealthError, error_response
from .observability import configure_logging
from .routes.analytics import router as analytics_router
from .routes.projects import router as projects_router
from .routes.signals import router as signals_router

settings = get_settings()
configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Initialize persistence during application startup."""
    init_db()
    yield


app = FastAPI(title=settings.service_name, version=settings.service_version, lifespan=lifespan)
app.include_router(projects_router)
app.include_router(signals_router)
app.include_router(analytics_router)


@app.exception_handler(ProjectHealthError)
async def handle_project_health_error(request: Request, exc: ProjectHealthError):
    return error_response(
        status_code=exc.status_code,
        code=exc.code,
        message=str(exc),
        trace_id=request.headers.get("x-trace-id"),
    )


@app.exception_handler(HTTPException)
async def handle_http_exception(request: Request, exc: HTTPException):
    status_to_code = {
        400: "BAD_REQUEST",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        409: "CONFLICT",
    }
    return error_response(
        status_code=exc.status_code,
        code=status_to_code.get(exc.status_code, "INTERNAL_SERVER_ERROR"),
        message=str(exc.detail),
        trace_id=request.headers.get("x-trace-id"),
    )


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", [])),
            "issue": err.get("msg", "invalid value"),
        }
        for err in exc.errors()
    ]
    return error_response(
        status_code=422,
        code="UNPROCESSABLE_ENTITY",
        message="Validation failed.",
        trace_id=request.headers.get("x-trace-id"),
        details=details,
    )
