"""Domain errors and the JSON error envelope they are rendered into."""

from __future__ import annotations

from typing import Any
from uuid import uuid4

from fastapi.responses import JSONResponse


class ProjectHealthError(Exception):
    """Base for errors a caller can act on; carries its HTTP mapping."""

    status_code = 400
    code = "BAD_REQUEST"


class NotFoundError(ProjectHealthError):
    """Raised when an entity cannot be found."""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(ProjectHealthError):
    """Raised when a weekly submission already exists or a unique constraint fails."""

    status_code = 409
    code = "CONFLICT"


class EditWindowClosedError(ProjectHealthError):
    """Raised when feedback is edited after the week it was submitted for."""

    code = "EDIT_WINDOW_CLOSED"


class InvalidTimelineError(ProjectHealthError):
    """Raised when a project would end before it starts."""

    code = "INVALID_TIMELINE"


def error_response(
    *,
    status_code: int,
    code: str,
    message: str,
    trace_id: str | None,
    details: list[dict[str, Any]] | None = None,
) -> JSONResponse:
    """Build standard error envelope response."""

    body: dict[str, Any] = {"code": code, "message": message, "trace_id": trace_id or f"trc_{uuid4().hex[:8]}"}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body})
