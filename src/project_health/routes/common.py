"""Shared route dependencies."""

from uuid import uuid4

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from ..config import get_settings
from ..db import get_db_session
from ..repositories import ProjectRepository


def get_repository(session: Session = Depends(get_db_session)) -> ProjectRepository:
    return ProjectRepository(session, settings=get_settings())


def trace_id_from(request: Request) -> str:
    return request.headers.get("x-trace-id", "").strip() or uuid4().hex
