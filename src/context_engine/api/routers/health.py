"""Liveness and readiness probes."""

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from ... import __version__
from ..dependencies import DBSession
from ..exceptions import DatabaseUnavailableError

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str = __version__


class ReadinessResponse(HealthResponse):
    database: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Process is up; does not touch the database."""
    return HealthResponse(status="healthy")


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(db: DBSession) -> ReadinessResponse:
    """Database answers queries, so appends and compaction can run."""
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        raise DatabaseUnavailableError(str(e)) from e
    return ReadinessResponse(status="ready", database=db.get_bind().dialect.name)
