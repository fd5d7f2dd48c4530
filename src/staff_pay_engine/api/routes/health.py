"""Health check endpoints.

Readiness means a run could start: the database answers and the pay
configuration (rate table and staff directory) loads.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from staff_pay_engine.api.dependencies import DbSession, PayConfigSource
from staff_pay_engine.services.pay_config import ConfigurationError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    database: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    status: str
    task_types: int = 0
    staff_mappings: int = 0
    config_fingerprint: str | None = None
    detail: str | None = None


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
def health_check(db: DbSession) -> HealthResponse:
    """Check API and database health."""
    db_status = "healthy"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Database health check failed: %s", exc)
        db_status = "unhealthy"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
    )


@router.get("/ready", response_model=ReadinessResponse)
def readiness_check(loader: PayConfigSource, response: Response) -> ReadinessResponse:
    """Ready once the rate table and staff directory load; 503 otherwise."""
    try:
        config = loader.load()
    except ConfigurationError as exc:
        logger.warning("Not ready: %s", exc)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ReadinessResponse(status="not_ready", detail=str(exc))

    return ReadinessResponse(
        status="ready",
        task_types=len(config.rates),
        staff_mappings=len(config.staff),
        config_fingerprint=config.fingerprint,
    )


@router.get("/live", status_code=status.HTTP_200_OK)
def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
