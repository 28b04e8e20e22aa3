"""Health and metrics endpoints for the kubelet and Prometheus."""

from datetime import datetime, timezone
from typing import Any, Dict

import redis
from fastapi import APIRouter, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field

from rbacguard.core.config import settings
from rbacguard.core.logging import get_logger
from rbacguard.db.redis import get_redis_client

logger = get_logger(__name__)

router = APIRouter()

# Track application start time
APP_START_TIME = datetime.now(timezone.utc)


class HealthStatus(BaseModel):
    """Health check response model."""

    status: str = Field(..., description="Overall health status")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    uptime_seconds: float = Field(..., description="Application uptime in seconds")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Application environment")
    checks: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict, description="Individual component health checks"
    )


def check_redis() -> Dict[str, Any]:
    """The caches are unusable without Redis."""
    try:
        get_redis_client().ping()
    except redis.RedisError as e:
        logger.error(f"Health check failed for redis: {e}")
        return {"status": "unhealthy", "message": str(e)}
    return {"status": "healthy", "message": "Redis reachable"}


@router.get(
    settings.health_check_path,
    response_model=HealthStatus,
    responses={
        200: {"description": "Application is healthy"},
        503: {"description": "Application is unhealthy"},
    },
    summary="Health Check",
    description="Kubernetes liveness and readiness endpoint",
)
def health_check(response: Response) -> HealthStatus:
    uptime = (datetime.now(timezone.utc) - APP_START_TIME).total_seconds()
    checks = {"redis": check_redis()}

    if any(check["status"] == "unhealthy" for check in checks.values()):
        overall_status = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        logger.warning(
            "Health check failed", extra={"status": overall_status, "checks": checks}
        )
    else:
        overall_status = "healthy"

    return HealthStatus(
        status=overall_status,
        uptime_seconds=uptime,
        version=settings.app_version,
        environment=settings.environment.value,
        checks=checks,
    )


@router.get(settings.metrics_path, include_in_schema=False)
def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
