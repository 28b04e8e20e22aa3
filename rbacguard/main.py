"""rbacguard admission webhook."""

from contextlib import asynccontextmanager

import redis
import uvicorn
from fastapi import FastAPI

from rbacguard.api.dependencies.admission import get_dispatcher
from rbacguard.api.middleware.logging import LoggingMiddleware
from rbacguard.api.v1.router import api_router
from rbacguard.core.config import Environment, settings
from rbacguard.core.logging import get_logger, setup_logging
from rbacguard.db.redis import close_redis_connection, get_redis_client

setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    logger.info(
        f"Starting {settings.app_name} v{settings.app_version}",
        extra={
            "environment": settings.environment.value,
            "multi_cluster_management": settings.multi_cluster_management,
        },
    )

    # Validate Redis connection
    try:
        get_redis_client()
    except redis.RedisError as e:
        logger.error(f"Redis initialization failed: {e}")
        if settings.environment == Environment.PRODUCTION:
            raise
        logger.warning("Admission handlers will be built on the first request")
    else:
        dispatcher = get_dispatcher()
        logger.info(
            "Serving admission handlers",
            extra={
                "validation": dispatcher.validating_paths(),
                "mutation": dispatcher.mutating_paths(),
            },
        )

    yield

    logger.info("Shutting down")
    close_redis_connection()


app = FastAPI(
    title=f"{settings.app_name} webhook",
    version=settings.app_version,
    debug=settings.debug,
    description="Admission webhook preventing RBAC privilege escalation",
    docs_url=None,
    redoc_url=None,
    lifespan=lifespan,
)

app.add_middleware(LoggingMiddleware)

app.include_router(api_router)

if __name__ == "__main__":
    uvicorn.run(
        "rbacguard.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.value.lower(),
        ssl_certfile=settings.ssl_certfile,
        ssl_keyfile=settings.ssl_keyfile,
    )
