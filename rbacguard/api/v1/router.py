"""API v1 router assembly."""

from fastapi import APIRouter

from rbacguard.api.v1.endpoints import health, webhook
from rbacguard.core.config import settings

api_router = APIRouter()

# Health and metrics (no prefix)
api_router.include_router(health.router, tags=["health"])

# Admission webhooks
api_router.include_router(webhook.router, prefix=settings.webhook_prefix, tags=["webhook"])
