"""API routes for the FastAPI application."""

from smallbizagent.api.router import TrailingSlashRouter
from smallbizagent.api.v1.endpoints import health, subscription

# Use our custom router that handles trailing slashes
api_router = TrailingSlashRouter()
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(subscription.router, prefix="/api/subscription", tags=["subscription"])
