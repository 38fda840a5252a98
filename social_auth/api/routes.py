"""Health, banner and current-user endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from social_auth import __version__
from social_auth.api.dependencies import get_current_user
from social_auth.database import health_check as db_health_check
from social_auth.models.auth import UserSummary
from social_auth.models.user import User

router = APIRouter()


@router.get("/")
async def root() -> dict:
    """Service banner."""
    return {
        "message": "Social Auth API is running",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint.

    Returns:
        Status, database status and timestamp in ISO8601 format
    """
    db_healthy = await db_health_check()
    return {
        "status": "healthy" if db_healthy else "degraded",
        "database": "healthy" if db_healthy else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/api/me")
async def me(current_user: User = Depends(get_current_user)) -> dict:
    """Profile of the authenticated user."""
    return {"user": UserSummary.from_user(current_user)}


@router.get("/api/verify")
async def verify(current_user: User = Depends(get_current_user)) -> dict:
    """Token check used by the frontend on page load."""
    return {"valid": True, "user": UserSummary.from_user(current_user)}
