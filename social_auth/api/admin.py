"""Admin API endpoints for user management."""

from datetime import datetime, timezone
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
import structlog

from social_auth.api.dependencies import get_dispatcher, require_admin
from social_auth.models.auth import UserSummary
from social_auth.models.user import User, UserFilters, UserRole
from social_auth.services.export_service import (
    EXCEL_CONTENT_TYPE,
    PDF_CONTENT_TYPE,
    build_users_pdf,
    build_users_workbook,
    format_user_row,
)
from social_auth.services.notification_dispatcher import NotificationDispatcher
from social_auth.services.user_service import UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])


def get_user_filters(
    search: Optional[str] = Query(default=None, max_length=200),
    login_type: Literal["all", "email", "google"] = "all",
    sort_by: Literal["created_at", "email", "provider", "updated_at"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> UserFilters:
    """Query parameters shared by the list and export endpoints."""
    return UserFilters(
        search=search.strip() if search and search.strip() else None,
        login_type=None if login_type == "all" else login_type,
        sort_by=sort_by,
        sort_order=sort_order,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/users")
async def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    filters: UserFilters = Depends(get_user_filters),
    admin: User = Depends(require_admin),
) -> dict:
    """Filtered, sorted, paginated user list (admin only)."""
    user_service = UserService()
    users, total = await user_service.list_users(
        filters, limit=limit, offset=(page - 1) * limit
    )

    return {
        "users": [format_user_row(u) for u in users],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
        },
    }


@router.get("/users/stats")
async def user_stats(admin: User = Depends(require_admin)) -> dict:
    """Totals by login type and role (admin only)."""
    user_service = UserService()
    stats = await user_service.get_stats()
    return stats.model_dump()


@router.get("/users/export/excel")
async def export_users_excel(
    filters: UserFilters = Depends(get_user_filters),
    admin: User = Depends(require_admin),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> Response:
    """Download the filtered user list as an xlsx workbook.

    Emits an ``excel_export`` notification to admins.
    """
    user_service = UserService()
    users = await user_service.list_all_users(filters)
    content = build_users_workbook(users)

    filename = f"users_export_{datetime.now(timezone.utc):%Y%m%d_%H%M%S}.xlsx"
    logger.info("users_exported", admin_id=admin.id, row_count=len(users))

    dispatcher.publish_excel_export(admin)

    return Response(
        content=content,
        media_type=EXCEL_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/users/export/pdf")
async def export_users_pdf(
    filters: UserFilters = Depends(get_user_filters),
    admin: User = Depends(require_admin),
) -> Response:
    """Download the filtered user list as a PDF table report."""
    user_service = UserService()
    users = await user_service.list_all_users(filters)
    content = build_users_pdf(users)

    filename = f"users_export_{datetime.now(timezone.utc):%Y%m%d_%H%M%S}.pdf"
    logger.info("users_exported_pdf", admin_id=admin.id, row_count=len(users))

    return Response(
        content=content,
        media_type=PDF_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/users/{user_id}/grant-admin")
async def grant_admin(
    user_id: int,
    admin: User = Depends(require_admin),
) -> dict:
    """Promote a user to admin (admin only).

    Raises:
        HTTPException 404: If user not found
    """
    user_service = UserService()
    user = await user_service.set_role(user_id, UserRole.ADMIN)

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    logger.info("admin_role_granted", user_id=user_id, granted_by=admin.id)
    return {"message": "Admin role granted", "user": UserSummary.from_user(user)}


@router.post("/users/{user_id}/revoke-admin")
async def revoke_admin(
    user_id: int,
    admin: User = Depends(require_admin),
) -> dict:
    """Demote an admin to a regular user (admin only).

    Raises:
        HTTPException 400: If admin tries to demote themselves
        HTTPException 404: If user not found
    """
    if user_id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot revoke your own admin role",
        )

    user_service = UserService()
    user = await user_service.set_role(user_id, UserRole.USER)

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    logger.info("admin_role_revoked", user_id=user_id, revoked_by=admin.id)
    return {"message": "Admin role revoked", "user": UserSummary.from_user(user)}
