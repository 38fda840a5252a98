"""Notification inbox endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
import structlog

from social_auth.api.dependencies import get_current_user
from social_auth.models.user import User
from social_auth.services.notification_service import NotificationService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("")
async def list_notifications(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
) -> dict:
    """Newest-first page of notifications.

    Admins see the admin-audience records; everyone else sees their own.
    """
    service = NotificationService()
    notifications, total = await service.list_notifications(
        current_user, limit=limit, offset=(page - 1) * limit
    )

    return {
        "notifications": [n.model_dump(mode="json") for n in notifications],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": (total + limit - 1) // limit,
        },
    }


@router.get("/unread-count")
async def get_unread_count(
    current_user: User = Depends(get_current_user),
) -> dict:
    service = NotificationService()
    count = await service.get_unread_count(current_user)
    return {"count": count}


@router.post("/read-all")
async def mark_all_as_read(
    current_user: User = Depends(get_current_user),
) -> dict:
    """Mark every unread notification in the caller's inbox as read."""
    service = NotificationService()
    count = await service.mark_all_as_read(current_user)
    return {"message": "All notifications marked as read", "count": count}


@router.post("/{notification_id}/read")
async def mark_as_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
) -> dict:
    """Mark a single notification as read.

    Raises:
        HTTPException 404: If the notification does not exist
        HTTPException 403: If the caller is not a recipient
    """
    service = NotificationService()
    notification = await service.get_by_id(notification_id)

    if notification is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )

    if not service.can_access(current_user, notification):
        logger.warning(
            "notification_access_denied",
            user_id=current_user.id,
            notification_id=notification_id,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to modify this notification",
        )

    await service.mark_as_read(notification_id)
    return {"message": "Notification marked as read", "id": notification_id}
