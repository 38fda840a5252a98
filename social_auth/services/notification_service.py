"""Notification records: admin audit entries and per-user inbox."""

import json
from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from social_auth.database import get_pool
from social_auth.models.notification import Notification, NotificationPayload
from social_auth.models.user import User

logger = structlog.get_logger(__name__)

NOTIFICATION_COLUMNS = (
    "id, user_id, title, body, type, data, is_read, for_admins, created_at, updated_at"
)


def row_to_notification(row: Any) -> Notification:
    data = row["data"]
    if isinstance(data, str):
        data = json.loads(data)
    return Notification(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        body=row["body"],
        type=row["type"],
        data=data or {},
        is_read=row["is_read"],
        for_admins=row["for_admins"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _audience_clause(user: User, first_param: int) -> tuple[str, list]:
    """Admins read the admin-audience records; everyone else reads their own."""
    if user.is_admin:
        return "for_admins = TRUE", []
    return f"user_id = ${first_param}", [user.id]


class NotificationService:
    """Creation and recipient-side reads of notification records."""

    async def create_admin_notification(
        self,
        notification_type: str,
        payload: NotificationPayload,
    ) -> Notification:
        """Persist an admin-audience audit record for a system event."""
        now = datetime.now(timezone.utc)
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO notifications
                    (user_id, title, body, type, data, is_read, for_admins, created_at, updated_at)
                VALUES (NULL, $1, $2, $3, $4::jsonb, FALSE, TRUE, $5, $5)
                RETURNING {NOTIFICATION_COLUMNS}
                """,
                payload.title,
                payload.body,
                notification_type,
                json.dumps(payload.data),
                now,
            )

        notification = row_to_notification(row)
        logger.info(
            "notification_created",
            notification_id=notification.id,
            type=notification_type,
            for_admins=True,
        )
        return notification

    async def list_notifications(
        self,
        user: User,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Notification], int]:
        """Newest-first page of the caller's notifications, plus the total."""
        audience, params = _audience_clause(user, 1)
        page_idx = len(params) + 1
        pool = await get_pool()

        async with pool.acquire() as conn:
            total = await conn.fetchval(
                f"SELECT COUNT(*) FROM notifications WHERE {audience}",
                *params,
            )
            rows = await conn.fetch(
                f"""
                SELECT {NOTIFICATION_COLUMNS}
                FROM notifications
                WHERE {audience}
                ORDER BY created_at DESC, id DESC
                LIMIT ${page_idx} OFFSET ${page_idx + 1}
                """,
                *params,
                limit,
                offset,
            )

        return [row_to_notification(row) for row in rows], total or 0

    async def get_unread_count(self, user: User) -> int:
        audience, params = _audience_clause(user, 1)
        pool = await get_pool()

        async with pool.acquire() as conn:
            count = await conn.fetchval(
                f"SELECT COUNT(*) FROM notifications WHERE {audience} AND is_read = FALSE",
                *params,
            )

        return count or 0

    async def get_by_id(self, notification_id: int) -> Optional[Notification]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {NOTIFICATION_COLUMNS} FROM notifications WHERE id = $1",
                notification_id,
            )

        return row_to_notification(row) if row else None

    @staticmethod
    def can_access(user: User, notification: Notification) -> bool:
        if notification.for_admins:
            return user.is_admin
        return notification.user_id == user.id

    async def mark_as_read(self, notification_id: int) -> None:
        now = datetime.now(timezone.utc)
        pool = await get_pool()

        async with pool.acquire() as conn:
            await conn.execute(
                "UPDATE notifications SET is_read = TRUE, updated_at = $1 WHERE id = $2",
                now,
                notification_id,
            )

        logger.info("notification_marked_read", notification_id=notification_id)

    async def mark_all_as_read(self, user: User) -> int:
        """Mark every unread notification in the caller's audience. Returns count updated."""
        audience, params = _audience_clause(user, 2)
        now = datetime.now(timezone.utc)
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                f"""
                UPDATE notifications
                SET is_read = TRUE, updated_at = $1
                WHERE {audience} AND is_read = FALSE
                """,
                now,
                *params,
            )

        # result is like "UPDATE N"
        count = int(result.split()[-1])
        logger.info("notifications_marked_all_read", user_id=user.id, count=count)
        return count
