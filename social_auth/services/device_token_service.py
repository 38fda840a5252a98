"""Device token (push registration) persistence."""

from datetime import datetime, timezone
from typing import Any, Optional, Sequence

import structlog

from social_auth.database import get_pool
from social_auth.models.notification import DeviceToken

logger = structlog.get_logger(__name__)

DEVICE_TOKEN_COLUMNS = (
    "id, user_id, token, device_type, device_name, is_active, last_used_at, created_at"
)


def row_to_device_token(row: Any) -> DeviceToken:
    return DeviceToken(
        id=row["id"],
        user_id=row["user_id"],
        token=row["token"],
        device_type=row["device_type"] or "web",
        device_name=row["device_name"],
        is_active=row["is_active"],
        last_used_at=row["last_used_at"],
        created_at=row["created_at"],
    )


class DeviceTokenService:
    """Upsert, removal and lookup of push endpoints."""

    async def register_token(
        self,
        user_id: int,
        token: str,
        device_type: Optional[str] = None,
        device_name: Optional[str] = None,
    ) -> DeviceToken:
        """Create or refresh the (user, token) pairing.

        Re-registering always reactivates the token and bumps last_used_at.
        """
        now = datetime.now(timezone.utc)
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO device_tokens
                    (user_id, token, device_type, device_name, is_active, last_used_at, created_at, updated_at)
                VALUES ($1, $2, $3, $4, TRUE, $5, $5, $5)
                ON CONFLICT (user_id, token) DO UPDATE SET
                    device_type = EXCLUDED.device_type,
                    device_name = EXCLUDED.device_name,
                    is_active = TRUE,
                    last_used_at = EXCLUDED.last_used_at,
                    updated_at = EXCLUDED.updated_at
                RETURNING {DEVICE_TOKEN_COLUMNS}
                """,
                user_id,
                token,
                device_type or "web",
                device_name,
                now,
            )

        logger.info(
            "device_token_registered",
            user_id=user_id,
            device_type=device_type or "web",
        )
        return row_to_device_token(row)

    async def remove_token(self, user_id: int, token: str) -> bool:
        """Delete a pairing on explicit client request."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM device_tokens WHERE user_id = $1 AND token = $2",
                user_id,
                token,
            )

        removed = result != "DELETE 0"
        logger.info("device_token_removed", user_id=user_id, removed=removed)
        return removed

    async def list_active_for_user(self, user_id: int) -> list[DeviceToken]:
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {DEVICE_TOKEN_COLUMNS}
                FROM device_tokens
                WHERE user_id = $1 AND is_active = TRUE
                ORDER BY created_at DESC
                """,
                user_id,
            )

        return [row_to_device_token(row) for row in rows]

    async def list_active_admin_tokens(self) -> list[str]:
        """Token strings of every active device owned by an admin."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT DISTINCT dt.token
                FROM device_tokens dt
                JOIN users u ON u.id = dt.user_id
                WHERE u.role = 'admin' AND dt.is_active = TRUE
                """
            )

        return [row["token"] for row in rows]

    async def deactivate_tokens(self, tokens: Sequence[str]) -> int:
        """Mark tokens inactive (not deleted) so future fan-outs skip them.

        Returns:
            Number of rows updated
        """
        if not tokens:
            return 0

        now = datetime.now(timezone.utc)
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE device_tokens
                SET is_active = FALSE, updated_at = $1
                WHERE token = ANY($2::text[]) AND is_active = TRUE
                """,
                now,
                list(tokens),
            )

        # result is like "UPDATE N"
        count = int(result.split()[-1])
        logger.info("device_tokens_deactivated", tokens_deactivated=count)
        return count
