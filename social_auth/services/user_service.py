"""Credential store: the only writer of user rows."""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog

from social_auth.database import get_pool
from social_auth.models.user import (
    AuthProvider,
    User,
    UserFilters,
    UserRole,
    UserStats,
)

logger = structlog.get_logger(__name__)

USER_COLUMNS = (
    "id, full_name, email, provider, provider_id, avatar_url, role, created_at, updated_at"
)

# Admin list sort keys mapped to columns; anything else falls back to created_at.
SORT_COLUMNS = {
    "created_at": "created_at",
    "email": "email",
    "provider": "provider",
    "updated_at": "updated_at",
}


def row_to_user(row: Any) -> User:
    """Build a User from an asyncpg record (or any mapping)."""
    return User(
        id=row["id"],
        full_name=row["full_name"],
        email=row["email"],
        provider=AuthProvider(row["provider"]) if row["provider"] else None,
        provider_id=row["provider_id"],
        avatar_url=row["avatar_url"],
        role=UserRole(row["role"] or UserRole.USER.value),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _build_filter_clause(filters: UserFilters) -> tuple[str, list]:
    """Translate admin filters into a WHERE clause and positional params."""
    conditions: list[str] = []
    params: list = []

    if filters.search:
        params.append(f"%{filters.search}%")
        idx = len(params)
        conditions.append(f"(email ILIKE ${idx} OR full_name ILIKE ${idx})")

    if filters.login_type and filters.login_type != "all":
        params.append(filters.login_type)
        conditions.append(f"provider = ${len(params)}")

    if filters.start_date is not None:
        params.append(filters.start_date)
        conditions.append(f"created_at >= ${len(params)}")

    if filters.end_date is not None:
        params.append(filters.end_date)
        conditions.append(f"created_at <= ${len(params)}")

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    return where, params


def _build_order_clause(filters: UserFilters) -> str:
    column = SORT_COLUMNS.get(filters.sort_by, "created_at")
    direction = "ASC" if filters.sort_order == "asc" else "DESC"
    return f"ORDER BY {column} {direction}, id {direction}"


class UserService:
    """Service for user persistence."""

    async def create_user(
        self,
        email: str,
        provider: AuthProvider,
        full_name: Optional[str] = None,
        password_hash: Optional[str] = None,
        provider_id: Optional[str] = None,
        avatar_url: Optional[str] = None,
        role: UserRole = UserRole.USER,
    ) -> User:
        """Insert a new user.

        Args:
            email: Unique email address
            provider: How the account was established
            full_name: Display name
            password_hash: Bcrypt hash, None for OAuth-only accounts
            provider_id: Provider subject identifier
            avatar_url: Profile picture
            role: Initial role

        Returns:
            Created User model

        Raises:
            asyncpg.UniqueViolationError: If the email is already taken
        """
        now = datetime.now(timezone.utc)
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO users
                    (full_name, email, password_hash, provider, provider_id, avatar_url, role, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                RETURNING {USER_COLUMNS}
                """,
                full_name,
                email,
                password_hash,
                provider.value,
                provider_id,
                avatar_url,
                role.value,
                now,
                now,
            )

        user = row_to_user(row)
        logger.info(
            "user_created",
            user_id=user.id,
            provider=provider.value,
            role=role.value,
        )
        return user

    async def get_by_email(self, email: str) -> Optional[tuple[User, Optional[str]]]:
        """Get a user by email (case-insensitive).

        Returns:
            Tuple of (User, password_hash) or None if not found. The hash is
            None for OAuth-only accounts.
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {USER_COLUMNS}, password_hash
                FROM users
                WHERE LOWER(email) = LOWER($1)
                """,
                email,
            )

        if row is None:
            return None

        return row_to_user(row), row["password_hash"]

    async def get_by_id(self, user_id: int) -> Optional[User]:
        """Get a user by id, or None if it no longer exists."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {USER_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )

        if row is None:
            return None

        return row_to_user(row)

    async def update_oauth_profile(
        self,
        user_id: int,
        provider_id: str,
        avatar_url: Optional[str],
        full_name: Optional[str],
        provider: Optional[AuthProvider] = None,
    ) -> Optional[User]:
        """Refresh provider fields from a fresh OAuth profile.

        ``provider`` is only written when given; the password hash is never
        touched here.
        """
        now = datetime.now(timezone.utc)
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users
                SET provider_id = $1,
                    avatar_url = $2,
                    full_name = $3,
                    provider = COALESCE($4, provider),
                    updated_at = $5
                WHERE id = $6
                RETURNING {USER_COLUMNS}
                """,
                provider_id,
                avatar_url,
                full_name,
                provider.value if provider else None,
                now,
                user_id,
            )

        if row is None:
            return None

        logger.info(
            "user_oauth_profile_updated",
            user_id=user_id,
            provider_linked=provider.value if provider else None,
        )
        return row_to_user(row)

    async def set_role(self, user_id: int, role: UserRole) -> Optional[User]:
        """Grant or revoke admin. Returns None if the user does not exist."""
        now = datetime.now(timezone.utc)
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users SET role = $1, updated_at = $2
                WHERE id = $3
                RETURNING {USER_COLUMNS}
                """,
                role.value,
                now,
                user_id,
            )

        if row is None:
            return None

        logger.info("user_role_changed", user_id=user_id, role=role.value)
        return row_to_user(row)

    async def list_users(
        self,
        filters: UserFilters,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[User], int]:
        """Return one page of users matching the filters, plus the total."""
        where, params = _build_filter_clause(filters)
        order = _build_order_clause(filters)
        page_idx = len(params) + 1

        pool = await get_pool()

        async with pool.acquire() as conn:
            total = await conn.fetchval(
                f"SELECT COUNT(*) FROM users {where}",
                *params,
            )
            rows = await conn.fetch(
                f"""
                SELECT {USER_COLUMNS}
                FROM users
                {where}
                {order}
                LIMIT ${page_idx} OFFSET ${page_idx + 1}
                """,
                *params,
                limit,
                offset,
            )

        return [row_to_user(row) for row in rows], total or 0

    async def list_all_users(self, filters: UserFilters) -> list[User]:
        """Every user matching the filters, unpaginated (for exports)."""
        where, params = _build_filter_clause(filters)
        order = _build_order_clause(filters)

        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {USER_COLUMNS} FROM users {where} {order}",
                *params,
            )

        return [row_to_user(row) for row in rows]

    async def get_stats(self) -> UserStats:
        """Totals by provider and role."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT
                    COUNT(*) AS total,
                    COUNT(*) FILTER (WHERE provider = 'email') AS email_users,
                    COUNT(*) FILTER (WHERE provider = 'google') AS google_users,
                    COUNT(*) FILTER (WHERE role = 'admin') AS admin_users
                FROM users
                """
            )

        return UserStats(
            total=row["total"],
            email_users=row["email_users"],
            google_users=row["google_users"],
            admin_users=row["admin_users"],
        )
