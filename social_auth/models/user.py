"""User and identity models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class AuthProvider(str, Enum):
    """How the account was first established."""

    EMAIL = "email"
    GOOGLE = "google"


class User(BaseModel):
    """A registered user. The password hash is never part of this model."""

    id: int
    full_name: Optional[str] = None
    email: Optional[str] = None
    provider: Optional[AuthProvider] = None
    provider_id: Optional[str] = None
    avatar_url: Optional[str] = None
    role: UserRole = UserRole.USER
    created_at: datetime
    updated_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def display_name(self) -> str:
        """Name used in notification copy: full name, else email."""
        return self.full_name or self.email or f"User #{self.id}"


class UserFilters(BaseModel):
    """Admin user-list filters shared by the list and export endpoints."""

    search: Optional[str] = None
    login_type: Optional[str] = None
    sort_by: str = "created_at"
    sort_order: str = "desc"
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class UserStats(BaseModel):
    total: int
    email_users: int
    google_users: int
    admin_users: int
