"""Auth request and response models with validation."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from social_auth.models.user import User


def _normalize_email(v: str) -> str:
    return v.strip().lower()


class RegisterRequest(BaseModel):
    """Email/password registration.

    Attributes:
        name: Display name (2-100 chars after trimming)
        email: Email address, normalized to lowercase
        password: Plain-text password (6-100 chars)
    """

    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=100)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        stripped = v.strip()
        if len(stripped) < 2:
            raise ValueError("Name must be at least 2 characters")
        return stripped

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v) if isinstance(v, str) else v


class LoginRequest(BaseModel):
    """Email/password login credentials."""

    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v) if isinstance(v, str) else v


class UserSummary(BaseModel):
    """Compact user representation for API responses."""

    id: int
    name: Optional[str] = None
    email: Optional[str] = None
    avatar: Optional[str] = None
    provider: Optional[str] = None
    role: str

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id,
            name=user.full_name,
            email=user.email,
            avatar=user.avatar_url,
            provider=user.provider.value if user.provider else None,
            role=user.role.value,
        )


class AuthResponse(BaseModel):
    """Successful registration or login."""

    message: str
    token: str
    token_type: str = "bearer"
    user: UserSummary


class TokenPayload(BaseModel):
    """Claims carried by a session token."""

    user_id: int
    email: Optional[str] = None
    issued_at: datetime
    expires_at: datetime


class OAuthProfile(BaseModel):
    """Identity returned by an OAuth provider after code exchange."""

    external_id: str
    email: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    email_verified: bool = False

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)


class RequestMetadata(BaseModel):
    """Client details included in login-notification emails."""

    ip_address: str = "Unknown"
    user_agent: str = "Unknown"
