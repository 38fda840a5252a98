"""Models package exports."""

from social_auth.models.auth import (
    AuthResponse,
    LoginRequest,
    OAuthProfile,
    RegisterRequest,
    RequestMetadata,
    TokenPayload,
    UserSummary,
)
from social_auth.models.notification import (
    DeviceToken,
    DispatchResult,
    EmailOutcome,
    Notification,
    NotificationPayload,
    NotificationType,
    PushOutcome,
)
from social_auth.models.user import AuthProvider, User, UserRole

__all__ = [
    "AuthProvider",
    "AuthResponse",
    "DeviceToken",
    "DispatchResult",
    "EmailOutcome",
    "LoginRequest",
    "Notification",
    "NotificationPayload",
    "NotificationType",
    "OAuthProfile",
    "PushOutcome",
    "RegisterRequest",
    "RequestMetadata",
    "TokenPayload",
    "User",
    "UserRole",
    "UserSummary",
]
