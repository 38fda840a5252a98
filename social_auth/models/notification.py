"""Notification, device token and dispatch models."""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    """Domain events that produce admin notifications."""

    NEW_USER = "new_user"
    USER_LOGIN = "user_login"
    EXCEL_EXPORT = "excel_export"


class EmailOutcome(str, Enum):
    SENT = "sent"
    THROTTLED = "throttled"
    FAILED = "failed"
    SKIPPED = "skipped"


class PushOutcome(str, Enum):
    SENT = "sent"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


class Notification(BaseModel):
    """An audit / inbox entry. Distinct from any push delivery attempt."""

    id: int
    user_id: Optional[int] = None
    title: str
    body: str
    type: str
    data: Dict[str, str] = Field(default_factory=dict)
    is_read: bool = False
    for_admins: bool = False
    created_at: datetime
    updated_at: Optional[datetime] = None


class NotificationPayload(BaseModel):
    """What the push channel sends and the audit record stores."""

    title: str
    body: str
    data: Dict[str, str] = Field(default_factory=dict)
    image_url: Optional[str] = None


class DeviceToken(BaseModel):
    """One (user, push endpoint) pairing."""

    id: int
    user_id: int
    token: str
    device_type: str = "web"
    device_name: Optional[str] = None
    is_active: bool = True
    last_used_at: Optional[datetime] = None
    created_at: datetime


class RegisterDeviceTokenRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=500)
    device_type: Optional[str] = Field(default=None, max_length=50)
    device_name: Optional[str] = Field(default=None, max_length=100)


class RemoveDeviceTokenRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=500)


class TokenSendResult(BaseModel):
    """Provider response for a single device token."""

    token: str
    success: bool
    error_code: Optional[str] = None
    token_invalid: bool = False


class MulticastResult(BaseModel):
    """Aggregate of a multicast push; counts are logged, not persisted."""

    success_count: int = 0
    failure_count: int = 0
    deactivated: list[str] = Field(default_factory=list)
    responses: list[TokenSendResult] = Field(default_factory=list)

    @property
    def outcome(self) -> PushOutcome:
        if self.success_count and not self.failure_count:
            return PushOutcome.SENT
        if self.success_count:
            return PushOutcome.PARTIAL
        if self.failure_count:
            return PushOutcome.FAILED
        return PushOutcome.SKIPPED


class DispatchResult(BaseModel):
    """Terminal channel states for one event occurrence."""

    event: NotificationType
    notification_id: Optional[int] = None
    email: EmailOutcome = EmailOutcome.SKIPPED
    push: PushOutcome = PushOutcome.SKIPPED
    email_details: Dict[str, EmailOutcome] = Field(default_factory=dict)
