"""Routes domain events to the audit log, the email channel and the push channel.

Per event: the audit record is written first, then both channels run
concurrently and independently. Every channel ends in a terminal state
(sent / throttled / partial / failed / skipped); nothing is retried.
"""

import asyncio
from typing import Awaitable, Callable, Optional

import structlog

from social_auth.models.auth import RequestMetadata
from social_auth.models.notification import (
    DispatchResult,
    EmailOutcome,
    NotificationPayload,
    NotificationType,
    PushOutcome,
)
from social_auth.models.user import User
from social_auth.services.email_service import EmailService
from social_auth.services.notification_service import NotificationService
from social_auth.services.push_service import PushService
from social_auth.services.task_runner import BackgroundTaskRunner

logger = structlog.get_logger(__name__)

ADMIN_USERS_LINK = "/admin/users"

EmailStep = Callable[[], Awaitable[dict[str, EmailOutcome]]]

# Most significant first when several emails go out for one event.
_EMAIL_PRECEDENCE = (
    EmailOutcome.FAILED,
    EmailOutcome.SENT,
    EmailOutcome.THROTTLED,
    EmailOutcome.SKIPPED,
)


def combine_email_outcomes(outcomes: dict[str, EmailOutcome]) -> EmailOutcome:
    for candidate in _EMAIL_PRECEDENCE:
        if candidate in outcomes.values():
            return candidate
    return EmailOutcome.SKIPPED


def user_registered_payload(user: User, provider_label: str) -> NotificationPayload:
    return NotificationPayload(
        title="🎉 New User Registered",
        body=f"{user.display_name} just signed up via {provider_label}",
        data={
            "type": NotificationType.NEW_USER.value,
            "userId": str(user.id),
            "link": ADMIN_USERS_LINK,
        },
    )


def user_login_payload(user: User) -> NotificationPayload:
    return NotificationPayload(
        title="👤 User Login",
        body=f"{user.display_name} just logged in",
        data={
            "type": NotificationType.USER_LOGIN.value,
            "userId": str(user.id),
            "link": ADMIN_USERS_LINK,
        },
    )


def excel_export_payload(admin: User) -> NotificationPayload:
    return NotificationPayload(
        title="📊 Excel Export Downloaded",
        body=f"{admin.display_name} downloaded user data export",
        data={
            "type": NotificationType.EXCEL_EXPORT.value,
            "adminId": str(admin.id),
            "link": ADMIN_USERS_LINK,
        },
    )


class NotificationDispatcher:
    """Best-effort, at-most-once notification fan-out."""

    def __init__(
        self,
        notification_service: NotificationService,
        email_service: EmailService,
        push_service: PushService,
        task_runner: BackgroundTaskRunner,
    ):
        self.notification_service = notification_service
        self.email_service = email_service
        self.push_service = push_service
        self.task_runner = task_runner

    # -- fire-and-forget entry points used by request handlers ---------------

    def publish_user_registered(
        self,
        user: User,
        provider_label: str,
        metadata: Optional[RequestMetadata] = None,
    ) -> None:
        self.task_runner.submit(
            self.handle_user_registered(user, provider_label, metadata),
            name=f"{NotificationType.NEW_USER.value}:{user.id}",
        )

    def publish_user_login(
        self, user: User, metadata: Optional[RequestMetadata] = None
    ) -> None:
        self.task_runner.submit(
            self.handle_user_login(user, metadata),
            name=f"{NotificationType.USER_LOGIN.value}:{user.id}",
        )

    def publish_excel_export(self, admin: User) -> None:
        self.task_runner.submit(
            self.handle_excel_export(admin),
            name=f"{NotificationType.EXCEL_EXPORT.value}:{admin.id}",
        )

    # -- event handlers ------------------------------------------------------

    async def handle_user_registered(
        self,
        user: User,
        provider_label: str,
        metadata: Optional[RequestMetadata] = None,
    ) -> DispatchResult:
        async def emails() -> dict[str, EmailOutcome]:
            # Each send is independent: a failed welcome still attempts the login email.
            welcome = await self._safe_email(
                "welcome", self.email_service.send_welcome_email(user)
            )
            login = await self._safe_email(
                "login", self.email_service.send_login_email(user, metadata)
            )
            return {"welcome": welcome, "login": login}

        return await self.dispatch(
            NotificationType.NEW_USER,
            user_registered_payload(user, provider_label),
            emails,
        )

    async def handle_user_login(
        self, user: User, metadata: Optional[RequestMetadata] = None
    ) -> DispatchResult:
        async def emails() -> dict[str, EmailOutcome]:
            login = await self._safe_email(
                "login", self.email_service.send_login_email(user, metadata)
            )
            return {"login": login}

        return await self.dispatch(
            NotificationType.USER_LOGIN,
            user_login_payload(user),
            emails,
        )

    async def handle_excel_export(self, admin: User) -> DispatchResult:
        return await self.dispatch(
            NotificationType.EXCEL_EXPORT,
            excel_export_payload(admin),
        )

    # -- core ----------------------------------------------------------------

    async def dispatch(
        self,
        event: NotificationType,
        payload: NotificationPayload,
        email_step: Optional[EmailStep] = None,
    ) -> DispatchResult:
        """Persist the audit record, then run both channels.

        If the audit write fails no channel is attempted.
        """
        result = DispatchResult(event=event)

        try:
            notification = await self.notification_service.create_admin_notification(
                event.value, payload
            )
        except Exception as e:
            logger.error("notification_audit_failed", event_type=event.value, error=str(e))
            return result

        result.notification_id = notification.id

        email_details, push_outcome = await asyncio.gather(
            self._run_email(email_step),
            self._run_push(payload),
        )
        result.email_details = email_details
        result.email = combine_email_outcomes(email_details)
        result.push = push_outcome

        logger.info(
            "notification_dispatched",
            event_type=event.value,
            notification_id=notification.id,
            email=result.email.value,
            push=result.push.value,
        )
        return result

    async def _run_email(self, email_step: Optional[EmailStep]) -> dict[str, EmailOutcome]:
        if email_step is None:
            return {}
        try:
            return await email_step()
        except Exception as e:
            logger.error("email_channel_failed", error=str(e))
            return {"email": EmailOutcome.FAILED}

    async def _run_push(self, payload: NotificationPayload) -> PushOutcome:
        try:
            result = await self.push_service.notify_admins(payload)
        except Exception as e:
            logger.error("push_channel_failed", error=str(e))
            return PushOutcome.FAILED
        return result.outcome

    @staticmethod
    async def _safe_email(kind: str, send: Awaitable[EmailOutcome]) -> EmailOutcome:
        try:
            return await send
        except Exception as e:
            logger.error("email_send_unexpected_error", kind=kind, error=str(e))
            return EmailOutcome.FAILED
