"""Email channel: template rendering, SMTP delivery and login-email throttling."""

import asyncio
from datetime import datetime, timezone
from email.message import EmailMessage
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import aiosmtplib
import structlog
from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from social_auth.config import Settings, get_settings
from social_auth.models.auth import RequestMetadata
from social_auth.models.notification import EmailOutcome
from social_auth.models.user import User
from social_auth.services.throttle import LoginEmailThrottle

logger = structlog.get_logger(__name__)

TEMPLATES_DIR = Path(__file__).parent.parent / "templates" / "emails"

WELCOME_TEMPLATE = "welcome"
LOGIN_SUCCESS_TEMPLATE = "login_success"

Transport = Callable[..., Awaitable[Any]]


class EmailRenderer:
    """Renders named HTML templates from ``templates/emails`` with Jinja2.

    Values are autoescaped; an undefined placeholder raises ``UndefinedError``.
    """

    def __init__(self, templates_dir: Path = TEMPLATES_DIR):
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(["html"]),
            undefined=StrictUndefined,
        )

    def render(self, name: str, data: dict[str, Any]) -> str:
        return self.env.get_template(f"{name}.html").render(**data)


class EmailService:
    """Sends transactional emails. Every public send returns an outcome and never raises."""

    def __init__(
        self,
        throttle: LoginEmailThrottle,
        settings: Optional[Settings] = None,
        renderer: Optional[EmailRenderer] = None,
        transport: Optional[Transport] = None,
    ):
        self.settings = settings or get_settings()
        self.throttle = throttle
        self.renderer = renderer or EmailRenderer()
        self.transport = transport or aiosmtplib.send

    async def send_email(
        self,
        to: str,
        subject: str,
        template: str,
        data: dict[str, Any],
    ) -> bool:
        """Render a template and hand it to the SMTP transport.

        Rendering errors, transport errors and timeouts are logged and
        reported as False.
        """
        settings = self.settings

        try:
            body = self.renderer.render(template, data)

            message = EmailMessage()
            message["From"] = f'"{settings.mail_from_name}" <{settings.mail_from_address}>'
            message["To"] = to
            message["Subject"] = subject
            message.set_content(body, subtype="html")

            await asyncio.wait_for(
                self.transport(
                    message,
                    hostname=settings.smtp_host,
                    port=settings.smtp_port,
                    username=settings.smtp_username or None,
                    password=settings.smtp_password or None,
                    use_tls=settings.smtp_use_tls,
                ),
                timeout=settings.email_timeout_seconds,
            )

            logger.info("email_sent", to=to, template=template)
            return True

        except asyncio.TimeoutError:
            logger.error(
                "email_send_timeout",
                to=to,
                template=template,
                timeout=settings.email_timeout_seconds,
            )
            return False
        except Exception as e:
            logger.error(
                "email_send_failed",
                to=to,
                template=template,
                error=str(e),
            )
            return False

    def _common_data(self, user: User) -> dict[str, Any]:
        return {
            "user_name": user.full_name or "there",
            "user_email": user.email,
            "year": datetime.now(timezone.utc).year,
            "app_name": self.settings.mail_from_name,
        }

    async def send_welcome_email(self, user: User) -> EmailOutcome:
        """Welcome email after first registration. Not throttled."""
        if not user.email:
            logger.warning("welcome_email_skipped_no_email", user_id=user.id)
            return EmailOutcome.SKIPPED

        sent = await self.send_email(
            to=user.email,
            subject=f"Welcome to {self.settings.mail_from_name}!",
            template=WELCOME_TEMPLATE,
            data={
                **self._common_data(user),
                "login_url": f"{self.settings.frontend_url}/login",
            },
        )
        return EmailOutcome.SENT if sent else EmailOutcome.FAILED

    async def send_login_email(
        self,
        user: User,
        metadata: Optional[RequestMetadata] = None,
    ) -> EmailOutcome:
        """Login-notification email, subject to the per-user throttle.

        The slot is reserved before sending and given back if the send
        fails, so only delivered emails count against the quota.
        """
        if not user.email:
            logger.warning("login_email_skipped_no_email", user_id=user.id)
            return EmailOutcome.SKIPPED

        if not self.throttle.try_acquire(user.id):
            logger.info("login_email_throttled", user_id=user.id)
            return EmailOutcome.THROTTLED

        metadata = metadata or RequestMetadata()
        sent = await self.send_email(
            to=user.email,
            subject="New Login to Your Account",
            template=LOGIN_SUCCESS_TEMPLATE,
            data={
                **self._common_data(user),
                "login_time": datetime.now(timezone.utc).strftime("%A, %B %d, %Y %H:%M UTC"),
                "ip_address": metadata.ip_address,
                "user_agent": metadata.user_agent,
                "security_url": f"{self.settings.frontend_url}/settings/security",
            },
        )

        if not sent:
            self.throttle.release(user.id)
            return EmailOutcome.FAILED

        return EmailOutcome.SENT

    async def verify_connection(self) -> bool:
        """Check that the SMTP server accepts our credentials."""
        settings = self.settings
        client = aiosmtplib.SMTP(
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            use_tls=settings.smtp_use_tls,
            timeout=settings.email_timeout_seconds,
        )
        try:
            await client.connect()
            if settings.smtp_username:
                await client.login(settings.smtp_username, settings.smtp_password)
            logger.info("smtp_connection_verified", host=settings.smtp_host)
            return True
        except Exception as e:
            logger.error("smtp_connection_failed", host=settings.smtp_host, error=str(e))
            return False
        finally:
            if client.is_connected:
                await client.quit()
