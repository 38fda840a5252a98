"""Click CLI for operator tasks."""

from __future__ import annotations

import asyncio
import sys

import click
from dotenv import load_dotenv

from social_auth.config import get_settings
from social_auth.database import close_database, init_database
from social_auth.models.user import UserRole
from social_auth.services.email_service import EmailService
from social_auth.services.logging_service import configure_logging
from social_auth.services.throttle import LoginEmailThrottle
from social_auth.services.user_service import UserService


@click.group()
def cli() -> None:
    """Social Auth administration commands."""
    load_dotenv()
    configure_logging("WARNING")


async def _set_role(email: str, role: UserRole) -> tuple[bool, str]:
    await init_database()
    try:
        user_service = UserService()
        found = await user_service.get_by_email(email.strip().lower())
        if found is None:
            return False, f"No user with email: {email}"

        user, _ = found
        if user.role == role:
            return True, f"{user.email} already has role '{role.value}'"

        await user_service.set_role(user.id, role)
        return True, f"{user.email} now has role '{role.value}'"
    finally:
        await close_database()


@cli.command("set-admin")
@click.argument("email")
@click.option("--revoke", is_flag=True, default=False, help="Demote to a regular user instead.")
def set_admin(email: str, revoke: bool) -> None:
    """Grant (or with --revoke, remove) the admin role for EMAIL."""
    role = UserRole.USER if revoke else UserRole.ADMIN
    ok, message = asyncio.run(_set_role(email, role))
    click.echo(message)
    if not ok:
        sys.exit(1)


@cli.command("check-email")
def check_email() -> None:
    """Verify the SMTP settings by connecting and logging in."""
    settings = get_settings()
    service = EmailService(LoginEmailThrottle(), settings=settings)
    if asyncio.run(service.verify_connection()):
        click.echo(f"SMTP connection to {settings.smtp_host}:{settings.smtp_port} OK")
    else:
        click.echo(f"SMTP connection to {settings.smtp_host}:{settings.smtp_port} failed")
        sys.exit(1)


if __name__ == "__main__":
    cli()
