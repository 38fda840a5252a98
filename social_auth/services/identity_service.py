"""Identity resolution: password registration/login and OAuth account linking.

Every successful path issues a session token and publishes a domain event to
the notification dispatcher. Publishing is fire-and-forget, so nothing that
happens in the notification pipeline can change the result returned here.
"""

from dataclasses import dataclass
from typing import Callable, Optional

import asyncpg
import structlog

from social_auth.exceptions import (
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    OAuthError,
    OAuthOnlyAccountError,
)
from social_auth.models.auth import OAuthProfile, RequestMetadata
from social_auth.models.user import AuthProvider, User
from social_auth.services.auth_service import AuthService
from social_auth.services.notification_dispatcher import NotificationDispatcher
from social_auth.services.token_service import TokenService
from social_auth.services.user_service import UserService

logger = structlog.get_logger(__name__)

# Decides whether an OAuth profile may attach to an existing account.
AccountLinkPolicy = Callable[[User, OAuthProfile], bool]

PROVIDER_LABELS = {
    AuthProvider.EMAIL: "Email",
    AuthProvider.GOOGLE: "Google",
}


def link_by_email(existing: User, profile: OAuthProfile) -> bool:
    """Link when the emails match and the provider verified the address.

    The user is not asked to prove ownership of the existing password first.
    """
    return profile.email_verified


@dataclass
class AuthResult:
    user: User
    token: str
    created: bool = False


class IdentityResolver:
    """Reconciles login attempts with the credential store."""

    def __init__(
        self,
        user_service: UserService,
        token_service: TokenService,
        dispatcher: NotificationDispatcher,
        auth_service: Optional[AuthService] = None,
        link_policy: AccountLinkPolicy = link_by_email,
    ):
        self.user_service = user_service
        self.token_service = token_service
        self.dispatcher = dispatcher
        self.auth_service = auth_service or AuthService()
        self.link_policy = link_policy

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        metadata: Optional[RequestMetadata] = None,
    ) -> AuthResult:
        """Create an email/password account.

        Raises:
            EmailAlreadyRegisteredError: If the email already has a record
        """
        if await self.user_service.get_by_email(email) is not None:
            raise EmailAlreadyRegisteredError(email)

        try:
            user = await self.user_service.create_user(
                email=email,
                provider=AuthProvider.EMAIL,
                full_name=name,
                password_hash=self.auth_service.hash_password(password),
            )
        except asyncpg.UniqueViolationError as e:
            # Lost a race with a concurrent registration for the same email.
            raise EmailAlreadyRegisteredError(email) from e

        token = self.token_service.issue(user)
        logger.info("user_registered", user_id=user.id, provider=AuthProvider.EMAIL.value)

        self.dispatcher.publish_user_registered(
            user, PROVIDER_LABELS[AuthProvider.EMAIL], metadata
        )
        return AuthResult(user=user, token=token, created=True)

    async def login(
        self,
        email: str,
        password: str,
        metadata: Optional[RequestMetadata] = None,
    ) -> AuthResult:
        """Password login.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password
            OAuthOnlyAccountError: The account has no password
        """
        found = await self.user_service.get_by_email(email)
        if found is None:
            logger.info("login_failed", reason="invalid_credentials")
            raise InvalidCredentialsError()

        user, password_hash = found

        if not password_hash:
            logger.info("login_failed", user_id=user.id, reason="oauth_only_account")
            raise OAuthOnlyAccountError(
                user.provider.value if user.provider else AuthProvider.GOOGLE.value
            )

        if not self.auth_service.verify_password(password, password_hash):
            logger.info("login_failed", user_id=user.id, reason="invalid_credentials")
            raise InvalidCredentialsError()

        token = self.token_service.issue(user)
        logger.info("user_logged_in", user_id=user.id, provider=AuthProvider.EMAIL.value)

        self.dispatcher.publish_user_login(user, metadata)
        return AuthResult(user=user, token=token)

    async def oauth_login(
        self,
        profile: OAuthProfile,
        provider: AuthProvider = AuthProvider.GOOGLE,
        metadata: Optional[RequestMetadata] = None,
    ) -> AuthResult:
        """Merge into the account with the same email, or create one.

        Merge refreshes provider id, avatar and name. An account with no
        provider, or one created by password registration, is stamped with
        the OAuth provider. The password hash is left alone, so a linked
        account can still log in with its password.

        Raises:
            OAuthError: If the link policy refuses to merge
        """
        found = await self.user_service.get_by_email(profile.email)

        if found is None:
            try:
                user = await self.user_service.create_user(
                    email=profile.email,
                    provider=provider,
                    full_name=profile.name,
                    provider_id=profile.external_id,
                    avatar_url=profile.avatar_url,
                )
            except asyncpg.UniqueViolationError:
                # A concurrent callback created it first; fall through to merge.
                found = await self.user_service.get_by_email(profile.email)
                if found is None:
                    raise
            else:
                token = self.token_service.issue(user)
                logger.info("user_registered", user_id=user.id, provider=provider.value)
                self.dispatcher.publish_user_registered(
                    user, PROVIDER_LABELS[provider], metadata
                )
                return AuthResult(user=user, token=token, created=True)

        existing, _ = found
        linking = existing.provider in (None, AuthProvider.EMAIL)
        if not self.link_policy(existing, profile):
            logger.warning("oauth_link_denied", user_id=existing.id, provider=provider.value)
            raise OAuthError(OAuthError.LINK_DENIED, "Account linking was refused")

        user = await self.user_service.update_oauth_profile(
            existing.id,
            provider_id=profile.external_id,
            avatar_url=profile.avatar_url,
            full_name=profile.name,
            provider=provider if linking else None,
        )
        if user is None:
            raise OAuthError(OAuthError.SERVER_ERROR, "User disappeared during merge")

        token = self.token_service.issue(user)
        logger.info(
            "user_logged_in",
            user_id=user.id,
            provider=provider.value,
            linked=linking,
        )

        self.dispatcher.publish_user_login(user, metadata)
        return AuthResult(user=user, token=token)
