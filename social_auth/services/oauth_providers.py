"""OAuth providers and signed state handling.

Each provider implements the ``OAuthProvider`` protocol; the callback route
picks one by name through ``get_oauth_provider``.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol
from urllib.parse import urlencode

import httpx
import jwt
import structlog

from social_auth.config import Settings, get_settings
from social_auth.exceptions import OAuthError, UnknownOAuthProviderError
from social_auth.models.auth import OAuthProfile

logger = structlog.get_logger(__name__)

STATE_TTL_MINUTES = 10
STATE_PURPOSE = "oauth_state"


class OAuthProvider(Protocol):
    name: str

    def authorization_url(self, state: str) -> str: ...

    async def exchange_profile(self, code: str) -> OAuthProfile: ...


class GoogleOAuthProvider:
    """Google OpenID Connect authorization-code flow."""

    name = "google"

    AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
    SCOPES = ("openid", "email", "profile")

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.settings = settings or get_settings()
        self._client = client
        self.timeout = timeout

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.settings.google_client_id,
            "redirect_uri": self.settings.google_redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.SCOPES),
            "state": state,
            "prompt": "select_account",
            "access_type": "offline",
        }
        return f"{self.AUTHORIZE_URL}?{urlencode(params)}"

    async def exchange_profile(self, code: str) -> OAuthProfile:
        """Trade an authorization code for the user's profile.

        Raises:
            OAuthError: with code ``server_error`` on any exchange failure
        """
        if self._client is not None:
            return await self._exchange(self._client, code)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._exchange(client, code)

    async def _exchange(self, client: httpx.AsyncClient, code: str) -> OAuthProfile:
        try:
            token_response = await client.post(
                self.TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.settings.google_client_id,
                    "client_secret": self.settings.google_client_secret,
                    "redirect_uri": self.settings.google_redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
            token_response.raise_for_status()
            access_token = token_response.json()["access_token"]

            profile_response = await client.get(
                self.USERINFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            profile_response.raise_for_status()
            info = profile_response.json()
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error("google_exchange_failed", error=str(e))
            raise OAuthError(OAuthError.SERVER_ERROR, "Google code exchange failed") from e

        if not info.get("email") or not info.get("sub"):
            logger.error("google_profile_incomplete", has_email=bool(info.get("email")))
            raise OAuthError(OAuthError.SERVER_ERROR, "Google profile has no email")

        return OAuthProfile(
            external_id=str(info["sub"]),
            email=info["email"],
            name=info.get("name"),
            avatar_url=info.get("picture"),
            email_verified=info.get("email_verified") in (True, "true"),
        )


PROVIDERS: dict[str, Callable[[Settings], OAuthProvider]] = {
    "google": GoogleOAuthProvider,
}


def get_oauth_provider(name: str, settings: Optional[Settings] = None) -> OAuthProvider:
    """Instantiate the provider registered under ``name``."""
    factory = PROVIDERS.get(name)
    if factory is None:
        raise UnknownOAuthProviderError(name)
    return factory(settings or get_settings())


class OAuthStateSigner:
    """Issues and checks short-lived signed ``state`` values.

    The state is a JWT with a random nonce. The route also stores it in a
    cookie, so a callback must present both to pass.
    """

    def __init__(self, secret: str, ttl_minutes: int = STATE_TTL_MINUTES):
        self.secret = secret
        self.ttl = timedelta(minutes=ttl_minutes)

    def issue(self, provider: str, now: Optional[datetime] = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        return jwt.encode(
            {
                "purpose": STATE_PURPOSE,
                "provider": provider,
                "nonce": secrets.token_urlsafe(16),
                "iat": issued_at,
                "exp": issued_at + self.ttl,
            },
            self.secret,
            algorithm="HS256",
        )

    def verify(self, state: Optional[str], provider: str, expected: Optional[str]) -> bool:
        """True if ``state`` is ours, unexpired, for this provider and matches ``expected``.

        ``expected`` is the cookie copy; when it is missing the check fails.
        """
        if not state or not expected:
            return False
        if not secrets.compare_digest(state, expected):
            return False
        try:
            claims = jwt.decode(state, self.secret, algorithms=["HS256"])
        except jwt.InvalidTokenError:
            return False
        return claims.get("purpose") == STATE_PURPOSE and claims.get("provider") == provider
