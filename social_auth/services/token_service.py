"""Session token issuance and verification.

Tokens are stateless HS256 JWTs carrying ``{userId, email}``. There is no
revocation list: a token stays valid until it expires, even across password
or role changes.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
import structlog

from social_auth.config import get_settings
from social_auth.exceptions import TokenConfigurationError
from social_auth.models.auth import TokenPayload
from social_auth.models.user import User
from social_auth.services.user_service import UserService

logger = structlog.get_logger(__name__)

JWT_ALGORITHM = "HS256"
DEFAULT_EXPIRE_DAYS = 7


class TokenService:
    """Issues, verifies and resolves session tokens."""

    def __init__(
        self,
        secret: Optional[str] = None,
        expire_days: Optional[int] = None,
        user_service: Optional[UserService] = None,
    ):
        settings = get_settings()
        self.secret = secret if secret is not None else settings.jwt_secret
        if not self.secret:
            raise TokenConfigurationError("JWT_SECRET is not configured")
        self.expire_days = expire_days or settings.jwt_expire_days or DEFAULT_EXPIRE_DAYS
        self.user_service = user_service or UserService()

    def issue(self, user: User, now: Optional[datetime] = None) -> str:
        """Create a signed token for a user.

        Args:
            user: The authenticated user
            now: Issuance instant, defaults to the current time

        Returns:
            Encoded JWT string
        """
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "userId": user.id,
            "email": user.email,
            "iat": issued_at,
            "exp": issued_at + timedelta(days=self.expire_days),
        }
        token = jwt.encode(payload, self.secret, algorithm=JWT_ALGORITHM)
        logger.debug("session_token_issued", user_id=user.id, expire_days=self.expire_days)
        return token

    def verify(self, token: str) -> Optional[TokenPayload]:
        """Decode and validate a token.

        Bad signatures, expired tokens, malformed input and missing claims
        are indistinguishable: all return None.
        """
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[JWT_ALGORITHM],
                options={"require": ["exp", "iat"]},
            )
            return TokenPayload(
                user_id=int(claims["userId"]),
                email=claims.get("email"),
                issued_at=datetime.fromtimestamp(claims["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
            )
        except jwt.InvalidTokenError as e:
            logger.debug("session_token_rejected", reason=type(e).__name__)
            return None
        except (KeyError, TypeError, ValueError) as e:
            logger.debug("session_token_claims_invalid", reason=type(e).__name__)
            return None

    async def resolve_user(self, token: str) -> Optional[User]:
        """Verify a token and load its user; None if either step fails."""
        payload = self.verify(token)
        if payload is None:
            return None
        return await self.user_service.get_by_id(payload.user_id)
