"""FastAPI dependencies for authentication, authorization and services."""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from social_auth.api.middleware import client_metadata
from social_auth.models.auth import RequestMetadata
from social_auth.models.user import User
from social_auth.services.identity_service import IdentityResolver
from social_auth.services.notification_dispatcher import NotificationDispatcher
from social_auth.services.token_service import TokenService

bearer_scheme = HTTPBearer(auto_error=False)


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_identity_resolver(request: Request) -> IdentityResolver:
    return request.app.state.identity_resolver


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


def get_request_metadata(request: Request) -> RequestMetadata:
    metadata = getattr(request.state, "client_metadata", None)
    return metadata or client_metadata(request)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    token_service: TokenService = Depends(get_token_service),
) -> User:
    """Resolve the Bearer token into a user.

    Missing header, invalid token and deleted user all produce the same
    kind of 401.

    Raises:
        HTTPException 401: If the caller is not authenticated
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await token_service.resolve_user(credentials.credentials)

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


async def require_admin(
    current_user: User = Depends(get_current_user),
) -> User:
    """Require the current user to have the admin role.

    Raises:
        HTTPException 403: If user is not an admin
    """
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user
