"""Authentication API endpoints: password and OAuth login."""

from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse
import structlog

from social_auth.api.dependencies import get_identity_resolver, get_request_metadata
from social_auth.config import get_settings
from social_auth.exceptions import (
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    OAuthError,
    OAuthOnlyAccountError,
    UnknownOAuthProviderError,
)
from social_auth.models.auth import (
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    RequestMetadata,
    UserSummary,
)
from social_auth.models.user import AuthProvider
from social_auth.services.identity_service import AuthResult, IdentityResolver
from social_auth.services.oauth_providers import OAuthProvider, get_oauth_provider

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

STATE_COOKIE = "oauth_state"


def _auth_response(message: str, result: AuthResult) -> AuthResponse:
    return AuthResponse(
        message=message,
        token=result.token,
        user=UserSummary.from_user(result.user),
    )


def _resolve_provider(name: str) -> OAuthProvider:
    try:
        return get_oauth_provider(name, get_settings())
    except UnknownOAuthProviderError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unsupported OAuth provider: {name}",
        )


def _frontend_redirect(path: str, **params: str) -> RedirectResponse:
    url = f"{get_settings().frontend_url.rstrip('/')}{path}?{urlencode(params)}"
    response = RedirectResponse(url, status_code=status.HTTP_302_FOUND)
    response.delete_cookie(STATE_COOKIE)
    return response


def _error_redirect(code: str) -> RedirectResponse:
    return _frontend_redirect("/login", error=code)


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    resolver: IdentityResolver = Depends(get_identity_resolver),
    metadata: RequestMetadata = Depends(get_request_metadata),
) -> AuthResponse:
    """Register a new email/password account.

    Args:
        request: Name, email and password

    Returns:
        AuthResponse with a session token and user info

    Raises:
        HTTPException 409: If the email is already registered
    """
    try:
        result = await resolver.register(
            request.name, request.email, request.password, metadata
        )
    except EmailAlreadyRegisteredError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return _auth_response("User registered successfully", result)


@router.post("/login")
async def login(
    request: LoginRequest,
    resolver: IdentityResolver = Depends(get_identity_resolver),
    metadata: RequestMetadata = Depends(get_request_metadata),
) -> AuthResponse:
    """Login with email and password.

    Raises:
        HTTPException 401: Invalid credentials, or an OAuth-only account
    """
    try:
        result = await resolver.login(request.email, request.password, metadata)
    except (InvalidCredentialsError, OAuthOnlyAccountError) as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))

    return _auth_response("Login successful", result)


@router.get("/{provider}")
async def oauth_start(provider: str, request: Request) -> RedirectResponse:
    """Redirect to the provider's consent screen.

    The signed state goes both into the URL and into a short-lived cookie;
    the callback requires them to match.
    """
    oauth_provider = _resolve_provider(provider)
    signer = request.app.state.state_signer
    state = signer.issue(provider)

    response = RedirectResponse(
        oauth_provider.authorization_url(state), status_code=status.HTTP_302_FOUND
    )
    response.set_cookie(
        STATE_COOKIE,
        state,
        max_age=int(signer.ttl.total_seconds()),
        httponly=True,
        samesite="lax",
        secure=get_settings().app_url.startswith("https://"),
    )
    return response


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: str,
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    resolver: IdentityResolver = Depends(get_identity_resolver),
    metadata: RequestMetadata = Depends(get_request_metadata),
) -> RedirectResponse:
    """Finish the OAuth flow and hand a session token to the frontend.

    Every failure redirects to the frontend login page with an error code
    and issues no token.
    """
    oauth_provider = _resolve_provider(provider)

    if error:
        logger.info("oauth_callback_error", provider=provider, error=error)
        return _error_redirect(
            OAuthError.ACCESS_DENIED if error == "access_denied" else OAuthError.PROVIDER_ERROR
        )

    signer = request.app.state.state_signer
    if not signer.verify(state, provider, expected=request.cookies.get(STATE_COOKIE)):
        logger.warning("oauth_state_mismatch", provider=provider)
        return _error_redirect(OAuthError.STATE_MISMATCH)

    if not code:
        logger.warning("oauth_callback_missing_code", provider=provider)
        return _error_redirect(OAuthError.PROVIDER_ERROR)

    try:
        profile = await oauth_provider.exchange_profile(code)
        result = await resolver.oauth_login(profile, AuthProvider(provider), metadata)
    except OAuthError as e:
        return _error_redirect(e.code)
    except Exception as e:
        logger.error(
            "oauth_callback_failed",
            provider=provider,
            error=str(e),
            error_type=type(e).__name__,
        )
        return _error_redirect(OAuthError.SERVER_ERROR)

    return _frontend_redirect("/auth/callback", token=result.token)
