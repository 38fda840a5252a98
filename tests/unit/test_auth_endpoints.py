"""Unit tests for auth API endpoints.

Tests /auth/register, /auth/login, the Google OAuth redirect and callback,
and /api/me + /api/verify using FastAPI TestClient with mocked services.
"""

from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import parse_qs, urlparse

import pytest

from social_auth.exceptions import (
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    OAuthError,
    OAuthOnlyAccountError,
)
from social_auth.models.notification import EmailOutcome
from social_auth.services.identity_service import AuthResult, IdentityResolver
from social_auth.services.notification_dispatcher import NotificationDispatcher
from social_auth.services.task_runner import BackgroundTaskRunner

FRONTEND = "http://frontend.test"


@pytest.fixture
def client(app_client):
    return app_client


@pytest.fixture
def app():
    from social_auth.main import app

    return app


@pytest.fixture
def resolver(app):
    """Mocked IdentityResolver installed as the route dependency."""
    from social_auth.api.dependencies import get_identity_resolver

    mock = MagicMock()
    mock.register = AsyncMock()
    mock.login = AsyncMock()
    mock.oauth_login = AsyncMock()
    app.dependency_overrides[get_identity_resolver] = lambda: mock
    return mock


# ---------------------------------------------------------------------------
# POST /auth/register
# ---------------------------------------------------------------------------

class TestRegister:
    def test_register_returns_201_with_token(self, client, resolver, make_user):
        resolver.register.return_value = AuthResult(
            user=make_user(user_id=3), token="session-token", created=True
        )

        response = client.post(
            "/auth/register",
            json={"name": "  Alice  ", "email": "Alice@Example.com", "password": "secret123"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["token"] == "session-token"
        assert data["user"]["id"] == 3
        assert data["user"]["role"] == "user"
        name, email, password, metadata = resolver.register.await_args.args
        assert (name, email, password) == ("Alice", "alice@example.com", "secret123")
        assert metadata.user_agent == "testclient"

    def test_duplicate_email_409(self, client, resolver):
        resolver.register.side_effect = EmailAlreadyRegisteredError("alice@example.com")

        response = client.post(
            "/auth/register",
            json={"name": "Alice", "email": "alice@example.com", "password": "secret123"},
        )

        assert response.status_code == 409
        assert response.json()["detail"] == "Email already registered"

    @pytest.mark.parametrize(
        "body",
        [
            {"name": "A", "email": "a@example.com", "password": "secret123"},
            {"name": "Alice", "email": "not-an-email", "password": "secret123"},
            {"name": "Alice", "email": "a@example.com", "password": "12345"},
            {"email": "a@example.com", "password": "secret123"},
        ],
    )
    def test_invalid_body_400(self, client, resolver, body):
        response = client.post("/auth/register", json=body)

        assert response.status_code == 400
        assert "correlation_id" in response.json()
        resolver.register.assert_not_awaited()

    def test_register_succeeds_when_every_channel_fails(self, client, app, make_user):
        """The response never depends on the notification pipeline."""
        from social_auth.api.dependencies import get_identity_resolver

        user_service = MagicMock()
        user_service.get_by_email = AsyncMock(return_value=None)
        user_service.create_user = AsyncMock(return_value=make_user(user_id=11))

        broken = MagicMock()
        broken.create_admin_notification = AsyncMock(side_effect=ConnectionError("db down"))
        broken.send_welcome_email = AsyncMock(side_effect=OSError("smtp down"))
        broken.send_login_email = AsyncMock(return_value=EmailOutcome.FAILED)
        broken.notify_admins = AsyncMock(side_effect=RuntimeError("fcm down"))
        dispatcher = NotificationDispatcher(broken, broken, broken, BackgroundTaskRunner())

        real_resolver = IdentityResolver(user_service, app.state.token_service, dispatcher)
        app.dependency_overrides[get_identity_resolver] = lambda: real_resolver

        response = client.post(
            "/auth/register",
            json={"name": "Alice", "email": "alice@example.com", "password": "secret123"},
        )

        assert response.status_code == 201
        token = response.json()["token"]
        assert app.state.token_service.verify(token).user_id == 11


# ---------------------------------------------------------------------------
# POST /auth/login
# ---------------------------------------------------------------------------

class TestLogin:
    def test_login_success(self, client, resolver, make_user):
        resolver.login.return_value = AuthResult(user=make_user(), token="tok")

        response = client.post(
            "/auth/login",
            json={"email": "alice@example.com", "password": "secret123"},
            headers={"X-Forwarded-For": "203.0.113.5, 10.0.0.1"},
        )

        assert response.status_code == 200
        assert response.json()["token"] == "tok"
        metadata = resolver.login.await_args.args[2]
        assert metadata.ip_address == "203.0.113.5"

    def test_invalid_credentials_401(self, client, resolver):
        resolver.login.side_effect = InvalidCredentialsError()

        response = client.post(
            "/auth/login",
            json={"email": "alice@example.com", "password": "wrong"},
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid email or password"

    def test_oauth_only_account_hint(self, client, resolver):
        resolver.login.side_effect = OAuthOnlyAccountError("google")

        response = client.post(
            "/auth/login",
            json={"email": "alice@example.com", "password": "whatever"},
        )

        assert response.status_code == 401
        assert response.json()["detail"] == (
            "This account uses Google login. Please sign in with Google."
        )


# ---------------------------------------------------------------------------
# Google OAuth
# ---------------------------------------------------------------------------

def _location(response) -> tuple[str, dict]:
    parsed = urlparse(response.headers["location"])
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}", parse_qs(parsed.query)


class TestOAuthStart:
    def test_redirects_to_google_with_state_cookie(self, client):
        response = client.get("/auth/google", follow_redirects=False)

        assert response.status_code == 302
        base, query = _location(response)
        assert base == "https://accounts.google.com/o/oauth2/v2/auth"
        assert query["state"][0] == response.cookies["oauth_state"]

    def test_unknown_provider_404(self, client):
        response = client.get("/auth/myspace", follow_redirects=False)

        assert response.status_code == 404


class TestOAuthCallback:
    @pytest.fixture
    def state(self, app):
        return app.state.state_signer.issue("google")

    @pytest.fixture
    def provider(self):
        mock = MagicMock()
        mock.exchange_profile = AsyncMock()
        with patch("social_auth.api.auth.get_oauth_provider", return_value=mock):
            yield mock

    def _callback(self, client, state, cookie=None, **params):
        query = {"state": state, **params}
        return client.get(
            "/auth/google/callback",
            params=query,
            headers={"Cookie": f"oauth_state={cookie if cookie is not None else state}"},
            follow_redirects=False,
        )

    def test_success_redirects_with_token(self, client, resolver, provider, state, make_user):
        resolver.oauth_login.return_value = AuthResult(user=make_user(), token="oauth-token")

        response = self._callback(client, state, code="auth-code")

        assert response.status_code == 302
        base, query = _location(response)
        assert base == f"{FRONTEND}/auth/callback"
        assert query["token"] == ["oauth-token"]
        provider.exchange_profile.assert_awaited_once_with("auth-code")

    def test_access_denied(self, client, resolver, provider, state):
        response = self._callback(client, state, error="access_denied")

        base, query = _location(response)
        assert base == f"{FRONTEND}/login"
        assert query["error"] == ["access_denied"]
        resolver.oauth_login.assert_not_awaited()

    def test_other_provider_error(self, client, resolver, provider, state):
        response = self._callback(client, state, error="temporarily_unavailable")

        assert _location(response)[1]["error"] == ["oauth_error"]

    def test_state_cookie_mismatch(self, client, resolver, provider, state, app):
        other = app.state.state_signer.issue("google")

        response = self._callback(client, state, cookie=other, code="auth-code")

        assert _location(response)[1]["error"] == ["state_mismatch"]
        provider.exchange_profile.assert_not_awaited()

    def test_missing_state_cookie(self, client, resolver, provider, state):
        client.cookies.clear()

        response = client.get(
            "/auth/google/callback",
            params={"state": state, "code": "auth-code"},
            follow_redirects=False,
        )

        query = _location(response)[1]
        assert query["error"] == ["state_mismatch"]
        assert "token" not in query
        provider.exchange_profile.assert_not_awaited()
        resolver.oauth_login.assert_not_awaited()

    def test_forged_state(self, client, resolver, provider):
        response = self._callback(client, "forged.state.value", code="auth-code")

        assert _location(response)[1]["error"] == ["state_mismatch"]

    def test_exchange_failure_is_server_error(self, client, resolver, provider, state):
        provider.exchange_profile.side_effect = OAuthError(OAuthError.SERVER_ERROR, "boom")

        response = self._callback(client, state, code="auth-code")

        assert _location(response)[1]["error"] == ["server_error"]
        resolver.oauth_login.assert_not_awaited()

    def test_resolver_crash_is_server_error(self, client, resolver, provider, state):
        resolver.oauth_login.side_effect = RuntimeError("db down")

        response = self._callback(client, state, code="auth-code")

        query = _location(response)[1]
        assert query["error"] == ["server_error"]
        assert "token" not in query


# ---------------------------------------------------------------------------
# /api/me and /api/verify
# ---------------------------------------------------------------------------

class TestCurrentUser:
    def test_me_with_valid_token(self, client, app, make_user):
        user = make_user(user_id=4)
        token = app.state.token_service.issue(user)

        with patch.object(
            app.state.token_service.user_service, "get_by_id", AsyncMock(return_value=user)
        ):
            response = client.get("/api/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json()["user"]["id"] == 4

    def test_verify_with_valid_token(self, client, app, make_user):
        user = make_user(user_id=4)
        token = app.state.token_service.issue(user)

        with patch.object(
            app.state.token_service.user_service, "get_by_id", AsyncMock(return_value=user)
        ):
            response = client.get("/api/verify", headers={"Authorization": f"Bearer {token}"})

        assert response.json()["valid"] is True

    def test_missing_header_401(self, client):
        assert client.get("/api/me").status_code == 401

    def test_invalid_token_401(self, client):
        response = client.get("/api/me", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or expired token"

    def test_deleted_user_401(self, client, app, make_user):
        token = app.state.token_service.issue(make_user(user_id=99))

        with patch.object(
            app.state.token_service.user_service, "get_by_id", AsyncMock(return_value=None)
        ):
            response = client.get("/api/verify", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
