"""Unit tests for admin API endpoints.

Tests /api/admin/users listing, stats, Excel and PDF exports and role changes
with mocked services and dependency overrides for authentication.
"""

from io import BytesIO
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from openpyxl import load_workbook

from social_auth.models.user import UserFilters, UserRole, UserStats
from social_auth.services.export_service import EXCEL_CONTENT_TYPE, PDF_CONTENT_TYPE


@pytest.fixture
def admin_user(make_user):
    return make_user(user_id=1, email="admin@example.com", role=UserRole.ADMIN)


@pytest.fixture
def dispatcher():
    return MagicMock()


@pytest.fixture
def client(app_client, admin_user, dispatcher):
    """All admin endpoints authenticated as admin_user by default."""
    from social_auth.api.dependencies import get_current_user, get_dispatcher, require_admin
    from social_auth.main import app

    app.dependency_overrides[get_current_user] = lambda: admin_user
    app.dependency_overrides[require_admin] = lambda: admin_user
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    return app_client


@pytest.fixture
def user_service():
    with patch("social_auth.api.admin.UserService") as MockUserService:
        yield MockUserService.return_value


# ---------------------------------------------------------------------------
# GET /api/admin/users
# ---------------------------------------------------------------------------

class TestListUsers:
    def test_paginated_list(self, client, user_service, make_user):
        user_service.list_users = AsyncMock(
            return_value=([make_user(user_id=i) for i in range(11, 21)], 25)
        )

        response = client.get("/api/admin/users?page=2&limit=10")

        assert response.status_code == 200
        data = response.json()
        assert len(data["users"]) == 10
        assert data["users"][0]["login_type"] == "Normal"
        assert data["pagination"] == {"page": 2, "limit": 10, "total": 25, "total_pages": 3}
        _, kwargs = user_service.list_users.await_args
        assert kwargs == {"limit": 10, "offset": 10}

    def test_filters_forwarded(self, client, user_service):
        user_service.list_users = AsyncMock(return_value=([], 0))

        client.get(
            "/api/admin/users",
            params={
                "search": " ali ",
                "login_type": "google",
                "sort_by": "email",
                "sort_order": "asc",
                "start_date": "2026-01-01T00:00:00Z",
            },
        )

        filters: UserFilters = user_service.list_users.await_args.args[0]
        assert filters.search == "ali"
        assert filters.login_type == "google"
        assert filters.sort_by == "email"
        assert filters.sort_order == "asc"
        assert filters.start_date.year == 2026

    def test_login_type_all_means_no_filter(self, client, user_service):
        user_service.list_users = AsyncMock(return_value=([], 0))

        client.get("/api/admin/users?login_type=all")

        assert user_service.list_users.await_args.args[0].login_type is None

    def test_bad_sort_column_400(self, client, user_service):
        response = client.get("/api/admin/users?sort_by=password_hash")

        assert response.status_code == 400

    def test_non_admin_forbidden(self, app_client, make_user):
        from social_auth.api.dependencies import get_current_user
        from social_auth.main import app

        app.dependency_overrides[get_current_user] = lambda: make_user(role=UserRole.USER)

        response = app_client.get("/api/admin/users")

        assert response.status_code == 403

    def test_unauthenticated_401(self, app_client):
        assert app_client.get("/api/admin/users").status_code == 401


# ---------------------------------------------------------------------------
# GET /api/admin/users/stats
# ---------------------------------------------------------------------------

class TestStats:
    def test_stats(self, client, user_service):
        user_service.get_stats = AsyncMock(
            return_value=UserStats(total=5, email_users=3, google_users=2, admin_users=1)
        )

        response = client.get("/api/admin/users/stats")

        assert response.json() == {
            "total": 5,
            "email_users": 3,
            "google_users": 2,
            "admin_users": 1,
        }


# ---------------------------------------------------------------------------
# GET /api/admin/users/export/{excel,pdf}
# ---------------------------------------------------------------------------

class TestExport:
    def test_export_returns_workbook_and_notifies(
        self, client, user_service, dispatcher, admin_user, make_user
    ):
        user_service.list_all_users = AsyncMock(
            return_value=[make_user(user_id=1), make_user(user_id=2, email="b@example.com")]
        )

        response = client.get("/api/admin/users/export/excel?login_type=email")

        assert response.status_code == 200
        assert response.headers["content-type"] == EXCEL_CONTENT_TYPE
        assert "users_export_" in response.headers["content-disposition"]
        sheet = load_workbook(BytesIO(response.content)).active
        assert sheet.max_row == 3
        assert user_service.list_all_users.await_args.args[0].login_type == "email"
        dispatcher.publish_excel_export.assert_called_once_with(admin_user)

    def test_pdf_export(self, client, user_service, dispatcher, make_user):
        user_service.list_all_users = AsyncMock(return_value=[make_user(user_id=1)])

        response = client.get("/api/admin/users/export/pdf?search=alice")

        assert response.status_code == 200
        assert response.headers["content-type"] == PDF_CONTENT_TYPE
        assert ".pdf" in response.headers["content-disposition"]
        assert response.content.startswith(b"%PDF-")
        assert user_service.list_all_users.await_args.args[0].search == "alice"
        dispatcher.publish_excel_export.assert_not_called()

    def test_pdf_export_requires_admin(self, app_client):
        response = app_client.get("/api/admin/users/export/pdf")

        assert response.status_code == 401


# ---------------------------------------------------------------------------
# Role changes
# ---------------------------------------------------------------------------

class TestRoles:
    def test_grant_admin(self, client, user_service, make_user):
        user_service.set_role = AsyncMock(
            return_value=make_user(user_id=5, role=UserRole.ADMIN)
        )

        response = client.post("/api/admin/users/5/grant-admin")

        assert response.status_code == 200
        assert response.json()["user"]["role"] == "admin"
        user_service.set_role.assert_awaited_once_with(5, UserRole.ADMIN)

    def test_grant_unknown_user_404(self, client, user_service):
        user_service.set_role = AsyncMock(return_value=None)

        assert client.post("/api/admin/users/404/grant-admin").status_code == 404

    def test_revoke_admin(self, client, user_service, make_user):
        user_service.set_role = AsyncMock(return_value=make_user(user_id=5))

        response = client.post("/api/admin/users/5/revoke-admin")

        assert response.status_code == 200
        assert response.json()["user"]["role"] == "user"
        user_service.set_role.assert_awaited_once_with(5, UserRole.USER)

    def test_cannot_revoke_self(self, client, user_service, admin_user):
        user_service.set_role = AsyncMock()

        response = client.post(f"/api/admin/users/{admin_user.id}/revoke-admin")

        assert response.status_code == 400
        user_service.set_role.assert_not_awaited()
