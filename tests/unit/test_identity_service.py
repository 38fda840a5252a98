"""Unit tests for IdentityResolver password and OAuth flows."""

from datetime import datetime, timezone
from typing import Optional
from unittest.mock import MagicMock

import asyncpg
import pytest

from social_auth.exceptions import (
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    OAuthError,
    OAuthOnlyAccountError,
)
from social_auth.models.auth import OAuthProfile
from social_auth.models.user import AuthProvider, User, UserRole
from social_auth.services.identity_service import IdentityResolver
from social_auth.services.token_service import TokenService


class InMemoryUserService:
    """Just enough of UserService to exercise the resolver."""

    def __init__(self):
        self.users: dict[int, User] = {}
        self.hashes: dict[int, Optional[str]] = {}
        self._next_id = 1

    async def create_user(
        self,
        email,
        provider,
        full_name=None,
        password_hash=None,
        provider_id=None,
        avatar_url=None,
        role=UserRole.USER,
    ) -> User:
        if any(u.email == email for u in self.users.values()):
            raise asyncpg.UniqueViolationError("duplicate key value")
        now = datetime.now(timezone.utc)
        user = User(
            id=self._next_id,
            full_name=full_name,
            email=email,
            provider=provider,
            provider_id=provider_id,
            avatar_url=avatar_url,
            role=role,
            created_at=now,
            updated_at=now,
        )
        self.users[user.id] = user
        self.hashes[user.id] = password_hash
        self._next_id += 1
        return user

    async def get_by_email(self, email):
        for user in self.users.values():
            if user.email == email.lower():
                return user, self.hashes[user.id]
        return None

    async def get_by_id(self, user_id):
        return self.users.get(user_id)

    async def update_oauth_profile(
        self, user_id, provider_id, avatar_url, full_name, provider=None
    ):
        user = self.users.get(user_id)
        if user is None:
            return None
        updated = user.model_copy(
            update={
                "provider_id": provider_id,
                "avatar_url": avatar_url,
                "full_name": full_name,
                "provider": provider or user.provider,
                "updated_at": datetime.now(timezone.utc),
            }
        )
        self.users[user_id] = updated
        return updated


@pytest.fixture
def users():
    return InMemoryUserService()


@pytest.fixture
def dispatcher():
    return MagicMock()


@pytest.fixture
def token_service(users):
    return TokenService(secret="identity-tests", user_service=users)


@pytest.fixture
def resolver(users, token_service, dispatcher):
    return IdentityResolver(users, token_service, dispatcher)


def _profile(**overrides) -> OAuthProfile:
    data = {
        "external_id": "google-sub-1",
        "email": "alice@example.com",
        "name": "Alice From Google",
        "avatar_url": "https://lh3.googleusercontent.com/a/alice",
        "email_verified": True,
    }
    data.update(overrides)
    return OAuthProfile(**data)


class TestPasswordFlow:
    @pytest.mark.asyncio
    async def test_register_login_resolve(self, resolver, token_service, dispatcher):
        registered = await resolver.register("Alice", "alice@example.com", "secret123")

        assert registered.created is True
        assert (await token_service.resolve_user(registered.token)).id == registered.user.id
        dispatcher.publish_user_registered.assert_called_once()
        assert dispatcher.publish_user_registered.call_args.args[1] == "Email"

        logged_in = await resolver.login("alice@example.com", "secret123")

        resolved = await token_service.resolve_user(logged_in.token)
        assert resolved.id == registered.user.id
        dispatcher.publish_user_login.assert_called_once()

    @pytest.mark.asyncio
    async def test_password_is_hashed(self, resolver, users):
        result = await resolver.register("Alice", "alice@example.com", "secret123")

        assert users.hashes[result.user.id] != "secret123"
        assert users.hashes[result.user.id].startswith("$2")

    @pytest.mark.asyncio
    async def test_duplicate_registration_conflicts(self, resolver, users, dispatcher):
        await resolver.register("Alice", "alice@example.com", "secret123")

        with pytest.raises(EmailAlreadyRegisteredError):
            await resolver.register("Other", "alice@example.com", "different1")

        assert len(users.users) == 1
        assert dispatcher.publish_user_registered.call_count == 1

    @pytest.mark.asyncio
    async def test_racing_registration_becomes_conflict(self, resolver, users):
        async def not_found(email):
            return None

        users.get_by_email = not_found
        await resolver.register("Alice", "alice@example.com", "secret123")

        with pytest.raises(EmailAlreadyRegisteredError):
            await resolver.register("Alice", "alice@example.com", "secret123")

    @pytest.mark.asyncio
    async def test_wrong_password_and_unknown_email_look_the_same(self, resolver, dispatcher):
        await resolver.register("Alice", "alice@example.com", "secret123")

        with pytest.raises(InvalidCredentialsError) as wrong:
            await resolver.login("alice@example.com", "nope")
        with pytest.raises(InvalidCredentialsError) as unknown:
            await resolver.login("bob@example.com", "secret123")

        assert str(wrong.value) == str(unknown.value) == "Invalid email or password"
        dispatcher.publish_user_login.assert_not_called()

    @pytest.mark.asyncio
    async def test_oauth_only_account_gets_hint(self, resolver, dispatcher):
        await resolver.oauth_login(_profile())

        with pytest.raises(OAuthOnlyAccountError) as exc_info:
            await resolver.login("alice@example.com", "anything")

        assert str(exc_info.value) == (
            "This account uses Google login. Please sign in with Google."
        )


class TestOAuthFlow:
    @pytest.mark.asyncio
    async def test_first_login_creates_then_updates(self, resolver, users, dispatcher):
        first = await resolver.oauth_login(_profile())

        assert first.created is True
        assert first.user.provider == AuthProvider.GOOGLE
        assert users.hashes[first.user.id] is None
        assert dispatcher.publish_user_registered.call_args.args[1] == "Google"

        second = await resolver.oauth_login(
            _profile(name="Alice Renamed", avatar_url="https://img/new")
        )

        assert second.created is False
        assert second.user.id == first.user.id
        assert second.user.full_name == "Alice Renamed"
        assert second.user.avatar_url == "https://img/new"
        assert len(users.users) == 1
        dispatcher.publish_user_login.assert_called_once()

    @pytest.mark.asyncio
    async def test_linking_keeps_password(self, resolver, users):
        registered = await resolver.register("Alice", "alice@example.com", "secret123")
        original_hash = users.hashes[registered.user.id]

        linked = await resolver.oauth_login(_profile())

        assert linked.user.id == registered.user.id
        assert linked.user.provider == AuthProvider.GOOGLE
        assert linked.user.provider_id == "google-sub-1"
        assert users.hashes[registered.user.id] == original_hash

        # Password login still works after linking
        again = await resolver.login("alice@example.com", "secret123")
        assert again.user.id == registered.user.id

    @pytest.mark.asyncio
    async def test_profile_email_is_case_insensitive(self, resolver, users):
        await resolver.register("Alice", "alice@example.com", "secret123")

        result = await resolver.oauth_login(_profile(email="Alice@Example.COM"))

        assert result.created is False
        assert len(users.users) == 1

    @pytest.mark.asyncio
    async def test_link_policy_can_refuse(self, users, token_service, dispatcher):
        resolver = IdentityResolver(
            users, token_service, dispatcher, link_policy=lambda existing, profile: False
        )
        await resolver.register("Alice", "alice@example.com", "secret123")

        with pytest.raises(OAuthError) as exc_info:
            await resolver.oauth_login(_profile())

        assert exc_info.value.code == OAuthError.LINK_DENIED
        dispatcher.publish_user_login.assert_not_called()

    @pytest.mark.asyncio
    async def test_unverified_email_is_not_linked(self, resolver, users, dispatcher):
        await resolver.register("Alice", "alice@example.com", "secret123")

        with pytest.raises(OAuthError) as exc_info:
            await resolver.oauth_login(_profile(email_verified=False))

        assert exc_info.value.code == OAuthError.LINK_DENIED
        stored, _ = await users.get_by_email("alice@example.com")
        assert stored.provider == AuthProvider.EMAIL
        assert stored.provider_id is None

    @pytest.mark.asyncio
    async def test_unverified_email_can_still_create(self, resolver):
        result = await resolver.oauth_login(_profile(email_verified=False))

        assert result.created is True

    @pytest.mark.asyncio
    async def test_concurrent_create_falls_back_to_merge(self, resolver, users):
        await users.create_user(email="alice@example.com", provider=AuthProvider.GOOGLE)
        real_get = users.get_by_email
        lookups = []

        async def first_miss(email):
            lookups.append(email)
            if len(lookups) == 1:
                return None
            return await real_get(email)

        users.get_by_email = first_miss

        result = await resolver.oauth_login(_profile())

        assert result.created is False
        assert len(users.users) == 1
