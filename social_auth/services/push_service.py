"""Push channel: Firebase Cloud Messaging fan-out with dead-token cleanup."""

import asyncio
import time
from typing import Optional, Protocol, Sequence

import httpx
import jwt
import structlog

from social_auth.config import Settings, get_settings
from social_auth.exceptions import PushProviderError
from social_auth.models.notification import (
    MulticastResult,
    NotificationPayload,
    TokenSendResult,
)
from social_auth.services.device_token_service import DeviceTokenService

logger = structlog.get_logger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
FCM_SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
FCM_SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"

# Refresh the OAuth access token this many seconds before it expires.
ACCESS_TOKEN_MARGIN = 60

WEBPUSH_ICON = "/icon-192x192.png"
WEBPUSH_BADGE = "/badge-72x72.png"


class PushProvider(Protocol):
    """Anything that can deliver one payload to many device tokens."""

    @property
    def configured(self) -> bool: ...

    async def send_multicast(
        self, tokens: Sequence[str], payload: NotificationPayload
    ) -> list[TokenSendResult]: ...


def is_invalid_token_error(error_code: Optional[str], message: str = "") -> bool:
    """Whether an FCM error means the token should never be used again."""
    if error_code == "UNREGISTERED":
        return True
    if error_code == "INVALID_ARGUMENT" and "registration token" in message.lower():
        return True
    return False


def _parse_fcm_error(response: httpx.Response) -> tuple[str, str]:
    """Pull (error_code, message) out of an FCM v1 error body."""
    try:
        error = response.json().get("error", {})
    except ValueError:
        return f"HTTP_{response.status_code}", response.text[:200]

    code = error.get("status") or f"HTTP_{response.status_code}"
    for detail in error.get("details", []):
        if detail.get("errorCode"):
            code = detail["errorCode"]
            break
    return code, error.get("message", "")


class FcmPushProvider:
    """FCM HTTP v1 client.

    Authenticates with the service-account JWT bearer grant. FCM v1 has no
    batch endpoint, so a multicast is one request per token, run
    concurrently on a shared client.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self._client = client
        self._access_token: Optional[str] = None
        self._access_token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return self.settings.firebase_configured

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.push_timeout_seconds)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _build_assertion(self, now: int) -> str:
        settings = self.settings
        claims = {
            "iss": settings.firebase_client_email,
            "scope": FCM_SCOPE,
            "aud": GOOGLE_TOKEN_URL,
            "iat": now,
            "exp": now + 3600,
        }
        return jwt.encode(claims, settings.firebase_private_key, algorithm="RS256")

    async def _get_access_token(self) -> str:
        async with self._token_lock:
            now = time.time()
            if self._access_token and now < self._access_token_expires_at - ACCESS_TOKEN_MARGIN:
                return self._access_token

            try:
                response = await self._get_client().post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                        "assertion": self._build_assertion(int(now)),
                    },
                )
                response.raise_for_status()
                body = response.json()
            except (httpx.HTTPError, ValueError) as e:
                raise PushProviderError(f"FCM authentication failed: {e}") from e

            self._access_token = body["access_token"]
            self._access_token_expires_at = now + int(body.get("expires_in", 3600))
            logger.debug("fcm_access_token_refreshed")
            return self._access_token

    def _build_message(self, token: str, payload: NotificationPayload) -> dict:
        notification = {"title": payload.title, "body": payload.body}
        if payload.image_url:
            notification["image"] = payload.image_url

        return {
            "message": {
                "token": token,
                "notification": notification,
                "data": payload.data,
                "webpush": {
                    "notification": {"icon": WEBPUSH_ICON, "badge": WEBPUSH_BADGE},
                    "fcm_options": {"link": payload.data.get("link", "/")},
                },
            }
        }

    async def _send_one(
        self, access_token: str, token: str, payload: NotificationPayload
    ) -> TokenSendResult:
        url = FCM_SEND_URL.format(project_id=self.settings.firebase_project_id)
        try:
            response = await self._get_client().post(
                url,
                json=self._build_message(token, payload),
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            logger.warning("fcm_send_transport_error", error=str(e))
            return TokenSendResult(token=token, success=False, error_code="TRANSPORT_ERROR")

        if response.is_success:
            return TokenSendResult(token=token, success=True)

        code, message = _parse_fcm_error(response)
        return TokenSendResult(
            token=token,
            success=False,
            error_code=code,
            token_invalid=is_invalid_token_error(code, message),
        )

    async def send_multicast(
        self, tokens: Sequence[str], payload: NotificationPayload
    ) -> list[TokenSendResult]:
        access_token = await self._get_access_token()
        return list(
            await asyncio.gather(
                *(self._send_one(access_token, token, payload) for token in tokens)
            )
        )


class PushService:
    """Fans a payload out to device tokens and deactivates dead ones."""

    def __init__(
        self,
        provider: Optional[PushProvider] = None,
        device_token_service: Optional[DeviceTokenService] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.provider = provider or FcmPushProvider(self.settings)
        self.device_token_service = device_token_service or DeviceTokenService()

    @property
    def configured(self) -> bool:
        return self.provider.configured

    async def send_to_tokens(
        self, tokens: Sequence[str], payload: NotificationPayload
    ) -> MulticastResult:
        """Send one multicast and act on per-token responses.

        Any token the provider reports as invalid or unregistered is
        deactivated immediately. Provider-level failures count every token
        as failed.
        """
        if not self.configured:
            logger.warning("push_skipped_unconfigured")
            return MulticastResult()
        if not tokens:
            return MulticastResult()

        try:
            responses = await asyncio.wait_for(
                self.provider.send_multicast(tokens, payload),
                timeout=self.settings.push_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(
                "push_multicast_timeout",
                token_count=len(tokens),
                timeout=self.settings.push_timeout_seconds,
            )
            return MulticastResult(failure_count=len(tokens))
        except Exception as e:
            logger.error("push_multicast_failed", token_count=len(tokens), error=str(e))
            return MulticastResult(failure_count=len(tokens))

        invalid = [r.token for r in responses if not r.success and r.token_invalid]
        if invalid:
            try:
                await self.device_token_service.deactivate_tokens(invalid)
            except Exception as e:
                logger.error("push_token_deactivation_failed", error=str(e))

        success = sum(1 for r in responses if r.success)
        return MulticastResult(
            success_count=success,
            failure_count=len(responses) - success,
            deactivated=invalid,
            responses=responses,
        )

    async def notify_admins(self, payload: NotificationPayload) -> MulticastResult:
        """Deliver to every active device of every admin."""
        if not self.configured:
            logger.warning("push_skipped_unconfigured")
            return MulticastResult()

        tokens = await self.device_token_service.list_active_admin_tokens()
        if not tokens:
            logger.info("push_no_active_admin_tokens")
            return MulticastResult()

        result = await self.send_to_tokens(tokens, payload)
        logger.info(
            "push_fanout_completed",
            audience="admins",
            success=result.success_count,
            failure=result.failure_count,
            tokens_deactivated=len(result.deactivated),
        )
        return result

