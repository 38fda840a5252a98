"""Device token (push endpoint) registration."""

from fastapi import APIRouter, Depends, HTTPException, status

from social_auth.api.dependencies import get_current_user
from social_auth.models.notification import (
    DeviceToken,
    RegisterDeviceTokenRequest,
    RemoveDeviceTokenRequest,
)
from social_auth.models.user import User
from social_auth.services.device_token_service import DeviceTokenService

router = APIRouter(prefix="/api/fcm", tags=["Devices"])


@router.post("/register")
async def register_token(
    request: RegisterDeviceTokenRequest,
    current_user: User = Depends(get_current_user),
) -> dict:
    """Register or refresh a push token for the caller.

    Registering the same token again reactivates it.
    """
    service = DeviceTokenService()
    device = await service.register_token(
        current_user.id,
        request.token,
        device_type=request.device_type,
        device_name=request.device_name,
    )
    return {"message": "Device token registered", "device": device}


@router.post("/remove")
async def remove_token(
    request: RemoveDeviceTokenRequest,
    current_user: User = Depends(get_current_user),
) -> dict:
    """Delete one of the caller's push tokens.

    Raises:
        HTTPException 404: If the caller has no such token
    """
    service = DeviceTokenService()
    removed = await service.remove_token(current_user.id, request.token)

    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Device token not found",
        )

    return {"message": "Device token removed"}


@router.get("/tokens")
async def list_tokens(
    current_user: User = Depends(get_current_user),
) -> list[DeviceToken]:
    """Active push tokens of the caller."""
    service = DeviceTokenService()
    return await service.list_active_for_user(current_user.id)
