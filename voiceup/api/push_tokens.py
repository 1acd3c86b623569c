from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException

from voiceup.api.deps import get_auth_state, get_backend
from voiceup.api.schemas import PushTokenIn
from voiceup.db.client import BackendClient
from voiceup.services.auth import AuthState
from voiceup.services.notifications import PLATFORMS, NotificationService

router = APIRouter(prefix="/push-tokens", tags=["push"])

@router.put("")
async def save(data: PushTokenIn, client: BackendClient = Depends(get_backend), state: AuthState = Depends(get_auth_state)):
    saved = await NotificationService(client, state, platform=data.platform).save_token(data.token)
    if not saved:
        raise HTTPException(status_code=502, detail="Could not save push token")
    return {"ok": True}

@router.delete("/{platform}")
async def delete(platform: str, client: BackendClient = Depends(get_backend), state: AuthState = Depends(get_auth_state)):
    if platform not in PLATFORMS:
        raise HTTPException(status_code=404, detail="Unknown platform")
    deleted = await NotificationService(client, state, platform=platform).delete_token()
    if not deleted:
        raise HTTPException(status_code=502, detail="Could not delete push token")
    return {"ok": True}
