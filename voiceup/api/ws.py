from __future__ import annotations
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from uuid import UUID

from voiceup.core.errors import NotAuthenticatedError, PermissionDeniedError
from voiceup.core.logging import log
from voiceup.services.auth import AuthService, AuthState
from voiceup.services.container import Services
from voiceup.sync.signed_urls import SignedUrlResolver

router = APIRouter(tags=["realtime"])

@router.websocket("/ws/chats/{chat_id}")
async def chat_stream(websocket: WebSocket, chat_id: UUID, token: str = ""):
    """Push new messages of one chat, media links already signed."""
    client = websocket.app.state.backend
    state = AuthState()
    try:
        await AuthService(client, state).session_from_token(token)
    except NotAuthenticatedError:
        await websocket.close(code=4401)
        return
    services = Services.build(client, state)
    try:
        await services.chats.require_participant(chat_id)
    except PermissionDeniedError:
        await websocket.close(code=4403)
        return

    await websocket.accept()
    resolver = SignedUrlResolver(services.storage)

    async def push(message) -> None:
        resolved = await resolver.resolve_message(message)
        await websocket.send_json(resolved.model_dump(mode="json"))

    handle = services.messages.subscribe_to_messages(chat_id, push)
    try:
        # inbound frames are ignored; the loop only watches for disconnect
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        log.debug("chat stream closed chat=%s", chat_id)
    finally:
        await handle.close()
        resolver.clear()
