from __future__ import annotations
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from typing import List, Optional
from uuid import UUID
import os

from voiceup.api.deps import get_services
from voiceup.api.schemas import TextMessageIn, UnreadOut
from voiceup.core.settings import settings
from voiceup.schemas import MessageOut
from voiceup.services.container import Services

router = APIRouter(tags=["messages"])

def _extension(upload: UploadFile, default: str) -> str:
    return os.path.splitext(upload.filename or "")[1].lower() or default

@router.get("/chats/{chat_id}/messages", response_model=List[MessageOut])
async def list_messages(
    chat_id: UUID,
    limit: int = Query(default=settings.message_page_size, ge=1, le=200),
    before_id: Optional[UUID] = None,
    services: Services = Depends(get_services),
):
    return await services.messages.get_messages(chat_id, limit=limit, before_id=before_id)

@router.post("/chats/{chat_id}/messages", response_model=MessageOut, status_code=201)
async def send_text(chat_id: UUID, data: TextMessageIn, services: Services = Depends(get_services)):
    return await services.messages.send_text(chat_id, data.content)

@router.post("/chats/{chat_id}/messages/photo", response_model=MessageOut, status_code=201)
async def send_photo(chat_id: UUID, file: UploadFile = File(...), services: Services = Depends(get_services)):
    data = await file.read()
    return await services.messages.send_photo(
        chat_id, data, extension=_extension(file, ".jpg"), content_type=file.content_type or "image/jpeg"
    )

@router.post("/chats/{chat_id}/messages/voice", response_model=MessageOut, status_code=201)
async def send_voice(
    chat_id: UUID,
    duration: int = Form(..., ge=0),
    file: UploadFile = File(...),
    services: Services = Depends(get_services),
):
    data = await file.read()
    return await services.messages.send_voice(
        chat_id, data, duration, extension=_extension(file, ".m4a"), content_type=file.content_type or "audio/mp4"
    )

@router.post("/chats/{chat_id}/read")
async def mark_read(chat_id: UUID, services: Services = Depends(get_services)):
    await services.messages.mark_as_read(chat_id)
    return {"ok": True}

@router.get("/chats/{chat_id}/unread", response_model=UnreadOut)
async def unread(chat_id: UUID, services: Services = Depends(get_services)):
    return UnreadOut(chat_id=chat_id, count=await services.messages.get_unread_count(chat_id))

@router.delete("/messages/{message_id}", response_model=MessageOut)
async def delete_message(message_id: UUID, services: Services = Depends(get_services)):
    return await services.messages.delete_message(message_id)
