from __future__ import annotations
from fastapi import APIRouter, Depends
from typing import List
from uuid import UUID

from voiceup.api.deps import get_services
from voiceup.api.schemas import DirectChatIn, GroupChatIn, ParticipantsIn
from voiceup.schemas import ChatOut, ChatParticipantOut, ChatSummaryOut
from voiceup.services.container import Services

router = APIRouter(prefix="/chats", tags=["chats"])

@router.get("", response_model=List[ChatSummaryOut])
async def list_chats(services: Services = Depends(get_services)):
    return await services.messages.get_chat_summaries()

@router.post("/direct", response_model=ChatOut)
async def start_direct(data: DirectChatIn, services: Services = Depends(get_services)):
    return await services.chats.create_direct_chat(data.friend_id)

@router.post("/group", response_model=ChatOut, status_code=201)
async def create_group(data: GroupChatIn, services: Services = Depends(get_services)):
    return await services.chats.create_group_chat(data.name, data.participant_ids)

@router.get("/{chat_id}", response_model=ChatOut)
async def get_chat(chat_id: UUID, services: Services = Depends(get_services)):
    return await services.chats.get_chat_by_id(chat_id)

@router.get("/{chat_id}/participants", response_model=List[ChatParticipantOut])
async def participants(chat_id: UUID, services: Services = Depends(get_services)):
    return await services.chats.get_chat_participants(chat_id)

@router.post("/{chat_id}/participants", response_model=List[ChatParticipantOut])
async def add_participants(chat_id: UUID, data: ParticipantsIn, services: Services = Depends(get_services)):
    return await services.chats.add_participants(chat_id, data.user_ids)

@router.delete("/{chat_id}/participants/me")
async def leave(chat_id: UUID, services: Services = Depends(get_services)):
    await services.chats.leave_chat(chat_id)
    return {"ok": True}
