from __future__ import annotations
from fastapi import APIRouter, Depends
from typing import List
from uuid import UUID

from voiceup.api.deps import get_services
from voiceup.api.schemas import FriendRequestIn, FriendshipStateOut
from voiceup.schemas import FriendItem, FriendRequestItem, FriendshipOut
from voiceup.services.container import Services

router = APIRouter(prefix="/friends", tags=["friends"])

@router.get("", response_model=List[FriendItem])
async def friends(services: Services = Depends(get_services)):
    return await services.friendships.get_friends()

@router.get("/requests/incoming", response_model=List[FriendRequestItem])
async def incoming(services: Services = Depends(get_services)):
    return await services.friendships.get_incoming_requests()

@router.get("/requests/outgoing", response_model=List[FriendRequestItem])
async def outgoing(services: Services = Depends(get_services)):
    return await services.friendships.get_outgoing_requests()

@router.get("/state/{user_id}", response_model=FriendshipStateOut)
async def state(user_id: UUID, services: Services = Depends(get_services)):
    return FriendshipStateOut(user_id=user_id, state=await services.friendships.get_friendship_state(user_id))

@router.post("/requests", response_model=FriendshipOut, status_code=201)
async def send_request(data: FriendRequestIn, services: Services = Depends(get_services)):
    return await services.friendships.send_friend_request(data.user_id)

@router.post("/requests/{friendship_id}/accept", response_model=FriendshipOut)
async def accept(friendship_id: UUID, services: Services = Depends(get_services)):
    return await services.friendships.accept_friend_request(friendship_id)

@router.post("/requests/{friendship_id}/reject")
async def reject(friendship_id: UUID, services: Services = Depends(get_services)):
    await services.friendships.reject_friend_request(friendship_id)
    return {"ok": True}

@router.delete("/requests/{friendship_id}")
async def cancel(friendship_id: UUID, services: Services = Depends(get_services)):
    await services.friendships.cancel_friend_request(friendship_id)
    return {"ok": True}

@router.delete("/{friendship_id}")
async def unfriend(friendship_id: UUID, services: Services = Depends(get_services)):
    await services.friendships.unfriend(friendship_id)
    return {"ok": True}
