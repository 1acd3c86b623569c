from __future__ import annotations
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List
from uuid import UUID

from voiceup.api.deps import get_services
from voiceup.api.schemas import ProfileUpdateIn
from voiceup.schemas import ProfileOut
from voiceup.services.container import Services

router = APIRouter(prefix="/profiles", tags=["profiles"])

@router.get("/me", response_model=ProfileOut)
async def me(services: Services = Depends(get_services)):
    return await services.profiles.ensure_profile_exists()

@router.patch("/me", response_model=ProfileOut)
async def update_me(data: ProfileUpdateIn, services: Services = Depends(get_services)):
    return await services.profiles.update_current_profile(**data.model_dump(exclude_unset=True))

@router.get("/search", response_model=List[ProfileOut])
async def search(q: str = Query(min_length=1, max_length=64), services: Services = Depends(get_services)):
    return await services.friendships.search_users(q)

@router.get("/{user_id}", response_model=ProfileOut)
async def by_id(user_id: UUID, services: Services = Depends(get_services)):
    profile = await services.profiles.get_profile_by_id(user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile
