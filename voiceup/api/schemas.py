from __future__ import annotations
from pydantic import BaseModel, Field
from typing import List, Literal, Optional
from uuid import UUID
from datetime import datetime

from voiceup.schemas import FriendshipState

class RegisterIn(BaseModel):
    email: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=8, max_length=128)
    username: Optional[str] = Field(default=None, min_length=3, max_length=32)

class LoginIn(BaseModel):
    email: str
    password: str

class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: Optional[datetime] = None
    user_id: UUID

class ProfileUpdateIn(BaseModel):
    username: Optional[str] = Field(default=None, min_length=3, max_length=32)
    display_name: Optional[str] = Field(default=None, max_length=64)
    avatar_url: Optional[str] = Field(default=None, max_length=1024)
    bio: Optional[str] = Field(default=None, max_length=500)

class DirectChatIn(BaseModel):
    friend_id: UUID

class GroupChatIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    participant_ids: List[UUID] = Field(default_factory=list)

class ParticipantsIn(BaseModel):
    user_ids: List[UUID] = Field(min_length=1)

class TextMessageIn(BaseModel):
    content: str = Field(min_length=1, max_length=4000)

class UnreadOut(BaseModel):
    chat_id: UUID
    count: int

class FriendRequestIn(BaseModel):
    user_id: UUID

class FriendshipStateOut(BaseModel):
    user_id: UUID
    state: FriendshipState

class PushTokenIn(BaseModel):
    token: str = Field(min_length=1, max_length=512)
    platform: Literal["android", "ios", "web"] = "android"
