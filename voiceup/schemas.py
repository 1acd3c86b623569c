"""Typed records handed out by the services.

Rows arrive either as ORM objects or as decoded realtime payloads; both go
through these models, which reject unknown fields instead of guessing.
"""
from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, model_validator

class MessageType(str, enum.Enum):
    TEXT = "text"
    PHOTO = "photo"
    VOICE = "voice"

class FriendshipStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    BLOCKED = "blocked"

class FriendshipState(str, enum.Enum):
    """Relationship between the caller and another user, derived from rows."""

    NONE = "none"
    PENDING_OUTGOING = "pending_outgoing"
    PENDING_INCOMING = "pending_incoming"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    BLOCKED = "blocked"

class Record(BaseModel):
    model_config = ConfigDict(extra="forbid", from_attributes=True, frozen=True)

    @classmethod
    def decode(cls, data: Any):
        return cls.model_validate(data)

class ProfileOut(Record):
    id: UUID
    email: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def display_label(self) -> str:
        return self.display_name or self.username or self.email

class ChatOut(Record):
    id: UUID
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    is_group: bool = False
    created_by: Optional[UUID] = None
    direct_key: Optional[str] = None
    created_at: datetime
    updated_at: datetime

class ChatParticipantOut(Record):
    id: UUID
    chat_id: UUID
    user_id: UUID
    joined_at: datetime
    last_read_at: datetime

class MessageOut(Record):
    id: UUID
    chat_id: UUID
    sender_id: UUID
    message_type: MessageType
    text_content: Optional[str] = None
    media_url: Optional[str] = None
    media_duration: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    is_deleted: bool = False

    @model_validator(mode="after")
    def _check_content(self) -> "MessageOut":
        if self.message_type is MessageType.TEXT:
            if self.text_content is None:
                raise ValueError("text message without text_content")
            if self.media_url is not None or self.media_duration is not None:
                raise ValueError("text message with media fields")
        else:
            if not self.media_url:
                raise ValueError(f"{self.message_type.value} message without media_url")
            if self.message_type is MessageType.VOICE and self.media_duration is None:
                raise ValueError("voice message without media_duration")
        return self

    @property
    def has_media(self) -> bool:
        return self.message_type in (MessageType.PHOTO, MessageType.VOICE) and bool(self.media_url)

class MessageReadStatusOut(Record):
    id: UUID
    message_id: UUID
    user_id: UUID
    read_at: datetime

PREVIEW_LABELS = {MessageType.PHOTO: "📷 Photo", MessageType.VOICE: "🎤 Voice message"}

def message_preview(message: MessageOut) -> str:
    """One-line text for a message in the chat list."""
    if message.message_type is MessageType.TEXT:
        return message.text_content or ""
    return PREVIEW_LABELS[message.message_type]

class ChatSummaryOut(ChatOut):
    """A chat as listed: last message, unread count and the other member of a direct chat."""

    other_user: Optional[ProfileOut] = None
    last_message: Optional[MessageOut] = None
    last_message_preview: Optional[str] = None
    unread_count: int = 0

    @property
    def last_activity_at(self) -> datetime:
        return self.last_message.created_at if self.last_message else self.updated_at

class FriendshipOut(Record):
    id: UUID
    user_id: UUID
    friend_id: UUID
    status: FriendshipStatus
    created_at: datetime
    updated_at: Optional[datetime] = None

class FriendItem(Record):
    friendship_id: UUID
    profile: ProfileOut
    friends_since: datetime

class FriendRequestItem(Record):
    friendship_id: UUID
    profile: ProfileOut
    requested_at: datetime
    is_incoming: bool
