from __future__ import annotations

import uuid
from datetime import datetime
from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from voiceup.db.base import Base
from voiceup.db.types import UTCDateTime

class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_chat_created", "chat_id", "created_at"),
        CheckConstraint("message_type IN ('text', 'photo', 'voice')", name="ck_messages_type"),
    )
    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    chat_id: Mapped[uuid.UUID] = mapped_column(Uuid(), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    sender_id: Mapped[uuid.UUID] = mapped_column(Uuid(), ForeignKey("profiles.id"), nullable=False)
    message_type: Mapped[str] = mapped_column(String(16), nullable=False)  # text|photo|voice
    text_content: Mapped[str | None] = mapped_column(Text(), nullable=True)
    media_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    media_duration: Mapped[int | None] = mapped_column(Integer(), nullable=True)  # seconds, voice only
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean(), nullable=False, default=False)

class MessageReadStatus(Base):
    __tablename__ = "message_read_status"
    __table_args__ = (UniqueConstraint("message_id", "user_id", name="uq_message_read_status_message_user"),)
    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    message_id: Mapped[uuid.UUID] = mapped_column(Uuid(), ForeignKey("messages.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid(), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    read_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
