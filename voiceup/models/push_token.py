from __future__ import annotations

import uuid
from datetime import datetime
from sqlalchemy import ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from voiceup.db.base import Base
from voiceup.db.types import UTCDateTime

class PushToken(Base):
    __tablename__ = "user_push_tokens"
    __table_args__ = (UniqueConstraint("user_id", "platform", name="uq_user_push_tokens_user_platform"),)
    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid(), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    fcm_token: Mapped[str] = mapped_column(String(512), nullable=False)
    platform: Mapped[str] = mapped_column(String(16), nullable=False)  # android|ios|web
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
