from __future__ import annotations

import uuid
from datetime import datetime
from sqlalchemy import CheckConstraint, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from voiceup.db.base import Base
from voiceup.db.types import UTCDateTime

class Friendship(Base):
    __tablename__ = "friendships"
    __table_args__ = (
        UniqueConstraint("user_id", "friend_id", name="uq_friendships_pair"),
        CheckConstraint("user_id <> friend_id", name="ck_friendships_not_self"),
    )
    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid(), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)  # initiator
    friend_id: Mapped[uuid.UUID] = mapped_column(Uuid(), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)  # recipient
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending|accepted|rejected|blocked
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
