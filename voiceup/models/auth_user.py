from __future__ import annotations

import uuid
from datetime import datetime
from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from voiceup.db.base import Base
from voiceup.db.types import UTCDateTime

class AuthUser(Base):
    __tablename__ = "auth_users"
    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(254), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    last_sign_in_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
