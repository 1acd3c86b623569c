from __future__ import annotations

import uuid

from voiceup.core.errors import InvalidRequestError, operation
from voiceup.db.client import BackendClient
from voiceup.models import Profile
from voiceup.schemas import ProfileOut
from voiceup.services.auth import AuthState

EDITABLE_FIELDS = frozenset({"username", "display_name", "avatar_url", "bio"})

class ProfileService:
    def __init__(self, client: BackendClient, auth: AuthState) -> None:
        self.client = client
        self.auth = auth

    @operation("fetch profile")
    async def get_current_profile(self) -> ProfileOut | None:
        user_id = self.auth.current_user_id
        if user_id is None:
            return None
        return await self.get_profile_by_id(user_id)

    @operation("fetch profile")
    async def get_profile_by_id(self, user_id: uuid.UUID) -> ProfileOut | None:
        row = await self.client.table(Profile).eq("id", user_id).maybe_single()
        return ProfileOut.decode(row) if row is not None else None

    @operation("update profile")
    async def update_current_profile(self, **updates) -> ProfileOut:
        user_id = self.auth.require_user_id()
        unknown = set(updates) - EDITABLE_FIELDS
        if unknown:
            raise InvalidRequestError(f"cannot update {', '.join(sorted(unknown))}")
        updates["updated_at"] = self.client.now()
        rows = await self.client.table(Profile).eq("id", user_id).update(updates)
        if not rows:
            await self.ensure_profile_exists()
            rows = await self.client.table(Profile).eq("id", user_id).update(updates)
        return ProfileOut.decode(rows[0])

    @operation("ensure profile exists")
    async def ensure_profile_exists(self) -> ProfileOut:
        user_id = self.auth.require_user_id()
        row = await self.client.table(Profile).eq("id", user_id).maybe_single()
        if row is None:
            row = await self.client.table(Profile).insert({"id": user_id, "email": self.auth.session.email})
        return ProfileOut.decode(row)
