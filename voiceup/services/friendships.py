from __future__ import annotations

import uuid
from typing import Iterable

from voiceup.core.errors import InvalidRequestError, RecordNotFoundError, operation
from voiceup.db.client import BackendClient
from voiceup.models import Friendship, Profile
from voiceup.schemas import (
    FriendItem,
    FriendRequestItem,
    FriendshipOut,
    FriendshipState,
    FriendshipStatus,
    ProfileOut,
)
from voiceup.services.auth import AuthState

SEARCH_LIMIT = 20

_OUTGOING = {
    FriendshipStatus.PENDING: FriendshipState.PENDING_OUTGOING,
    FriendshipStatus.ACCEPTED: FriendshipState.ACCEPTED,
    FriendshipStatus.REJECTED: FriendshipState.REJECTED,
    FriendshipStatus.BLOCKED: FriendshipState.BLOCKED,
}
_INCOMING = {**_OUTGOING, FriendshipStatus.PENDING: FriendshipState.PENDING_INCOMING}

def derive_friendship_state(rows: Iterable[FriendshipOut], me: uuid.UUID, other: uuid.UUID) -> FriendshipState:
    """Collapse the directed rows between ``me`` and ``other`` into one state.

    Rows are examined in order and the last relevant one wins; with the
    unique (user_id, friend_id) constraint there is at most one per direction.
    """
    state = FriendshipState.NONE
    for row in rows:
        if row.user_id == me and row.friend_id == other:
            state = _OUTGOING[row.status]
        elif row.user_id == other and row.friend_id == me:
            state = _INCOMING[row.status]
    return state

class FriendshipService:
    def __init__(self, client: BackendClient, auth: AuthState) -> None:
        self.client = client
        self.auth = auth

    @operation("search users")
    async def search_users(self, query: str) -> list[ProfileOut]:
        me = self.auth.require_user_id()
        term = query.strip()
        if not term:
            return []
        # LIKE wildcards in the term are matched literally
        escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        rows = await (
            self.client.table(Profile)
            .neq("id", me)
            .or_(("username", "ilike", pattern), ("display_name", "ilike", pattern), ("email", "ilike", pattern))
            .order("username")
            .limit(SEARCH_LIMIT)
            .fetch()
        )
        return [ProfileOut.decode(r) for r in rows]

    async def _pair_rows(self, me: uuid.UUID, other: uuid.UUID) -> list[FriendshipOut]:
        rows = await (
            self.client.table(Friendship)
            .or_({"user_id": me, "friend_id": other}, {"user_id": other, "friend_id": me})
            .order("created_at")
            .fetch()
        )
        return [FriendshipOut.decode(r) for r in rows]

    @operation("get friendship state")
    async def get_friendship_state(self, other_user_id: uuid.UUID) -> FriendshipState:
        me = self.auth.require_user_id()
        return derive_friendship_state(await self._pair_rows(me, other_user_id), me, other_user_id)

    @operation("get friendship")
    async def get_friendship(self, other_user_id: uuid.UUID) -> FriendshipOut | None:
        me = self.auth.require_user_id()
        rows = await self._pair_rows(me, other_user_id)
        return rows[-1] if rows else None

    @operation("send friend request")
    async def send_friend_request(self, other_user_id: uuid.UUID) -> FriendshipOut:
        me = self.auth.require_user_id()
        if other_user_id == me:
            raise InvalidRequestError("Cannot send friend request to yourself")
        row = await self.client.table(Friendship).insert({
            "user_id": me,
            "friend_id": other_user_id,
            "status": FriendshipStatus.PENDING.value,
            "updated_at": None,
        })
        return FriendshipOut.decode(row)

    @operation("accept friend request")
    async def accept_friend_request(self, friendship_id: uuid.UUID) -> FriendshipOut:
        me = self.auth.require_user_id()
        rows = await (
            self.client.table(Friendship)
            .eq("id", friendship_id)
            .eq("friend_id", me)
            .update({"status": FriendshipStatus.ACCEPTED.value, "updated_at": self.client.now()})
        )
        if not rows:
            raise RecordNotFoundError("No incoming friend request with this id")
        return FriendshipOut.decode(rows[0])

    async def _delete(self, query, missing: str) -> None:
        if not await query.delete():
            raise RecordNotFoundError(missing)

    @operation("reject friend request")
    async def reject_friend_request(self, friendship_id: uuid.UUID) -> None:
        # the row is removed, so the pair may send a new request later
        me = self.auth.require_user_id()
        await self._delete(
            self.client.table(Friendship).eq("id", friendship_id).eq("friend_id", me),
            "No incoming friend request with this id",
        )

    @operation("cancel friend request")
    async def cancel_friend_request(self, friendship_id: uuid.UUID) -> None:
        me = self.auth.require_user_id()
        await self._delete(
            self.client.table(Friendship).eq("id", friendship_id).eq("user_id", me).eq("status", FriendshipStatus.PENDING.value),
            "No pending outgoing request with this id",
        )

    @operation("unfriend")
    async def unfriend(self, friendship_id: uuid.UUID) -> None:
        me = self.auth.require_user_id()
        await self._delete(
            self.client.table(Friendship)
            .eq("id", friendship_id)
            .or_({"user_id": me}, {"friend_id": me})
            .eq("status", FriendshipStatus.ACCEPTED.value),
            "No friendship with this id",
        )

    async def _profiles(self, ids: list[uuid.UUID]) -> dict[uuid.UUID, ProfileOut]:
        if not ids:
            return {}
        rows = await self.client.table(Profile).in_("id", ids).fetch()
        return {r.id: ProfileOut.decode(r) for r in rows}

    @operation("get friends")
    async def get_friends(self) -> list[FriendItem]:
        me = self.auth.require_user_id()
        rows = await (
            self.client.table(Friendship)
            .or_({"user_id": me}, {"friend_id": me})
            .eq("status", FriendshipStatus.ACCEPTED.value)
            .order("created_at")
            .fetch()
        )
        other = {r.id: (r.friend_id if r.user_id == me else r.user_id) for r in rows}
        profiles = await self._profiles(list(other.values()))
        return [
            FriendItem(friendship_id=r.id, profile=profiles[other[r.id]], friends_since=r.created_at)
            for r in rows
            if other[r.id] in profiles
        ]

    async def _requests(self, incoming: bool) -> list[FriendRequestItem]:
        me = self.auth.require_user_id()
        column = "friend_id" if incoming else "user_id"
        rows = await (
            self.client.table(Friendship)
            .eq(column, me)
            .eq("status", FriendshipStatus.PENDING.value)
            .order("created_at", desc=True)
            .fetch()
        )
        other = {r.id: (r.user_id if incoming else r.friend_id) for r in rows}
        profiles = await self._profiles(list(other.values()))
        return [
            FriendRequestItem(friendship_id=r.id, profile=profiles[other[r.id]], requested_at=r.created_at, is_incoming=incoming)
            for r in rows
            if other[r.id] in profiles
        ]

    @operation("get incoming requests")
    async def get_incoming_requests(self) -> list[FriendRequestItem]:
        return await self._requests(incoming=True)

    @operation("get outgoing requests")
    async def get_outgoing_requests(self) -> list[FriendRequestItem]:
        return await self._requests(incoming=False)
