from __future__ import annotations

import uuid
from typing import Awaitable, Callable, Iterable

from voiceup.core.errors import ConflictError, InvalidRequestError, PermissionDeniedError, RecordNotFoundError, operation
from voiceup.core.logging import log
from voiceup.db.client import BackendClient
from voiceup.models import Chat, ChatParticipant
from voiceup.schemas import ChatOut, ChatParticipantOut
from voiceup.services.auth import AuthState
from voiceup.services.realtime import SubscriptionHandle, forward

def direct_key(a: uuid.UUID, b: uuid.UUID) -> str:
    """Order-independent key of a user pair."""
    low, high = sorted((str(a), str(b)))
    return f"{low}:{high}"

class ChatService:
    def __init__(self, client: BackendClient, auth: AuthState) -> None:
        self.client = client
        self.auth = auth

    @operation("create direct chat")
    async def create_direct_chat(self, friend_id: uuid.UUID) -> ChatOut:
        """Return the direct chat between the caller and ``friend_id``,
        creating it on first use. Both users get the same chat whichever
        side asks first."""
        me = self.auth.require_user_id()
        if friend_id == me:
            raise InvalidRequestError("Cannot start a chat with yourself")
        key = direct_key(me, friend_id)
        existing = await self.client.table(Chat).eq("direct_key", key).maybe_single()
        if existing is None:
            chat_id = uuid.uuid4()
            try:
                (chat,), _ = await self.client.insert_together(
                    (Chat, [{"id": chat_id, "is_group": False, "created_by": me, "direct_key": key}]),
                    (ChatParticipant, [{"chat_id": chat_id, "user_id": uid} for uid in (me, friend_id)]),
                )
            except ConflictError:
                # the other side created it concurrently
                existing = await self.client.table(Chat).eq("direct_key", key).single()
            else:
                log.info("direct chat created chat=%s", chat.id)
                return ChatOut.decode(chat)
        # both sides always belong to their direct chat, even after leaving it
        await self.client.table(ChatParticipant).insert_ignoring_conflicts(
            [{"chat_id": existing.id, "user_id": uid} for uid in (me, friend_id)],
            on_conflict=("chat_id", "user_id"),
        )
        return ChatOut.decode(existing)

    @operation("create group chat")
    async def create_group_chat(self, name: str, participant_ids: Iterable[uuid.UUID]) -> ChatOut:
        me = self.auth.require_user_id()
        name = name.strip()
        if not name:
            raise InvalidRequestError("Group chats need a name")
        chat_id = uuid.uuid4()
        members = list(dict.fromkeys([me, *participant_ids]))
        (chat,), _ = await self.client.insert_together(
            (Chat, [{"id": chat_id, "name": name, "is_group": True, "created_by": me}]),
            (ChatParticipant, [{"chat_id": chat_id, "user_id": uid} for uid in members]),
        )
        return ChatOut.decode(chat)

    @operation("get chats")
    async def get_chats(self) -> list[ChatOut]:
        """Chats the caller takes part in, most recently active first."""
        me = self.auth.require_user_id()
        memberships = await self.client.table(ChatParticipant).eq("user_id", me).fetch()
        if not memberships:
            return []
        rows = await self.client.table(Chat).in_("id", [m.chat_id for m in memberships]).order("updated_at", desc=True).fetch()
        return [ChatOut.decode(r) for r in rows]

    @operation("get chat")
    async def get_chat_by_id(self, chat_id: uuid.UUID) -> ChatOut:
        await self.require_participant(chat_id)
        return ChatOut.decode(await self.client.table(Chat).eq("id", chat_id).single())

    @operation("get chat participants")
    async def get_chat_participants(self, chat_id: uuid.UUID) -> list[ChatParticipantOut]:
        await self.require_participant(chat_id)
        rows = await self.client.table(ChatParticipant).eq("chat_id", chat_id).order("joined_at").fetch()
        return [ChatParticipantOut.decode(r) for r in rows]

    @operation("check chat membership")
    async def require_participant(self, chat_id: uuid.UUID) -> ChatParticipantOut:
        me = self.auth.require_user_id()
        row = await self.client.table(ChatParticipant).eq("chat_id", chat_id).eq("user_id", me).maybe_single()
        if row is None:
            raise PermissionDeniedError("Not a participant of this chat")
        return ChatParticipantOut.decode(row)

    @operation("leave chat")
    async def leave_chat(self, chat_id: uuid.UUID) -> None:
        me = self.auth.require_user_id()
        removed = await self.client.table(ChatParticipant).eq("chat_id", chat_id).eq("user_id", me).delete()
        if not removed:
            raise RecordNotFoundError("Not a participant of this chat")

    @operation("add participants")
    async def add_participants(self, chat_id: uuid.UUID, user_ids: Iterable[uuid.UUID]) -> list[ChatParticipantOut]:
        chat = await self.get_chat_by_id(chat_id)
        if not chat.is_group:
            raise InvalidRequestError("Participants can only be added to group chats")
        rows = await self.client.table(ChatParticipant).insert_ignoring_conflicts(
            [{"chat_id": chat_id, "user_id": uid} for uid in dict.fromkeys(user_ids)],
            on_conflict=("chat_id", "user_id"),
        )
        return [ChatParticipantOut.decode(r) for r in rows]

    def subscribe_to_chats(self, callback: Callable[[list[ChatOut]], Awaitable[None] | None]) -> SubscriptionHandle:
        """Reload the caller's chat list on every change to the chats table."""
        self.auth.require_user_id()
        subscription = self.client.broker.subscribe("chats")

        async def reload(_change) -> None:
            result = callback(await self.get_chats())
            if result is not None:
                await result

        return forward(subscription, reload)
