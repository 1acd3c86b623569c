"""Sending, paging, read tracking and live delivery of chat messages."""
from __future__ import annotations

import inspect
import uuid
from typing import Awaitable, Callable

from pydantic import ValidationError

from voiceup.core.errors import InvalidRequestError, RecordNotFoundError, operation
from voiceup.core.logging import log
from voiceup.core.settings import settings
from voiceup.db.client import BackendClient
from voiceup.models import Chat, ChatParticipant, Message, MessageReadStatus, Profile
from voiceup.schemas import ChatSummaryOut, MessageOut, MessageType, ProfileOut, message_preview
from voiceup.services.auth import AuthState
from voiceup.services.chats import ChatService
from voiceup.services.realtime import EventType, Subscription, forward
from voiceup.services.storage import StorageService

class MessageSubscription:
    """Decoded message inserts for one chat, in arrival order."""

    def __init__(self, subscription: Subscription) -> None:
        self._subscription = subscription

    def __aiter__(self) -> "MessageSubscription":
        return self

    async def __anext__(self) -> MessageOut:
        while True:
            change = await self._subscription.__anext__()
            try:
                return MessageOut.decode(change.record)
            except ValidationError as exc:
                log.warning("dropping malformed message event: %s", exc.errors()[:1])

    def close(self) -> None:
        self._subscription.close()

    @property
    def closed(self) -> bool:
        return self._subscription.closed

class MessageService:
    def __init__(self, client: BackendClient, auth: AuthState, storage: StorageService | None = None, chats: ChatService | None = None) -> None:
        self.client = client
        self.auth = auth
        self.storage = storage or StorageService(client, auth)
        self.chats = chats or ChatService(client, auth)

    async def _insert(self, chat_id: uuid.UUID, sender_id: uuid.UUID, message_type: MessageType, **fields) -> MessageOut:
        row = await self.client.table(Message).insert({
            "chat_id": chat_id,
            "sender_id": sender_id,
            "message_type": message_type.value,
            "is_deleted": False,
            **fields,
        })
        await self.client.table(Chat).eq("id", chat_id).update({"updated_at": row.created_at})
        return MessageOut.decode(row)

    @operation("send text message")
    async def send_text(self, chat_id: uuid.UUID, content: str) -> MessageOut:
        me = self.auth.require_user_id()
        if not content.strip():
            raise InvalidRequestError("Message text is empty")
        await self.chats.require_participant(chat_id)
        return await self._insert(chat_id, me, MessageType.TEXT, text_content=content)

    @operation("send photo message")
    async def send_photo(self, chat_id: uuid.UUID, data: bytes, extension: str = ".jpg", content_type: str = "image/jpeg") -> MessageOut:
        me = self.auth.require_user_id()
        await self.chats.require_participant(chat_id)
        media_url = await self.storage.upload_photo(chat_id, data, extension, content_type)
        return await self._insert(chat_id, me, MessageType.PHOTO, media_url=media_url)

    @operation("send voice message")
    async def send_voice(self, chat_id: uuid.UUID, data: bytes, duration_seconds: int, extension: str = ".m4a", content_type: str = "audio/mp4") -> MessageOut:
        me = self.auth.require_user_id()
        if duration_seconds < 0:
            raise InvalidRequestError("Voice message duration is negative")
        await self.chats.require_participant(chat_id)
        media_url = await self.storage.upload_voice_message(chat_id, data, extension, content_type)
        return await self._insert(chat_id, me, MessageType.VOICE, media_url=media_url, media_duration=duration_seconds)

    @operation("get messages")
    async def get_messages(self, chat_id: uuid.UUID, limit: int | None = None, before_id: uuid.UUID | None = None) -> list[MessageOut]:
        """Non-deleted messages of a chat, newest first.

        With ``before_id`` only messages strictly older than that message are
        returned; equal timestamps are split by id so pages never overlap.
        The cursor message may itself be deleted.
        """
        self.auth.require_user_id()
        await self.chats.require_participant(chat_id)
        limit = limit or settings.message_page_size
        query = self.client.table(Message).eq("chat_id", chat_id).eq("is_deleted", False)
        if before_id is not None:
            cursor = await self.client.table(Message).eq("id", before_id).maybe_single()
            if cursor is None:
                raise RecordNotFoundError(f"message {before_id} not found")
            query.or_(
                ("created_at", "lt", cursor.created_at),
                [("created_at", "eq", cursor.created_at), ("id", "lt", cursor.id)],
            )
        rows = await query.order("created_at", desc=True).order("id", desc=True).limit(limit).fetch()
        return [MessageOut.decode(r) for r in rows]

    @operation("delete message")
    async def delete_message(self, message_id: uuid.UUID) -> MessageOut:
        me = self.auth.require_user_id()
        rows = await self.client.table(Message).eq("id", message_id).eq("sender_id", me).update(
            {"is_deleted": True, "updated_at": self.client.now()}
        )
        if not rows:
            raise RecordNotFoundError(f"message {message_id} not found")
        return MessageOut.decode(rows[0])

    @operation("mark messages as read")
    async def mark_as_read(self, chat_id: uuid.UUID) -> None:
        """Advance the caller's read position, then record read receipts.

        The two steps are separate writes; if the second fails the read
        position stays advanced and the error propagates.
        """
        me = self.auth.require_user_id()
        await self.chats.require_participant(chat_id)
        now = self.client.now()
        # read position never moves backwards
        await self.client.table(ChatParticipant).eq("chat_id", chat_id).eq("user_id", me).lt("last_read_at", now).update(
            {"last_read_at": now}
        )
        incoming = await self.client.table(Message).eq("chat_id", chat_id).neq("sender_id", me).fetch()
        if not incoming:
            return
        already = await self.client.table(MessageReadStatus).eq("user_id", me).in_("message_id", [m.id for m in incoming]).fetch()
        seen = {r.message_id for r in already}
        # another device may record the same receipts concurrently
        await self.client.table(MessageReadStatus).insert_ignoring_conflicts(
            [{"message_id": m.id, "user_id": me, "read_at": now} for m in incoming if m.id not in seen],
            on_conflict=("message_id", "user_id"),
        )

    @operation("get unread count")
    async def get_unread_count(self, chat_id: uuid.UUID) -> int:
        me = self.auth.require_user_id()
        participant = await self.client.table(ChatParticipant).eq("chat_id", chat_id).eq("user_id", me).maybe_single()
        if participant is None:
            return 0
        return await (
            self.client.table(Message)
            .eq("chat_id", chat_id)
            .neq("sender_id", me)
            .eq("is_deleted", False)
            .gt("created_at", participant.last_read_at)
            .count()
        )

    @operation("get chat summaries")
    async def get_chat_summaries(self) -> list[ChatSummaryOut]:
        """The caller's chat list, latest message first.

        Chats without messages are placed by their own last activity.
        """
        me = self.auth.require_user_id()
        summaries = []
        for chat in await self.chats.get_chats():
            latest = await self.get_messages(chat.id, limit=1)
            other = None
            if not chat.is_group:
                participants = await self.chats.get_chat_participants(chat.id)
                other_id = next((p.user_id for p in participants if p.user_id != me), None)
                if other_id is not None:
                    row = await self.client.table(Profile).eq("id", other_id).maybe_single()
                    other = ProfileOut.decode(row) if row is not None else None
            summaries.append(ChatSummaryOut(
                **chat.model_dump(),
                other_user=other,
                last_message=latest[0] if latest else None,
                last_message_preview=message_preview(latest[0]) if latest else None,
                unread_count=await self.get_unread_count(chat.id),
            ))
        summaries.sort(key=lambda s: s.last_activity_at, reverse=True)
        return summaries

    def subscribe_to_messages(self, chat_id: uuid.UUID, callback: Callable[[MessageOut], Awaitable[None] | None] | None = None):
        """Stream inserts into ``chat_id``.

        Without a callback the :class:`MessageSubscription` is returned for
        the caller to iterate. With one, each message is handed to it in
        arrival order and a handle with ``close()`` is returned.
        """
        self.auth.require_user_id()
        subscription = MessageSubscription(self.client.broker.subscribe("messages", EventType.INSERT, eq=("chat_id", chat_id)))
        if callback is None:
            return subscription

        async def deliver(message: MessageOut) -> None:
            result = callback(message)
            if inspect.isawaitable(result):
                await result

        return forward(subscription, deliver)
