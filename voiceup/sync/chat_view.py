"""Live, paginated view of one open chat.

A view subscribes to message inserts before loading its first page, so
nothing sent while the page is in flight is lost. Inserts that arrive early
are held until the page is applied and are dropped if the page already
contains them. After that, inserts are appended in arrival order; there is
no re-sort against loaded history and no recovery of missed events.
"""
from __future__ import annotations

import asyncio
import contextlib
import enum
import uuid
from typing import Callable, Optional

from voiceup.core.errors import VoiceUpError
from voiceup.core.logging import log
from voiceup.core.settings import settings
from voiceup.schemas import MessageOut
from voiceup.services.messages import MessageService, MessageSubscription
from voiceup.sync.signed_urls import SignedUrlResolver

class ChatViewState(str, enum.Enum):
    IDLE = "idle"
    LOADING_INITIAL = "loading_initial"
    READY = "ready"
    LOADING_MORE = "loading_more"
    ERROR = "error"
    CLOSED = "closed"

class ChatView:
    def __init__(
        self,
        chat_id: uuid.UUID,
        messages: MessageService,
        resolver: Optional[SignedUrlResolver] = None,
        page_size: Optional[int] = None,
        on_change: Optional[Callable[["ChatView"], None]] = None,
        mark_read: bool = True,
    ) -> None:
        self.chat_id = chat_id
        self.service = messages
        self.resolver = resolver or SignedUrlResolver(messages.storage)
        self.page_size = page_size or settings.message_page_size
        self.on_change = on_change
        self.mark_read = mark_read

        self.state = ChatViewState.IDLE
        self.messages: list[MessageOut] = []
        self.has_more = False
        self.error: Optional[VoiceUpError] = None

        self._ids: set[uuid.UUID] = set()
        self._failed: Optional[ChatViewState] = None
        self._subscription: Optional[MessageSubscription] = None
        self._pump: Optional[asyncio.Task] = None
        self._first_page = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self.state is ChatViewState.CLOSED

    def _set_state(self, state: ChatViewState) -> None:
        self.state = state
        self._changed()

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self)

    def _fail(self, phase: ChatViewState, exc: VoiceUpError) -> None:
        log.warning("chat %s: %s", self.chat_id, exc)
        self.error = exc
        self._failed = phase
        self._set_state(ChatViewState.ERROR)

    async def __aenter__(self) -> "ChatView":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def open(self) -> None:
        if self.state is not ChatViewState.IDLE:
            raise RuntimeError(f"chat view is {self.state.value}, not idle")
        self._subscription = self.service.subscribe_to_messages(self.chat_id)
        self._pump = asyncio.create_task(self._consume(self._subscription))
        await self._load_initial()
        if self.state is ChatViewState.READY:
            await self._mark_read()

    async def _load_initial(self) -> None:
        self.error = None
        self._set_state(ChatViewState.LOADING_INITIAL)
        try:
            page = await self.service.get_messages(self.chat_id, limit=self.page_size)
            resolved = await self.resolver.resolve_messages(page)
        except VoiceUpError as exc:
            if not self.closed:
                self._fail(ChatViewState.LOADING_INITIAL, exc)
            return
        if self.closed:
            return
        resolved.reverse()
        self.messages = resolved
        self._ids = {m.id for m in resolved}
        self.has_more = len(page) == self.page_size
        self._first_page.set()
        self._set_state(ChatViewState.READY)

    async def load_more(self) -> int:
        """Prepend the page before the oldest loaded message; returns how many were added."""
        if self.state is not ChatViewState.READY or not self.has_more or not self.messages:
            return 0
        self.error = None
        self._set_state(ChatViewState.LOADING_MORE)
        oldest = self.messages[0]
        try:
            page = await self.service.get_messages(self.chat_id, limit=self.page_size, before_id=oldest.id)
            resolved = await self.resolver.resolve_messages(page)
        except VoiceUpError as exc:
            if not self.closed:
                self._fail(ChatViewState.LOADING_MORE, exc)
            return 0
        if self.closed:
            return 0
        older = [m for m in reversed(resolved) if m.id not in self._ids]
        self.messages[0:0] = older
        self._ids.update(m.id for m in older)
        self.has_more = len(page) == self.page_size
        self._set_state(ChatViewState.READY)
        return len(older)

    async def retry(self) -> None:
        if self.state is not ChatViewState.ERROR:
            return
        failed, self._failed = self._failed, None
        if failed is ChatViewState.LOADING_INITIAL:
            await self._load_initial()
            if self.state is ChatViewState.READY:
                await self._mark_read()
        else:
            self._set_state(ChatViewState.READY)
            await self.load_more()

    async def _consume(self, subscription: MessageSubscription) -> None:
        async for message in subscription:
            await self._first_page.wait()
            if self.closed:
                return
            try:
                await self._append(message)
            except Exception:
                log.exception("chat %s: could not apply message %s", self.chat_id, message.id)

    async def _append(self, message: MessageOut) -> None:
        resolved = await self.resolver.resolve_message(message)
        if self.closed or resolved.id in self._ids:
            return
        self.messages.append(resolved)
        self._ids.add(resolved.id)
        self._changed()
        if message.sender_id != self.service.auth.current_user_id:
            await self._mark_read()

    async def _mark_read(self) -> None:
        if not self.mark_read:
            return
        try:
            await self.service.mark_as_read(self.chat_id)
        except VoiceUpError as exc:
            log.warning("chat %s: %s", self.chat_id, exc)

    async def close(self) -> None:
        """Stop live delivery and drop everything the view holds."""
        if self.closed:
            return
        self._set_state(ChatViewState.CLOSED)
        if self._subscription is not None:
            self._subscription.close()
        if self._pump is not None:
            self._pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump
        self.messages = []
        self._ids.clear()
        self.resolver.clear()
