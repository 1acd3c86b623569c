from __future__ import annotations

import inspect
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from voiceup.core.errors import VoiceUpError
from voiceup.core.logging import log
from voiceup.db.client import BackendClient
from voiceup.models import PushToken
from voiceup.services.auth import AuthState

PLATFORMS = ("android", "ios", "web")

@dataclass(frozen=True)
class PushNotification:
    title: Optional[str] = None
    body: Optional[str] = None

@dataclass(frozen=True)
class PushMessage:
    """A message from the push provider; ``data`` carries ``chat_id``."""

    message_id: Optional[str] = None
    notification: Optional[PushNotification] = None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def chat_id(self) -> Optional[str]:
        value = self.data.get("chat_id")
        return str(value) if value is not None else None

async def _call(fn: Callable | None, *args) -> None:
    if fn is None:
        return
    result = fn(*args)
    if inspect.isawaitable(result):
        await result

class NotificationService:
    """Device token bookkeeping and foreground notification filtering.

    ``show`` displays a local notification, ``navigate`` opens a chat; both
    are supplied by the presentation layer.
    """

    def __init__(self, client: BackendClient, auth: AuthState, platform: str = "android", show: Callable | None = None, navigate: Callable | None = None) -> None:
        if platform not in PLATFORMS:
            raise ValueError(f"unknown platform {platform!r}")
        self.client = client
        self.auth = auth
        self.platform = platform
        self.show = show
        self.navigate = navigate
        self._current_chat_id: Optional[str] = None

    @property
    def current_chat_id(self) -> Optional[str]:
        return self._current_chat_id

    def set_current_chat(self, chat_id: uuid.UUID | str | None) -> None:
        self._current_chat_id = str(chat_id) if chat_id is not None else None

    async def handle_foreground_message(self, message: PushMessage) -> bool:
        """Show ``message`` unless it belongs to the open chat. Returns whether it was shown."""
        if message.notification is None:
            return False
        if message.chat_id is not None and message.chat_id == self._current_chat_id:
            log.debug("suppressing notification for open chat %s", message.chat_id)
            return False
        await _call(self.show, message)
        return True

    async def handle_notification_tap(self, message: PushMessage) -> None:
        if message.chat_id is not None:
            await _call(self.navigate, message.chat_id)

    async def save_token(self, token: str) -> bool:
        user_id = self.auth.current_user_id
        if user_id is None:
            log.info("no user signed in, skipping push token save")
            return False
        try:
            await self.client.table(PushToken).upsert(
                {"user_id": user_id, "platform": self.platform, "fcm_token": token, "updated_at": self.client.now()},
                on_conflict=("user_id", "platform"),
            )
        except VoiceUpError as exc:
            # token sync is retried on the next refresh
            log.warning("failed to save push token: %s", exc)
            return False
        return True

    async def on_token_refresh(self, token: str) -> bool:
        return await self.save_token(token)

    async def delete_token(self) -> bool:
        user_id = self.auth.current_user_id
        if user_id is None:
            return False
        try:
            await self.client.table(PushToken).eq("user_id", user_id).eq("platform", self.platform).delete()
        except VoiceUpError as exc:
            log.warning("failed to delete push token: %s", exc)
            return False
        return True
