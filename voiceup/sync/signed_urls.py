from __future__ import annotations

from typing import Iterable
from urllib.parse import unquote, urlsplit

from voiceup.core.errors import VoiceUpError
from voiceup.core.logging import log
from voiceup.core.settings import settings
from voiceup.schemas import MessageOut
from voiceup.services.object_storage import BUCKETS
from voiceup.services.storage import StorageService

def extract_object_path(url: str) -> tuple[str, str] | None:
    """Find ``(bucket, path)`` in a storage URL.

    The first path segment naming a known bucket marks the bucket; whatever
    follows it is the object path.
    """
    try:
        segments = [unquote(s) for s in urlsplit(url).path.split("/") if s]
    except ValueError:
        return None
    for i, segment in enumerate(segments):
        if segment in BUCKETS:
            rest = segments[i + 1:]
            if not rest:
                return None
            return segment, "/".join(rest)
    return None

class SignedUrlResolver:
    """Turns stored media URLs into signed ones, memoised per open chat.

    Entries never expire: a view kept open past the signing TTL serves
    expired links until it is reopened.
    """

    def __init__(self, storage: StorageService, ttl_seconds: int | None = None) -> None:
        self.storage = storage
        self.ttl_seconds = ttl_seconds or settings.signed_url_ttl_seconds
        self._cache: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def cached(self, url: str) -> str | None:
        return self._cache.get(url)

    async def resolve(self, url: str) -> str:
        if url in self._cache:
            return self._cache[url]
        location = extract_object_path(url)
        if location is None:
            return url
        bucket, path = location
        try:
            signed = await self.storage.get_signed_url(bucket, path, expires_in=self.ttl_seconds)
        except VoiceUpError as exc:
            log.warning("signing %s/%s failed, using original url: %s", bucket, path, exc)
            return url
        self._cache[url] = signed
        return signed

    async def resolve_message(self, message: MessageOut) -> MessageOut:
        if not message.has_media:
            return message
        signed = await self.resolve(message.media_url)
        if signed == message.media_url:
            return message
        return message.model_copy(update={"media_url": signed})

    async def resolve_messages(self, messages: Iterable[MessageOut]) -> list[MessageOut]:
        return [await self.resolve_message(m) for m in messages]

    def clear(self) -> None:
        self._cache.clear()
