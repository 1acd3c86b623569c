from __future__ import annotations

import uuid

from voiceup.core.errors import operation
from voiceup.core.settings import settings
from voiceup.db.client import BackendClient
from voiceup.services.auth import AuthState
from voiceup.services.object_storage import PHOTOS_BUCKET, VOICE_BUCKET

def object_path(chat_id: uuid.UUID, user_id: uuid.UUID, millis: int, extension: str) -> str:
    if extension and not extension.startswith("."):
        extension = "." + extension
    return f"{chat_id}/{user_id}/{millis}{extension}"

class StorageService:
    """Chat media uploads for the signed-in user."""

    def __init__(self, client: BackendClient, auth: AuthState) -> None:
        self.client = client
        self.auth = auth

    async def _upload(self, bucket: str, chat_id: uuid.UUID, data: bytes, extension: str, content_type: str) -> str:
        user_id = self.auth.require_user_id()
        millis = int(self.client.now().timestamp() * 1000)
        path = object_path(chat_id, user_id, millis, extension)
        await self.client.storage.upload(bucket, path, data, content_type=content_type, upsert=False)
        return self.client.storage.get_public_url(bucket, path)

    @operation("upload photo")
    async def upload_photo(self, chat_id: uuid.UUID, data: bytes, extension: str = ".jpg", content_type: str = "image/jpeg") -> str:
        return await self._upload(PHOTOS_BUCKET, chat_id, data, extension, content_type)

    @operation("upload voice message")
    async def upload_voice_message(self, chat_id: uuid.UUID, data: bytes, extension: str = ".m4a", content_type: str = "audio/mp4") -> str:
        return await self._upload(VOICE_BUCKET, chat_id, data, extension, content_type)

    @operation("delete file")
    async def delete_file(self, bucket: str, path: str) -> None:
        await self.client.storage.remove(bucket, [path])

    @operation("get signed url")
    async def get_signed_url(self, bucket: str, path: str, expires_in: int | None = None) -> str:
        ttl = expires_in if expires_in is not None else settings.signed_url_ttl_seconds
        return await self.client.storage.create_signed_url(bucket, path, ttl)
