from __future__ import annotations

import mimetypes
from datetime import timedelta
from pathlib import Path
from typing import Callable, Iterable
from urllib.parse import quote

import aiofiles
import aiofiles.os
from jose import JWTError, jwt

from voiceup.core.errors import StorageError

PHOTOS_BUCKET = "photos"
VOICE_BUCKET = "voice-messages"
BUCKETS = (PHOTOS_BUCKET, VOICE_BUCKET)

MAX_OBJECT_SIZE = 10 * 1024 * 1024  # 10MB

class LocalObjectStorage:
    """Bucketed object store on the local filesystem.

    Objects live under ``<root>/<bucket>/<path>``. Public URLs are stable;
    signed URLs carry a JWT naming the object and its expiry.
    """

    def __init__(self, root: str | Path, public_url: str, signing_secret: str, clock: Callable) -> None:
        self.root = Path(root).absolute()
        self.public_url = public_url.rstrip("/")
        self._secret = signing_secret
        self._clock = clock

    def _object_path(self, bucket: str, path: str) -> Path:
        if bucket not in BUCKETS:
            raise StorageError(f"unknown bucket {bucket!r}")
        target = (self.root / bucket / path).resolve()
        if not target.is_relative_to((self.root / bucket).resolve()) or not path:
            raise StorageError(f"invalid object path {path!r}")
        return target

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str | None = None, upsert: bool = False) -> str:
        target = self._object_path(bucket, path)
        if len(data) > MAX_OBJECT_SIZE:
            raise StorageError(f"object exceeds maximum size of {MAX_OBJECT_SIZE} bytes")
        if await aiofiles.os.path.exists(target) and not upsert:
            raise StorageError(f"object {bucket}/{path} already exists")
        try:
            await aiofiles.os.makedirs(target.parent, exist_ok=True)
            async with aiofiles.open(target, "wb") as out:
                await out.write(data)
        except OSError as exc:
            raise StorageError(f"could not write {bucket}/{path}: {exc}") from exc
        return path

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self.public_url}/storage/v1/object/public/{bucket}/{quote(path)}"

    async def create_signed_url(self, bucket: str, path: str, ttl_seconds: int) -> str:
        target = self._object_path(bucket, path)
        if not await aiofiles.os.path.exists(target):
            raise StorageError(f"object {bucket}/{path} not found")
        exp = self._clock() + timedelta(seconds=ttl_seconds)
        token = jwt.encode({"url": f"{bucket}/{path}", "exp": int(exp.timestamp())}, self._secret, algorithm="HS256")
        return f"{self.public_url}/storage/v1/object/sign/{bucket}/{quote(path)}?token={token}"

    def verify_signed_token(self, bucket: str, path: str, token: str) -> bool:
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=["HS256"],
                options={"verify_exp": False},
            )
        except JWTError:
            return False
        # expiry checked against the storage clock, not wall time
        if int(claims.get("exp", 0)) < int(self._clock().timestamp()):
            return False
        return claims.get("url") == f"{bucket}/{path}"

    async def download(self, bucket: str, path: str) -> tuple[bytes, str]:
        target = self._object_path(bucket, path)
        if not await aiofiles.os.path.isfile(target):
            raise StorageError(f"object {bucket}/{path} not found")
        content_type = mimetypes.guess_type(target.name)[0] or "application/octet-stream"
        async with aiofiles.open(target, "rb") as src:
            return await src.read(), content_type

    async def remove(self, bucket: str, paths: Iterable[str]) -> list[str]:
        removed = []
        for path in paths:
            target = self._object_path(bucket, path)
            if await aiofiles.os.path.exists(target):
                await aiofiles.os.remove(target)
                removed.append(path)
        return removed
