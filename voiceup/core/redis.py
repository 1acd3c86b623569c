from __future__ import annotations

import redis
import redis.asyncio as aioredis
from voiceup.core.settings import settings

def get_redis() -> redis.Redis | None:
    if not settings.redis_url:
        return None
    return redis.Redis.from_url(settings.redis_url, decode_responses=True)

def get_async_redis(url: str | None = None) -> aioredis.Redis:
    return aioredis.from_url(url or settings.redis_url, decode_responses=True)
