from __future__ import annotations

import time

import redis
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from voiceup.core.logging import log
from voiceup.core.redis import get_redis

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        # voice messages are recorded on the device, never through the browser
        response.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        response.headers["Content-Security-Policy"] = "default-src 'self'"
        return response

class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response: Response = await call_next(request)
        ms = (time.perf_counter() - start) * 1000.0
        r = get_redis()
        if r is not None:
            try:
                key = "metrics:latency_ms:last500"
                r.lpush(key, f"{ms:.3f}")
                r.ltrim(key, 0, 499)
                r.hincrby("metrics:counts", "requests", 1)
                r.hincrby("metrics:status", str(response.status_code), 1)
            except redis.RedisError as exc:
                # metrics must never break the API
                log.debug("metrics write failed: %s", exc)
        response.headers["Server-Timing"] = f"app;dur={ms:.2f}"
        return response
