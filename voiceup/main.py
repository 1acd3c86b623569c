from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from starlette.responses import JSONResponse
from starlette.requests import Request

from voiceup.core.settings import settings
from voiceup.core.logging import configure_logging, log
from voiceup.core.middleware import SecurityHeadersMiddleware, MetricsMiddleware
from voiceup.core.errors import (
    BackendQueryError,
    ConflictError,
    InvalidRequestError,
    NotAuthenticatedError,
    PermissionDeniedError,
    RecordNotFoundError,
    StorageError,
    VoiceUpError,
)
from voiceup.api import auth, chats, friends, messages, profiles, push_tokens, storage, ws
from voiceup.api.deps import limiter
from voiceup.services.container import build_backend

configure_logging()

# most specific first
_STATUS = (
    (NotAuthenticatedError, 401),
    (RecordNotFoundError, 404),
    (ConflictError, 409),
    (PermissionDeniedError, 403),
    (InvalidRequestError, 400),
    (BackendQueryError, 502),
    (StorageError, 502),
)

def status_for(exc: VoiceUpError) -> int:
    for cls, status in _STATUS:
        if isinstance(exc, cls):
            return status
    return 500

@asynccontextmanager
async def lifespan(app: FastAPI):
    owned = getattr(app.state, "backend", None) is None
    if owned:
        app.state.backend = build_backend()
    await app.state.backend.broker.start()
    log.info("voiceup api started env=%s realtime=%s", settings.env, settings.realtime_backend)
    try:
        yield
    finally:
        await app.state.backend.broker.stop()
        if owned:
            app.state.backend = None

app = FastAPI(title="VoiceUp API", version="0.1.0", lifespan=lifespan)
app.state.limiter = limiter

@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse({"detail": "rate limit exceeded"}, status_code=429)

@app.exception_handler(VoiceUpError)
async def voiceup_error_handler(request: Request, exc: VoiceUpError):
    status = status_for(exc)
    if status >= 500:
        log.error("%s %s: %s", request.method, request.url.path, exc)
    return JSONResponse({"detail": str(exc), "operation": exc.operation}, status_code=status)

app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(profiles.router)
app.include_router(chats.router)
app.include_router(messages.router)
app.include_router(friends.router)
app.include_router(push_tokens.router)
app.include_router(storage.router)
app.include_router(ws.router)

@app.get("/health")
@limiter.limit("30/minute")
async def health(request: Request):
    return {"ok": True}
