from fastapi import APIRouter, Depends, Request

from voiceup.api.deps import get_backend, limiter
from voiceup.api.schemas import LoginIn, RegisterIn, TokenOut
from voiceup.core.settings import settings
from voiceup.db.client import BackendClient
from voiceup.services.auth import AuthService, AuthSession, AuthState

router = APIRouter(prefix="/auth", tags=["auth"])

def _token(session: AuthSession) -> TokenOut:
    return TokenOut(access_token=session.access_token, expires_at=session.expires_at, user_id=session.user_id)

@router.post("/register", response_model=TokenOut, status_code=201)
@limiter.limit(settings.auth_rate_limit)
async def register(data: RegisterIn, request: Request, client: BackendClient = Depends(get_backend)):
    session = await AuthService(client, AuthState()).sign_up(data.email, data.password, username=data.username)
    return _token(session)

@router.post("/login", response_model=TokenOut)
@limiter.limit(settings.auth_rate_limit)
async def login(data: LoginIn, request: Request, client: BackendClient = Depends(get_backend)):
    session = await AuthService(client, AuthState()).sign_in(data.email, data.password)
    return _token(session)
