from __future__ import annotations
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from slowapi import Limiter
from slowapi.util import get_remote_address

from voiceup.db.client import BackendClient
from voiceup.services.auth import AuthService, AuthState
from voiceup.services.container import Services

limiter = Limiter(key_func=get_remote_address)

bearer = HTTPBearer(auto_error=False)

def get_backend(request: Request) -> BackendClient:
    return request.app.state.backend

async def get_auth_state(
    cred: HTTPAuthorizationCredentials | None = Depends(bearer),
    client: BackendClient = Depends(get_backend),
) -> AuthState:
    if cred is None:
        raise HTTPException(status_code=401, detail="Missing token")
    state = AuthState()
    # raises NotAuthenticatedError, mapped to 401
    await AuthService(client, state).session_from_token(cred.credentials)
    return state

def get_services(
    client: BackendClient = Depends(get_backend),
    state: AuthState = Depends(get_auth_state),
) -> Services:
    return Services.build(client, state)
