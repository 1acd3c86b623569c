from __future__ import annotations

import asyncio
import enum
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator

from jose import JWTError, jwt
from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError

from voiceup.core.errors import ConflictError, InvalidRequestError, NotAuthenticatedError, operation
from voiceup.core.logging import log
from voiceup.core.settings import settings
from voiceup.db.client import BackendClient
from voiceup.models import AuthUser, Profile

ph = PasswordHasher()

def hash_password(password: str) -> str:
    return ph.hash(password)

def verify_password(password: str, password_hash: str) -> bool:
    try:
        return ph.verify(password_hash, password)
    except VerifyMismatchError:
        return False

def create_access_token(sub: str, now: datetime | None = None) -> tuple[str, datetime]:
    now = now or datetime.now(timezone.utc)
    expires_at = now + timedelta(minutes=settings.access_token_minutes)
    payload = {
        "iss": settings.jwt_issuer,
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256"), expires_at

def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.jwt_secret, algorithms=["HS256"], issuer=settings.jwt_issuer)

class AuthChangeEvent(str, enum.Enum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"
    TOKEN_REFRESHED = "token_refreshed"

@dataclass(frozen=True)
class AuthSession:
    user_id: uuid.UUID
    email: str
    access_token: str = ""
    expires_at: datetime | None = None

@dataclass(frozen=True)
class AuthChange:
    event: AuthChangeEvent
    session: AuthSession | None

class AuthState:
    """The signed-in session of one client, plus a stream of its changes."""

    def __init__(self, session: AuthSession | None = None) -> None:
        self._session = session
        self._listeners: list[asyncio.Queue] = []

    @classmethod
    def for_user(cls, user_id: uuid.UUID, email: str = "") -> "AuthState":
        return cls(AuthSession(user_id=user_id, email=email))

    @property
    def session(self) -> AuthSession | None:
        return self._session

    @property
    def current_user_id(self) -> uuid.UUID | None:
        return self._session.user_id if self._session else None

    def require_user_id(self) -> uuid.UUID:
        if self._session is None:
            raise NotAuthenticatedError()
        return self._session.user_id

    def set_session(self, session: AuthSession | None, event: AuthChangeEvent) -> None:
        self._session = session
        change = AuthChange(event, session)
        for queue in list(self._listeners):
            queue.put_nowait(change)

    async def changes(self) -> AsyncIterator[AuthChange]:
        queue: asyncio.Queue = asyncio.Queue()
        self._listeners.append(queue)
        try:
            while True:
                yield await queue.get()
        finally:
            self._listeners.remove(queue)

class AuthService:
    def __init__(self, client: BackendClient, state: AuthState) -> None:
        self.client = client
        self.state = state

    def _issue(self, user_id: uuid.UUID, email: str) -> AuthSession:
        token, expires_at = create_access_token(str(user_id), self.client.now())
        return AuthSession(user_id=user_id, email=email, access_token=token, expires_at=expires_at)

    @operation("sign up")
    async def sign_up(self, email: str, password: str, username: str | None = None) -> AuthSession:
        email = email.strip().lower()
        if len(password) < 8:
            raise InvalidRequestError("password must be at least 8 characters")
        if username and await self.client.table(Profile).eq("username", username).maybe_single() is not None:
            raise ConflictError("Username already taken")
        try:
            user = await self.client.table(AuthUser).insert({"email": email, "password_hash": hash_password(password)})
        except ConflictError:
            raise ConflictError("Account already exists")
        await self.client.table(Profile).insert({"id": user.id, "email": email, "username": username})
        session = self._issue(user.id, email)
        self.state.set_session(session, AuthChangeEvent.SIGNED_IN)
        log.info("account created user=%s", user.id)
        return session

    @operation("sign in")
    async def sign_in(self, email: str, password: str) -> AuthSession:
        email = email.strip().lower()
        user = await self.client.table(AuthUser).eq("email", email).maybe_single()
        if user is None or not verify_password(password, user.password_hash):
            raise NotAuthenticatedError("Invalid credentials")
        await self.client.table(AuthUser).eq("id", user.id).update({"last_sign_in_at": self.client.now()})
        existing = await self.client.table(Profile).eq("id", user.id).maybe_single()
        if existing is None:
            await self.client.table(Profile).insert({"id": user.id, "email": email})
        session = self._issue(user.id, email)
        self.state.set_session(session, AuthChangeEvent.SIGNED_IN)
        return session

    @operation("refresh session")
    async def refresh_session(self) -> AuthSession:
        current = self.state.session
        if current is None:
            raise NotAuthenticatedError()
        session = self._issue(current.user_id, current.email)
        self.state.set_session(session, AuthChangeEvent.TOKEN_REFRESHED)
        return session

    async def sign_out(self) -> None:
        self.state.set_session(None, AuthChangeEvent.SIGNED_OUT)

    @operation("validate session")
    async def session_from_token(self, token: str) -> AuthSession:
        try:
            payload = decode_token(token)
            uid = uuid.UUID(payload["sub"])
        except (JWTError, KeyError, ValueError):
            raise NotAuthenticatedError("Invalid token")
        user = await self.client.table(AuthUser).eq("id", uid).maybe_single()
        if user is None:
            raise NotAuthenticatedError("Unauthorized")
        expires_at = datetime.fromtimestamp(payload["exp"], timezone.utc)
        session = AuthSession(user_id=uid, email=user.email, access_token=token, expires_at=expires_at)
        self.state.set_session(session, AuthChangeEvent.SIGNED_IN)
        return session
