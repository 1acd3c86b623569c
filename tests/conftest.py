import asyncio
import os
import uuid
from datetime import datetime, timedelta, timezone

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["REALTIME_BACKEND"] = "memory"
os.environ["AUTH_RATE_LIMIT"] = "1000/minute"
os.environ.pop("REDIS_URL", None)

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from voiceup.db.base import Base
from voiceup.db.client import BackendClient
from voiceup.db.session import make_sessionmaker
from voiceup.models import AuthUser, Profile
from voiceup.services.auth import AuthState
from voiceup.services.container import Services
from voiceup.services.object_storage import LocalObjectStorage
from voiceup.services.realtime import RealtimeBroker

PUBLIC_URL = "http://testserver"


class FakeClock:
    """Moves forward one millisecond per reading so inserts stay ordered."""

    def __init__(self, start=None, tick=timedelta(milliseconds=1)):
        self.current = start or datetime.now(timezone.utc).replace(microsecond=0)
        self.tick = tick

    def __call__(self):
        self.current += self.tick
        return self.current

    def advance(self, seconds=1.0):
        self.current += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def client(engine, clock, tmp_path):
    broker = RealtimeBroker()
    backend = BackendClient(make_sessionmaker(engine), broker, clock=clock)
    backend.storage = LocalObjectStorage(tmp_path / "media", PUBLIC_URL, "test-secret", clock)
    yield backend
    await broker.stop()


@pytest.fixture
def make_user(client):
    async def make(username, email=None, display_name=None):
        email = email or f"{username}@example.com"
        user = await client.table(AuthUser).insert({"email": email, "password_hash": "unused"})
        await client.table(Profile).insert(
            {"id": user.id, "email": email, "username": username, "display_name": display_name}
        )
        return user.id

    return make


@pytest.fixture
def services_for(client):
    def build(user_id, email=""):
        return Services.build(client, AuthState.for_user(user_id, email))

    return build


@pytest.fixture
def anonymous(client):
    return Services.build(client, AuthState())


async def wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def random_id():
    return uuid.uuid4()
