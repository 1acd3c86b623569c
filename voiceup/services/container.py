from __future__ import annotations

from dataclasses import dataclass

from voiceup.core.settings import settings
from voiceup.db.client import BackendClient
from voiceup.db.session import AsyncSessionLocal
from voiceup.services.auth import AuthService, AuthState
from voiceup.services.chats import ChatService
from voiceup.services.friendships import FriendshipService
from voiceup.services.messages import MessageService
from voiceup.services.notifications import NotificationService
from voiceup.services.object_storage import LocalObjectStorage
from voiceup.services.profiles import ProfileService
from voiceup.services.realtime import RealtimeBroker, RedisRealtimeBroker
from voiceup.services.storage import StorageService

def build_backend() -> BackendClient:
    """Backend client wired from settings: database, change feed, object store."""
    if settings.realtime_backend == "redis":
        broker: RealtimeBroker = RedisRealtimeBroker(settings.redis_url)
    else:
        broker = RealtimeBroker()
    client = BackendClient(AsyncSessionLocal, broker)
    client.storage = LocalObjectStorage(settings.storage_root, settings.storage_public_url, settings.jwt_secret, client.now)
    return client

@dataclass
class Services:
    auth: AuthService
    profiles: ProfileService
    chats: ChatService
    messages: MessageService
    friendships: FriendshipService
    storage: StorageService
    notifications: NotificationService

    @classmethod
    def build(cls, client: BackendClient, state: AuthState, platform: str = "android") -> "Services":
        storage = StorageService(client, state)
        chats = ChatService(client, state)
        return cls(
            auth=AuthService(client, state),
            profiles=ProfileService(client, state),
            chats=chats,
            messages=MessageService(client, state, storage=storage, chats=chats),
            friendships=FriendshipService(client, state),
            storage=storage,
            notifications=NotificationService(client, state, platform=platform),
        )
