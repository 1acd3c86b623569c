import uuid

import httpx
import pytest

from voiceup.main import app, status_for
from voiceup.core.errors import BackendQueryError, ConflictError, StorageError, UnexpectedError, VoiceUpError

from conftest import PUBLIC_URL


@pytest.fixture
async def api(client):
    app.state.backend = client
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=PUBLIC_URL) as http:
        yield http
    app.state.backend = None


async def register(api, name):
    res = await api.post("/auth/register", json={"email": f"{name}@example.com", "password": "password1", "username": name})
    assert res.status_code == 201, res.text
    body = res.json()
    return uuid.UUID(body["user_id"]), {"Authorization": f"Bearer {body['access_token']}"}


def test_error_status_mapping():
    assert status_for(ConflictError("x")) == 409
    assert status_for(BackendQueryError("x")) == 502
    assert status_for(StorageError("x")) == 502
    assert status_for(UnexpectedError("x")) == 500
    assert status_for(VoiceUpError("x")) == 500


async def test_health_carries_security_headers(api):
    res = await api.get("/health")
    assert res.status_code == 200
    assert res.json() == {"ok": True}
    assert res.headers["X-Frame-Options"] == "DENY"
    assert res.headers["Server-Timing"].startswith("app;dur=")


async def test_auth_endpoints(api):
    await register(api, "alice")
    res = await api.post("/auth/login", json={"email": "alice@example.com", "password": "password1"})
    assert res.status_code == 200
    assert res.json()["token_type"] == "bearer"

    res = await api.post("/auth/login", json={"email": "alice@example.com", "password": "wrong"})
    assert res.status_code == 401

    res = await api.post("/auth/register", json={"email": "alice@example.com", "password": "password1"})
    assert res.status_code == 409
    assert res.json()["operation"] == "sign up"


async def test_protected_routes_need_a_valid_token(api):
    assert (await api.get("/chats")).status_code == 401
    res = await api.get("/chats", headers={"Authorization": "Bearer nonsense"})
    assert res.status_code == 401


async def test_message_flow(api):
    alice, alice_h = await register(api, "alice")
    bob, bob_h = await register(api, "bob")
    _, mallory_h = await register(api, "mallory")

    res = await api.post("/chats/direct", json={"friend_id": str(bob)}, headers=alice_h)
    assert res.status_code == 200
    chat_id = res.json()["id"]
    assert (await api.post("/chats/direct", json={"friend_id": str(alice)}, headers=bob_h)).json()["id"] == chat_id

    res = await api.post(f"/chats/{chat_id}/messages", json={"content": "hello"}, headers=alice_h)
    assert res.status_code == 201
    message_id = res.json()["id"]

    res = await api.get(f"/chats/{chat_id}/messages", headers=bob_h)
    assert [m["text_content"] for m in res.json()] == ["hello"]
    assert (await api.get(f"/chats/{chat_id}/unread", headers=bob_h)).json()["count"] == 1
    assert (await api.post(f"/chats/{chat_id}/read", headers=bob_h)).status_code == 200
    assert (await api.get(f"/chats/{chat_id}/unread", headers=bob_h)).json()["count"] == 0

    assert (await api.get(f"/chats/{chat_id}/messages", headers=mallory_h)).status_code == 403
    assert (await api.post(f"/chats/{chat_id}/messages", json={"content": ""}, headers=alice_h)).status_code == 422

    assert (await api.delete(f"/messages/{message_id}", headers=bob_h)).status_code == 404
    res = await api.delete(f"/messages/{message_id}", headers=alice_h)
    assert res.status_code == 200 and res.json()["is_deleted"] is True
    assert (await api.get(f"/chats/{chat_id}/messages", headers=bob_h)).json() == []

    chats = (await api.get("/chats", headers=bob_h)).json()
    assert [c["id"] for c in chats] == [chat_id]
    assert chats[0]["last_message"] is None
    assert chats[0]["other_user"]["id"] == str(alice)

    await api.post(f"/chats/{chat_id}/messages", json={"content": "again"}, headers=alice_h)
    listed = (await api.get("/chats", headers=bob_h)).json()[0]
    assert (listed["last_message_preview"], listed["unread_count"]) == ("again", 1)
    assert (await api.get(f"/chats/{chat_id}/participants", headers=mallory_h)).status_code == 403


async def test_photo_upload_and_signed_download(api, client):
    _, alice_h = await register(api, "alice")
    bob, _ = await register(api, "bob")
    chat_id = (await api.post("/chats/direct", json={"friend_id": str(bob)}, headers=alice_h)).json()["id"]

    res = await api.post(
        f"/chats/{chat_id}/messages/photo",
        files={"file": ("pic.png", b"\x89PNG-bytes", "image/png")},
        headers=alice_h,
    )
    assert res.status_code == 201, res.text
    media_url = res.json()["media_url"]
    assert media_url.endswith(".png")
    path = media_url.split("/object/public/photos/")[1]

    assert (await api.get(media_url)).status_code == 401
    public = await api.get(media_url, headers=alice_h)
    assert public.status_code == 200 and public.content == b"\x89PNG-bytes"

    signed = await client.storage.create_signed_url("photos", path, 60)
    res = await api.get(signed)
    assert res.status_code == 200
    assert res.content == b"\x89PNG-bytes"
    assert (await api.get(signed + "x")).status_code == 403


async def test_voice_upload_requires_duration(api):
    _, alice_h = await register(api, "alice")
    bob, _ = await register(api, "bob")
    chat_id = (await api.post("/chats/direct", json={"friend_id": str(bob)}, headers=alice_h)).json()["id"]

    files = {"file": ("note.m4a", b"aac", "audio/mp4")}
    res = await api.post(f"/chats/{chat_id}/messages/voice", files=files, data={"duration": "7"}, headers=alice_h)
    assert res.status_code == 201, res.text
    assert res.json()["media_duration"] == 7
    res = await api.post(f"/chats/{chat_id}/messages/voice", files=files, headers=alice_h)
    assert res.status_code == 422


async def test_friend_and_profile_endpoints(api):
    alice, alice_h = await register(api, "alice")
    bob, bob_h = await register(api, "bob")

    res = await api.patch("/profiles/me", json={"display_name": "Alice L"}, headers=alice_h)
    assert res.json()["display_name"] == "Alice L"
    assert (await api.get("/profiles/me", headers=alice_h)).json()["username"] == "alice"
    assert (await api.get(f"/profiles/{uuid.uuid4()}", headers=alice_h)).status_code == 404
    found = (await api.get("/profiles/search", params={"q": "alice l"}, headers=bob_h)).json()
    assert [p["id"] for p in found] == [str(alice)]

    res = await api.post("/friends/requests", json={"user_id": str(bob)}, headers=alice_h)
    assert res.status_code == 201
    friendship_id = res.json()["id"]
    state = (await api.get(f"/friends/state/{alice}", headers=bob_h)).json()
    assert state["state"] == "pending_incoming"

    incoming = (await api.get("/friends/requests/incoming", headers=bob_h)).json()
    assert [r["friendship_id"] for r in incoming] == [friendship_id]
    assert (await api.post(f"/friends/requests/{friendship_id}/accept", headers=bob_h)).status_code == 200
    friends = (await api.get("/friends", headers=alice_h)).json()
    assert [f["profile"]["id"] for f in friends] == [str(bob)]

    assert (await api.delete(f"/friends/{friendship_id}", headers=alice_h)).status_code == 200
    assert (await api.delete(f"/friends/{friendship_id}", headers=alice_h)).status_code == 404


async def test_push_token_endpoints(api):
    _, alice_h = await register(api, "alice")
    res = await api.put("/push-tokens", json={"token": "abc", "platform": "ios"}, headers=alice_h)
    assert res.status_code == 200
    assert (await api.delete("/push-tokens/ios", headers=alice_h)).status_code == 200
    assert (await api.delete("/push-tokens/palm", headers=alice_h)).status_code == 404
