import asyncio

import pytest

from voiceup.core.errors import BackendQueryError, PermissionDeniedError
from voiceup.models import ChatParticipant
from voiceup.services.messages import MessageService
from voiceup.sync import ChatView, ChatViewState

from conftest import wait_for


@pytest.fixture
async def pair(make_user, services_for):
    alice = services_for(await make_user("alice"))
    bob = services_for(await make_user("bob"))
    chat = await alice.chats.create_direct_chat(bob.auth.state.current_user_id)
    return alice, bob, chat


async def test_open_loads_latest_page_oldest_first(pair):
    alice, bob, chat = pair
    for i in range(5):
        await alice.messages.send_text(chat.id, f"m{i}")

    async with ChatView(chat.id, bob.messages, page_size=3, mark_read=False) as view:
        assert view.state is ChatViewState.READY
        assert [m.text_content for m in view.messages] == ["m2", "m3", "m4"]
        assert view.has_more

        assert await view.load_more() == 2
        assert [m.text_content for m in view.messages] == ["m0", "m1", "m2", "m3", "m4"]
        assert not view.has_more
        assert await view.load_more() == 0


async def test_live_messages_are_appended_once(pair):
    alice, bob, chat = pair
    view = ChatView(chat.id, bob.messages, mark_read=False)
    await view.open()
    assert view.messages == []

    first = await alice.messages.send_text(chat.id, "hello")
    second = await alice.messages.send_text(chat.id, "again")
    await wait_for(lambda: len(view.messages) == 2)
    assert [m.id for m in view.messages] == [first.id, second.id]
    await view.close()


async def test_own_messages_arrive_only_through_the_feed(pair):
    alice, _, chat = pair
    view = ChatView(chat.id, alice.messages, mark_read=False)
    await view.open()
    sent = await alice.messages.send_text(chat.id, "mine")
    await wait_for(lambda: len(view.messages) == 1)
    await asyncio.sleep(0.05)
    assert [m.id for m in view.messages] == [sent.id]
    await view.close()


async def test_media_links_in_view_are_signed(pair):
    alice, bob, chat = pair
    await alice.messages.send_photo(chat.id, b"img")
    async with ChatView(chat.id, bob.messages, mark_read=False) as view:
        assert "/object/sign/photos/" in view.messages[0].media_url
        await alice.messages.send_voice(chat.id, b"aac", 3)
        await wait_for(lambda: len(view.messages) == 2)
        assert "/object/sign/voice-messages/" in view.messages[1].media_url
        assert len(view.resolver) == 2


async def test_incoming_messages_are_marked_read(pair):
    alice, bob, chat = pair
    await alice.messages.send_text(chat.id, "before")
    view = ChatView(chat.id, bob.messages)
    await view.open()
    assert await bob.messages.get_unread_count(chat.id) == 0

    await alice.messages.send_text(chat.id, "during")
    await wait_for(lambda: len(view.messages) == 2)
    unread = None
    for _ in range(100):
        unread = await bob.messages.get_unread_count(chat.id)
        if unread == 0:
            break
        await asyncio.sleep(0.01)
    await view.close()
    assert unread == 0


async def test_close_drops_state_and_stops_delivery(pair):
    alice, bob, chat = pair
    changes = []
    view = ChatView(chat.id, bob.messages, mark_read=False, on_change=lambda v: changes.append(v.state))
    await view.open()
    await alice.messages.send_text(chat.id, "one")
    await wait_for(lambda: len(view.messages) == 1)

    await view.close()
    assert view.state is ChatViewState.CLOSED
    assert view.messages == []
    await alice.messages.send_text(chat.id, "two")
    await asyncio.sleep(0.05)
    assert view.messages == []
    assert changes[:2] == [ChatViewState.LOADING_INITIAL, ChatViewState.READY]
    assert changes[-1] is ChatViewState.CLOSED


class GatedMessages(MessageService):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.gate = asyncio.Event()

    async def get_messages(self, *args, **kwargs):
        await self.gate.wait()
        return await super().get_messages(*args, **kwargs)


async def test_load_finishing_after_close_is_dropped(client, pair):
    alice, bob, chat = pair
    await alice.messages.send_text(chat.id, "late")
    gated = GatedMessages(client, bob.auth.state)
    view = ChatView(chat.id, gated, mark_read=False)

    opening = asyncio.create_task(view.open())
    await wait_for(lambda: view.state is ChatViewState.LOADING_INITIAL)
    await view.close()
    gated.gate.set()
    await opening

    assert view.state is ChatViewState.CLOSED
    assert view.messages == []


async def test_failed_load_can_be_retried(client, pair, make_user, services_for):
    alice, _, chat = pair
    carol = services_for(await make_user("carol"))
    await alice.messages.send_text(chat.id, "hi")

    view = ChatView(chat.id, carol.messages, mark_read=False)
    await view.open()
    assert view.state is ChatViewState.ERROR
    assert isinstance(view.error, PermissionDeniedError)

    await client.table(ChatParticipant).insert({"chat_id": chat.id, "user_id": carol.auth.state.current_user_id})
    await view.retry()
    assert view.state is ChatViewState.READY
    assert view.error is None
    assert [m.text_content for m in view.messages] == ["hi"]
    await view.close()


async def test_open_twice_is_an_error(pair):
    _, bob, chat = pair
    async with ChatView(chat.id, bob.messages, mark_read=False) as view:
        with pytest.raises(RuntimeError):
            await view.open()


async def test_insert_during_first_load_is_applied_once(client, pair):
    alice, bob, chat = pair
    old = await alice.messages.send_text(chat.id, "old")
    gated = GatedMessages(client, bob.auth.state)
    view = ChatView(chat.id, gated, mark_read=False)

    opening = asyncio.create_task(view.open())
    await wait_for(lambda: view.state is ChatViewState.LOADING_INITIAL)
    early = await alice.messages.send_text(chat.id, "early")
    gated.gate.set()
    await opening
    assert [m.id for m in view.messages] == [old.id, early.id]

    later = await alice.messages.send_text(chat.id, "later")
    await wait_for(lambda: len(view.messages) == 3)
    assert [m.id for m in view.messages] == [old.id, early.id, later.id]
    await view.close()


class FlakyMessages(MessageService):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.older_failures = 1

    async def get_messages(self, chat_id, limit=None, before_id=None):
        if before_id is not None and self.older_failures:
            self.older_failures -= 1
            raise BackendQueryError("connection reset", operation="get messages")
        return await super().get_messages(chat_id, limit=limit, before_id=before_id)


async def test_failed_older_page_can_be_retried(client, pair):
    alice, bob, chat = pair
    for i in range(4):
        await alice.messages.send_text(chat.id, f"m{i}")
    view = ChatView(chat.id, FlakyMessages(client, bob.auth.state), page_size=2, mark_read=False)
    await view.open()
    assert [m.text_content for m in view.messages] == ["m2", "m3"]

    assert await view.load_more() == 0
    assert view.state is ChatViewState.ERROR
    assert isinstance(view.error, BackendQueryError)
    assert [m.text_content for m in view.messages] == ["m2", "m3"]

    await view.retry()
    assert view.state is ChatViewState.READY
    assert view.error is None
    assert [m.text_content for m in view.messages] == ["m0", "m1", "m2", "m3"]
    await view.close()


async def test_failing_listener_does_not_stop_live_updates(pair):
    alice, bob, chat = pair
    failures = []

    def on_change(view):
        if not failures and any(m.text_content == "boom" for m in view.messages):
            failures.append("boom")
            raise RuntimeError("render failed")

    view = ChatView(chat.id, bob.messages, mark_read=False, on_change=on_change)
    await view.open()
    await alice.messages.send_text(chat.id, "boom")
    await alice.messages.send_text(chat.id, "after")
    await wait_for(lambda: len(view.messages) == 2)

    assert failures == ["boom"]
    assert [m.text_content for m in view.messages] == ["boom", "after"]
    await view.close()
