import uuid
from datetime import datetime, timedelta, timezone

import pytest

from voiceup.core.errors import ConflictError, InvalidRequestError, RecordNotFoundError
from voiceup.schemas import FriendshipOut, FriendshipState, FriendshipStatus
from voiceup.services.friendships import derive_friendship_state


@pytest.fixture
async def users(make_user, services_for):
    alice = services_for(await make_user("alice", display_name="Alice Liddell"))
    bob = services_for(await make_user("bob_b", display_name="Bobby"))
    carol = services_for(await make_user("carol", email="carol@wonder.land"))
    return alice, bob, carol


def uid(services):
    return services.auth.state.current_user_id


def _row(user_id, friend_id, status, minutes=0):
    return FriendshipOut(
        id=uuid.uuid4(), user_id=user_id, friend_id=friend_id, status=status,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=minutes),
    )


class TestDeriveState:
    me = uuid.uuid4()
    other = uuid.uuid4()

    def test_no_rows(self):
        assert derive_friendship_state([], self.me, self.other) is FriendshipState.NONE

    def test_pending_depends_on_direction(self):
        out = _row(self.me, self.other, FriendshipStatus.PENDING)
        inc = _row(self.other, self.me, FriendshipStatus.PENDING)
        assert derive_friendship_state([out], self.me, self.other) is FriendshipState.PENDING_OUTGOING
        assert derive_friendship_state([inc], self.me, self.other) is FriendshipState.PENDING_INCOMING

    def test_symmetric_statuses(self):
        for status, state in [
            (FriendshipStatus.ACCEPTED, FriendshipState.ACCEPTED),
            (FriendshipStatus.REJECTED, FriendshipState.REJECTED),
            (FriendshipStatus.BLOCKED, FriendshipState.BLOCKED),
        ]:
            rows = [_row(self.other, self.me, status)]
            assert derive_friendship_state(rows, self.me, self.other) is state
            assert derive_friendship_state(rows, self.other, self.me) is state

    def test_last_row_wins(self):
        rows = [
            _row(self.me, self.other, FriendshipStatus.PENDING, minutes=0),
            _row(self.other, self.me, FriendshipStatus.ACCEPTED, minutes=1),
        ]
        assert derive_friendship_state(rows, self.me, self.other) is FriendshipState.ACCEPTED

    def test_unrelated_rows_are_ignored(self):
        rows = [_row(self.me, uuid.uuid4(), FriendshipStatus.ACCEPTED)]
        assert derive_friendship_state(rows, self.me, self.other) is FriendshipState.NONE


async def test_request_accept_flow_is_seen_by_both(users):
    alice, bob, _ = users
    request = await alice.friendships.send_friend_request(uid(bob))
    assert request.status is FriendshipStatus.PENDING

    assert await alice.friendships.get_friendship_state(uid(bob)) is FriendshipState.PENDING_OUTGOING
    assert await bob.friendships.get_friendship_state(uid(alice)) is FriendshipState.PENDING_INCOMING

    incoming = await bob.friendships.get_incoming_requests()
    assert [(r.friendship_id, r.profile.id, r.is_incoming) for r in incoming] == [(request.id, uid(alice), True)]
    outgoing = await alice.friendships.get_outgoing_requests()
    assert [(r.friendship_id, r.profile.id, r.is_incoming) for r in outgoing] == [(request.id, uid(bob), False)]

    with pytest.raises(RecordNotFoundError):
        await alice.friendships.accept_friend_request(request.id)

    accepted = await bob.friendships.accept_friend_request(request.id)
    assert accepted.status is FriendshipStatus.ACCEPTED
    assert accepted.updated_at is not None

    assert await alice.friendships.get_friendship_state(uid(bob)) is FriendshipState.ACCEPTED
    assert await bob.friendships.get_friendship_state(uid(alice)) is FriendshipState.ACCEPTED
    assert [f.profile.id for f in await alice.friendships.get_friends()] == [uid(bob)]
    assert [f.profile.id for f in await bob.friendships.get_friends()] == [uid(alice)]
    assert await bob.friendships.get_incoming_requests() == []


async def test_reject_removes_the_request(users):
    alice, bob, _ = users
    request = await alice.friendships.send_friend_request(uid(bob))
    await bob.friendships.reject_friend_request(request.id)

    assert await alice.friendships.get_friendship_state(uid(bob)) is FriendshipState.NONE
    assert await alice.friendships.get_friendship(uid(bob)) is None
    # the pair may try again
    await alice.friendships.send_friend_request(uid(bob))


async def test_cancel_only_by_sender(users):
    alice, bob, _ = users
    request = await alice.friendships.send_friend_request(uid(bob))
    with pytest.raises(RecordNotFoundError):
        await bob.friendships.cancel_friend_request(request.id)
    await alice.friendships.cancel_friend_request(request.id)
    assert await bob.friendships.get_incoming_requests() == []


async def test_unfriend_from_either_side(users):
    alice, bob, _ = users
    request = await alice.friendships.send_friend_request(uid(bob))
    with pytest.raises(RecordNotFoundError):
        await alice.friendships.unfriend(request.id)

    await bob.friendships.accept_friend_request(request.id)
    await bob.friendships.unfriend(request.id)
    assert await alice.friendships.get_friends() == []
    with pytest.raises(RecordNotFoundError):
        await alice.friendships.unfriend(request.id)


async def test_duplicate_and_self_requests_fail(users):
    alice, bob, _ = users
    await alice.friendships.send_friend_request(uid(bob))
    with pytest.raises(ConflictError):
        await alice.friendships.send_friend_request(uid(bob))
    with pytest.raises(InvalidRequestError):
        await alice.friendships.send_friend_request(uid(alice))


async def test_search_matches_any_name_field_and_excludes_caller(users):
    alice, bob, carol = users
    assert [p.id for p in await alice.friendships.search_users("  BOB ")] == [uid(bob)]
    assert [p.id for p in await alice.friendships.search_users("wonder")] == [uid(carol)]
    assert [p.id for p in await alice.friendships.search_users("liddell")] == []
    assert [p.id for p in await bob.friendships.search_users("liddell")] == [uid(alice)]
    assert await alice.friendships.search_users("   ") == []


async def test_search_treats_wildcards_literally(users, make_user):
    alice, bob, _ = users
    await make_user("bobxb")
    assert [p.username for p in await alice.friendships.search_users("b_b")] == ["bob_b"]
    assert await alice.friendships.search_users("%") == []


async def test_search_is_capped(users, make_user):
    alice, _, _ = users
    for i in range(25):
        await make_user(f"user{i:02d}")
    assert len(await alice.friendships.search_users("user")) == 20
