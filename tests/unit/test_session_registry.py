from __future__ import annotations

import pytest

from duo_chat.infrastructure.ws.protocol import Outbound
from duo_chat.infrastructure.ws.registry import SessionRegistry
from tests.conftest import FakeTransport


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


def test_first_and_second_session(registry, store, alice, bob):
    conn = store.pair(alice, bob)

    s1, first1 = registry.register_session(alice.id, "alice", "t1", FakeTransport(), conn)
    s2, first2 = registry.register_session(alice.id, "alice", "t2", FakeTransport(), conn)

    assert first1 is True
    assert first2 is False
    assert s1.active_connection_id == conn.id
    assert registry.sessions_in_connection(conn.id) == {s1, s2}
    assert registry.is_online(alice.id)
    assert registry.peer_in(conn.id, alice.id) == bob.id


def test_deregister_reports_last_session(registry, alice):
    registry.register_session(alice.id, "alice", "t1", FakeTransport(), None)
    registry.register_session(alice.id, "alice", "t2", FakeTransport(), None)

    first = registry.deregister_session("t1")
    last = registry.deregister_session("t2")

    assert first.was_last is False
    assert last.was_last is True
    assert not registry.is_online(alice.id)
    assert registry.deregister_session("t2") is None


def test_reregister_same_transport_replaces_session(registry, alice):
    registry.register_session(alice.id, "alice", "t1", FakeTransport(), None)
    _, first = registry.register_session(alice.id, "alice", "t1", FakeTransport(), None)

    assert first is True
    assert registry.session_count == 1


def test_enroll_moves_existing_sessions_into_room(registry, store, alice, bob):
    s_alice, _ = registry.register_session(alice.id, "alice", "t1", FakeTransport(), None)
    s_bob, _ = registry.register_session(bob.id, "bob", "t2", FakeTransport(), None)

    registry.enroll(99, (alice.id, bob.id))
    registry.enroll(99, (alice.id, bob.id))

    assert registry.sessions_in_connection(99) == {s_alice, s_bob}
    assert s_alice.active_connection_id == 99
    assert registry.connection_of(bob.id) == 99


def test_release_empties_room(registry, store, alice, bob):
    conn = store.pair(alice, bob)
    s_alice, _ = registry.register_session(alice.id, "alice", "t1", FakeTransport(), conn)

    registry.release(conn.id, conn.participants)

    assert s_alice.active_connection_id is None
    assert registry.sessions_in_connection(conn.id) == set()
    assert registry.connection_of(alice.id) is None
    assert registry.peer_in(conn.id, alice.id) is None


def test_announced_release_wins_over_stale_store_read(registry, store, alice, bob):
    conn = store.pair(alice, bob)
    registry.register_session(bob.id, "bob", "t-bob", FakeTransport(), conn)

    # alice read her connection before it ended, but registers after the release.
    with registry.joining(alice.id):
        registry.release(conn.id, conn.participants)
        session, _ = registry.register_session(alice.id, "alice", "t-alice", FakeTransport(), conn)

    assert session.active_connection_id is None
    assert registry.sessions_in_connection(conn.id) == set()


def test_idle_membership_is_forgotten(registry, store, alice, bob):
    conn = store.pair(alice, bob)
    registry.register_session(alice.id, "alice", "t1", FakeTransport(), conn)
    registry.register_session(bob.id, "bob", "t2", FakeTransport(), None)
    registry.release(conn.id, conn.participants)

    registry.deregister_session("t1")
    registry.deregister_session("t2")

    assert registry._memberships == {}


def test_offline_user_membership_dropped_on_release(registry, store, alice, bob):
    conn = store.pair(alice, bob)
    registry.enroll(conn.id, conn.participants)
    assert registry.connection_of(alice.id) == conn.id

    registry.release(conn.id, conn.participants)

    assert registry._memberships == {}


def test_membership_kept_while_join_in_flight(registry, store, alice, bob):
    conn = store.pair(alice, bob)
    registry.register_session(alice.id, "alice", "t1", FakeTransport(), conn)

    with registry.joining(alice.id):
        registry.release(conn.id, conn.participants)
        registry.deregister_session("t1")
        assert alice.id in registry._memberships
        assert registry.connection_of(alice.id) is None

    assert alice.id not in registry._memberships


@pytest.mark.asyncio
async def test_send_to_connection_excludes_user(registry, store, alice, bob):
    conn = store.pair(alice, bob)
    t_alice, t_bob = FakeTransport(), FakeTransport()
    registry.register_session(alice.id, "alice", "t1", t_alice, conn)
    registry.register_session(bob.id, "bob", "t2", t_bob, conn)

    sent = await registry.send_to_connection(
        conn.id, Outbound.USER_TYPING, {"typing": True}, exclude_user_id=alice.id,
    )

    assert sent == 1
    assert t_alice.sent == []
    assert t_bob.types() == ["user_typing"]


@pytest.mark.asyncio
async def test_broken_transport_is_skipped(registry, alice):
    healthy = FakeTransport()
    registry.register_session(alice.id, "alice", "t1", FakeTransport(broken=True), None)
    registry.register_session(alice.id, "alice", "t2", healthy, None)

    sent = await registry.send_to_user(alice.id, Outbound.PONG, {})

    assert sent == 1
    assert healthy.types() == ["pong"]
