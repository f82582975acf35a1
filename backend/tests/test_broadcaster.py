"""Tests for connection registry and message addressing."""
import pytest

from app.realtime.broadcaster import Broadcast, Broadcaster, ToRoom, ToUser
from app.realtime.events import MessageType, RealtimeMessage


def chat(content: str = "hi") -> RealtimeMessage:
    return RealtimeMessage(type=MessageType.MESSAGE, payload={"content": content})


@pytest.fixture
def broadcaster():
    return Broadcaster()


class TestRegistry:

    def test_register_joins_private_room(self, broadcaster, make_connection):
        conn = make_connection("u1")
        broadcaster.register(conn)
        assert broadcaster.private_room("u1") == "user:u1"
        assert broadcaster.room_members("user:u1") == [conn]
        assert conn.rooms == {"user:u1"}

    def test_unregister_drops_all_memberships(self, broadcaster, make_connection):
        conn = make_connection("u1")
        broadcaster.register(conn)
        broadcaster.join(conn, "lobby")
        broadcaster.unregister(conn)
        assert broadcaster.connection_count() == 0
        assert broadcaster.rooms == {}
        assert conn.rooms == set()

    def test_connection_count_per_user(self, broadcaster, make_connection):
        for conn in (make_connection("u1"), make_connection("u1"), make_connection("u2")):
            broadcaster.register(conn)
        assert broadcaster.connection_count() == 3
        assert broadcaster.connection_count("u1") == 2
        assert broadcaster.connection_count("nobody") == 0

    def test_leave_room_not_joined(self, broadcaster, make_connection):
        conn = make_connection("u1")
        broadcaster.register(conn)
        broadcaster.leave(conn, "never-joined")
        assert conn.rooms == {"user:u1"}

    def test_private_room_detection(self, broadcaster):
        assert broadcaster.is_private_room("user:u1")
        assert not broadcaster.is_private_room("lobby")


class TestDelivery:
    """Addressing rules for ToUser, ToRoom and Broadcast."""

    @pytest.mark.asyncio
    async def test_to_user_delivers_and_echoes(self, broadcaster, make_connection):
        a, b, c = make_connection("a"), make_connection("b"), make_connection("c")
        for conn in (a, b, c):
            broadcaster.register(conn)

        delivered = await broadcaster.deliver(chat(), ToUser("b"), sender=a)

        assert delivered == 2
        assert len(b.websocket.sent) == 1
        assert len(a.websocket.sent) == 1
        assert c.websocket.sent == []

    @pytest.mark.asyncio
    async def test_to_user_reaches_every_connection_of_user(self, broadcaster, make_connection):
        a, b1, b2 = make_connection("a"), make_connection("b"), make_connection("b")
        for conn in (a, b1, b2):
            broadcaster.register(conn)
        await broadcaster.deliver(chat(), ToUser("b"), sender=a)
        assert len(b1.websocket.sent) == 1
        assert len(b2.websocket.sent) == 1

    @pytest.mark.asyncio
    async def test_to_self_is_not_doubled(self, broadcaster, make_connection):
        a = make_connection("a")
        broadcaster.register(a)
        assert await broadcaster.deliver(chat(), ToUser("a"), sender=a) == 1
        assert len(a.websocket.sent) == 1

    @pytest.mark.asyncio
    async def test_to_user_without_echo(self, broadcaster, make_connection):
        a, b = make_connection("a"), make_connection("b")
        broadcaster.register(a)
        broadcaster.register(b)
        await broadcaster.deliver(chat(), ToUser("b", echo_sender=False), sender=a)
        assert a.websocket.sent == []
        assert len(b.websocket.sent) == 1

    @pytest.mark.asyncio
    async def test_to_offline_user_only_echoes(self, broadcaster, make_connection):
        a = make_connection("a")
        broadcaster.register(a)
        assert await broadcaster.deliver(chat(), ToUser("ghost"), sender=a) == 1

    @pytest.mark.asyncio
    async def test_to_room_excludes_sender(self, broadcaster, make_connection):
        a, b, outsider = make_connection("a"), make_connection("b"), make_connection("c")
        for conn in (a, b, outsider):
            broadcaster.register(conn)
        broadcaster.join(a, "lobby")
        broadcaster.join(b, "lobby")

        delivered = await broadcaster.deliver(chat(), ToRoom("lobby"), sender=b)

        assert delivered == 1
        assert len(a.websocket.sent) == 1
        assert b.websocket.sent == []
        assert outsider.websocket.sent == []

    @pytest.mark.asyncio
    async def test_broadcast_includes_sender(self, broadcaster, make_connection):
        conns = [make_connection(f"u{i}") for i in range(3)]
        for conn in conns:
            broadcaster.register(conn)
        assert await broadcaster.deliver(chat(), Broadcast(), sender=conns[0]) == 3
        assert all(len(conn.websocket.sent) == 1 for conn in conns)

    @pytest.mark.asyncio
    async def test_frames_are_wire_dicts(self, broadcaster, make_connection):
        a = make_connection("a")
        broadcaster.register(a)
        message = chat("hello")
        await broadcaster.deliver(message, Broadcast())
        assert a.websocket.sent == [message.to_wire()]

    @pytest.mark.asyncio
    async def test_failed_connection_is_closed_and_skipped(self, broadcaster, make_connection):
        healthy, dead = make_connection("a"), make_connection("b", fail=True)
        broadcaster.register(healthy)
        broadcaster.register(dead)
        broadcaster.join(dead, "lobby")

        delivered = await broadcaster.deliver(chat(), Broadcast())

        assert delivered == 1
        assert dead.alive is False
        assert dead.websocket.closed is True
        assert len(healthy.websocket.sent) == 1

        # Still registered until its session closes
        assert broadcaster.connection_count("b") == 1
        assert broadcaster.resolve(Broadcast()) == [healthy]
        assert await broadcaster.deliver(chat(), ToRoom("lobby")) == 0
        assert await broadcaster.send(dead, {"type": "error", "error": "x"}) is False

    @pytest.mark.asyncio
    async def test_empty_recipients(self, broadcaster):
        assert await broadcaster.deliver(chat(), ToRoom("empty")) == 0

    def test_unknown_target_rejected(self, broadcaster):
        with pytest.raises(TypeError):
            broadcaster.resolve("lobby")
