from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from server.core import BroadcastServer, ConnectionManager, SessionState, SubscriberSession
from shared.protocol import ChangedMsg, ConnectionFailure, UnknownMsg, WatchingMsg, decode_msg


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


async def _read_msg(reader: asyncio.StreamReader):
    return decode_msg(await asyncio.wait_for(reader.readuntil(b"\n"), 2.0))


async def _subscribe(server: BroadcastServer):
    reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
    return reader, writer


def _fake_session(**kwargs) -> SubscriberSession:
    writer = MagicMock()
    writer.wait_closed = AsyncMock()
    writer.drain = AsyncMock()
    return SubscriberSession(reader=MagicMock(), writer=writer, peername="fake", **kwargs)


@pytest.mark.asyncio
async def test_subscriber_receives_watching_then_changes():
    server = BroadcastServer("127.0.0.1", 0, watch_file="target.txt")
    await server.start()
    try:
        reader, writer = await _subscribe(server)
        assert await _read_msg(reader) == WatchingMsg(file="target.txt")
        await _wait_for(lambda: len(server.connection_manager) == 1)

        assert server.notify_changed("target.txt", 1358175758495) == 1
        server.notify_changed("target.txt", 1358175758496)
        assert await _read_msg(reader) == ChangedMsg(file="target.txt", timestamp=1358175758495)
        assert await _read_msg(reader) == ChangedMsg(file="target.txt", timestamp=1358175758496)
        writer.close()
        await writer.wait_closed()
    finally:
        await server.stop()
        await server.close_all()


@pytest.mark.asyncio
async def test_no_watching_frame_without_watch_file():
    server = BroadcastServer("127.0.0.1", 0)
    await server.start()
    try:
        reader, writer = await _subscribe(server)
        await _wait_for(lambda: len(server.connection_manager) == 1)
        server.notify_changed("a.txt", 7)
        assert await _read_msg(reader) == ChangedMsg(file="a.txt", timestamp=7)
        writer.close()
    finally:
        await server.stop()
        await server.close_all()


@pytest.mark.asyncio
async def test_disconnect_one_of_three_during_broadcast():
    server = BroadcastServer("127.0.0.1", 0)
    await server.start()
    try:
        clients = [await _subscribe(server) for _ in range(3)]
        await _wait_for(lambda: len(server.connection_manager) == 3)

        # Drop one subscriber and broadcast before the server has noticed.
        clients[0][1].close()
        server.notify_changed("a.txt", 1)
        for reader, _ in clients[1:]:
            assert await _read_msg(reader) == ChangedMsg(file="a.txt", timestamp=1)

        await _wait_for(lambda: len(server.connection_manager) == 2)
        assert server.notify_changed("a.txt", 2) == 2
        for reader, _ in clients[1:]:
            assert await _read_msg(reader) == ChangedMsg(file="a.txt", timestamp=2)
        for _, writer in clients[1:]:
            writer.close()
        await _wait_for(lambda: len(server.connection_manager) == 0)
    finally:
        await server.stop()
        await server.close_all()


@pytest.mark.asyncio
async def test_stop_keeps_live_sessions():
    server = BroadcastServer("127.0.0.1", 0)
    await server.start()
    port = server.port
    try:
        reader, writer = await _subscribe(server)
        await _wait_for(lambda: len(server.connection_manager) == 1)
        await server.stop()
        assert not server.is_serving

        server.notify_changed("a.txt", 3)
        assert await _read_msg(reader) == ChangedMsg(file="a.txt", timestamp=3)
        with pytest.raises(OSError):
            await asyncio.open_connection("127.0.0.1", port)
        writer.close()
    finally:
        await server.close_all()


@pytest.mark.asyncio
async def test_garbage_from_subscriber_gets_no_reply():
    server = BroadcastServer("127.0.0.1", 0)
    await server.start()
    try:
        reader, writer = await _subscribe(server)
        writer.write(b'{"type":"changed"\nnonsense\n')
        await writer.drain()
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(reader.readuntil(b"\n"), 0.2)
        assert len(server.connection_manager) == 1
        writer.close()
    finally:
        await server.stop()
        await server.close_all()


@pytest.mark.asyncio
async def test_on_connection_callback_gets_session():
    seen = []

    async def on_connection(session: SubscriberSession) -> None:
        seen.append(session)

    server = BroadcastServer("127.0.0.1", 0, on_connection=on_connection)
    await server.start()
    try:
        _, writer = await _subscribe(server)
        await _wait_for(lambda: len(seen) == 1)
        assert seen[0].is_alive
        writer.close()
        await _wait_for(lambda: len(server.connection_manager) == 0)
        assert not seen[0].is_alive
    finally:
        await server.stop()
        await server.close_all()


@pytest.mark.asyncio
async def test_session_close_releases_timers():
    fired = []
    session = _fake_session()
    session.start()
    session.call_later(10, fired.append, "late")
    assert session.pending_timers == 1

    await session.close()
    await session.close()

    assert session.state is SessionState.DISCONNECTED
    assert session.pending_timers == 0
    assert fired == []
    session.writer.close.assert_called_once()


@pytest.mark.asyncio
async def test_timer_fires_and_forgets_itself():
    fired = []
    session = _fake_session()
    session.call_later(0, fired.append, "now")
    await _wait_for(lambda: fired == ["now"])
    assert session.pending_timers == 0
    await session.close()


@pytest.mark.asyncio
async def test_stalled_subscriber_is_torn_down():
    closed = []

    async def on_close(session: SubscriberSession) -> None:
        closed.append(session)

    # Writer task never started: frames pile up as they would for a stalled peer.
    session = _fake_session(max_pending=2, on_close=on_close)
    message = ChangedMsg(file="a.txt", timestamp=1)
    assert session.enqueue(message)
    assert session.enqueue(message)
    assert not session.enqueue(message)

    await _wait_for(lambda: closed == [session])
    assert session.state is SessionState.DISCONNECTED
    assert session.pending_frames == 0
    assert not session.enqueue(message)


@pytest.mark.asyncio
async def test_write_failure_disconnects_session():
    session = _fake_session()
    session.writer.drain = AsyncMock(side_effect=ConnectionResetError("peer gone"))
    session.start()
    assert session.enqueue(ChangedMsg(file="a.txt", timestamp=1))
    await _wait_for(lambda: not session.is_alive)
    assert session.frames_sent == 0


@pytest.mark.asyncio
async def test_failed_session_refuses_messages_immediately():
    closed = []

    async def on_close(session: SubscriberSession) -> None:
        closed.append(session)

    session = _fake_session(on_close=on_close)
    session.fail(ConnectionFailure("peer gone"))
    assert session.state is SessionState.DISCONNECTED
    assert not session.is_alive
    assert not session.enqueue(ChangedMsg(file="a.txt", timestamp=1))

    await _wait_for(lambda: closed == [session])
    session.writer.close.assert_called_once()


@pytest.mark.asyncio
async def test_close_does_not_wait_on_a_blocked_drain():
    drain_started = asyncio.Event()

    async def stuck_drain():
        drain_started.set()
        await asyncio.sleep(3600)

    session = _fake_session(write_timeout=30)
    session.writer.drain = stuck_drain
    session.start()
    assert session.enqueue(ChangedMsg(file="a.txt", timestamp=1))
    await asyncio.wait_for(drain_started.wait(), 2.0)

    await asyncio.wait_for(session.close(), 2.0)
    assert session.state is SessionState.DISCONNECTED
    assert session.frames_sent == 0


@pytest.mark.asyncio
async def test_unencodable_message_skips_only_that_message():
    session = _fake_session()
    session.start()
    assert not session.enqueue(UnknownMsg(type="gauge", value=float("nan")))
    assert session.is_alive
    assert session.enqueue(ChangedMsg(file="a.txt", timestamp=1))
    await _wait_for(lambda: session.frames_sent == 1)
    session.writer.write.assert_called_once_with(b'{"type":"changed","file":"a.txt","timestamp":1}\n')
    await session.close()


class _FakeSession:
    def __init__(self, session_id, on_enqueue=None):
        self.session_id = session_id
        self.is_alive = True
        self.received = []
        self._on_enqueue = on_enqueue

    def enqueue(self, message):
        if not self.is_alive:
            return False
        self.received.append(message)
        if self._on_enqueue:
            self._on_enqueue()
        return True


def test_broadcast_survives_disconnect_mid_iteration():
    manager = ConnectionManager()
    victim = _FakeSession("b")

    def drop_victim():
        victim.is_alive = False
        manager.unregister(victim)

    first = _FakeSession("a", on_enqueue=drop_victim)
    third = _FakeSession("c")
    for session in (first, victim, third):
        manager.register(session)

    message = ChangedMsg(file="a.txt", timestamp=1)
    assert manager.broadcast(message) == 2
    assert first.received == [message]
    assert victim.received == []
    assert third.received == [message]

    assert manager.broadcast(message) == 2
    assert len(manager) == 2
    assert victim.received == []


def test_snapshot_skips_dead_sessions():
    manager = ConnectionManager()
    alive, dead = _FakeSession("a"), _FakeSession("b")
    dead.is_alive = False
    manager.register(alive)
    manager.register(dead)
    assert manager.snapshot() == (alive,)
    assert list(manager) == [alive]
