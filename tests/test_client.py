from __future__ import annotations

import asyncio
import socket

import pytest

from client.config import DEFAULT_CONFIG
from client.core import NetworkClient
from client.features import WatchReporter
from server.fragmenting import FIRST_CHUNK, FragmentingService
from shared.protocol import ChangedMsg, ConnectionFailure, TruncatedStream, UnknownMessageType, WatchingMsg


def _config(port: int, **overrides):
    return {
        **DEFAULT_CONFIG,
        "server_host": "127.0.0.1",
        "server_port": port,
        "reconnect_backoff": 0,
        "max_reconnect_retries": 0,
        **overrides,
    }


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


async def _run_against(service: FragmentingService, strict: bool = False, **overrides):
    await service.start()
    try:
        network = NetworkClient(_config(service.port, **overrides))
        reporter = WatchReporter(network, strict=strict)
        await network.connect()
        await asyncio.wait_for(network.run(), 2.0)
        return network, reporter
    finally:
        await service.stop()


@pytest.mark.asyncio
async def test_client_reassembles_split_frame():
    network, reporter = await _run_against(FragmentingService("127.0.0.1", 0, delay=0.05))
    assert network.messages_received == 1
    assert reporter.last_message == ChangedMsg(file="target.txt", timestamp=1358175758495)
    assert network.last_error is None
    assert not network.connected


@pytest.mark.asyncio
async def test_client_reassembles_with_tiny_reads():
    network, reporter = await _run_against(
        FragmentingService("127.0.0.1", 0, delay=0.01), read_chunk_size=3
    )
    assert network.messages_received == 1
    assert reporter.last_message == ChangedMsg(file="target.txt", timestamp=1358175758495)


@pytest.mark.asyncio
async def test_truncated_stream_is_reported_and_discarded():
    service = FragmentingService("127.0.0.1", 0, delay=0.01, second_chunk=b'et.txt","timestamp":1}')
    network, reporter = await _run_against(service)
    assert network.messages_received == 0
    assert reporter.last_message is None
    assert isinstance(network.last_error, TruncatedStream)
    assert network.last_error.partial == FIRST_CHUNK + b'et.txt","timestamp":1}'
    assert network.decoder.pending == b""


@pytest.mark.asyncio
async def test_malformed_frame_is_skipped():
    service = FragmentingService(
        "127.0.0.1", 0, delay=0.01, first_chunk=b'{"type":"changed"\n', second_chunk=b'{"type":"watching","file":"a"}\n'
    )
    network, reporter = await _run_against(service)
    assert network.messages_received == 1
    assert reporter.last_message == WatchingMsg(file="a")
    assert network.last_error is None


@pytest.mark.asyncio
async def test_unknown_type_is_reported_by_default():
    service = FragmentingService(
        "127.0.0.1", 0, delay=0.01, first_chunk=b'{"type":"mystery","x":1}\n', second_chunk=b'{"type":"watching","file":"a"}\n'
    )
    network, reporter = await _run_against(service)
    assert reporter.unknown_count == 1
    assert reporter.last_unknown.raw == {"type": "mystery", "x": 1}
    assert reporter.last_message == WatchingMsg(file="a")
    assert network.messages_received == 2
    assert network.last_error is None


@pytest.mark.asyncio
async def test_unknown_type_closes_connection_in_strict_mode():
    service = FragmentingService(
        "127.0.0.1", 0, delay=0.5, first_chunk=b'{"type":"mystery"}\n', second_chunk=b'{"type":"watching","file":"a"}\n'
    )
    network, reporter = await _run_against(service, strict=True)
    assert isinstance(network.last_error, UnknownMessageType)
    assert reporter.unknown_count == 1
    assert reporter.last_message is None
    assert not network.connected


@pytest.mark.asyncio
async def test_client_leaving_early_cancels_server_timer():
    service = FragmentingService("127.0.0.1", 0, delay=30)
    await service.start()
    try:
        network = NetworkClient(_config(service.port))
        await network.connect()
        manager = service.server.connection_manager
        await _wait_for(lambda: len(manager) == 1)
        session = manager.snapshot()[0]
        assert session.pending_timers == 1

        await network.close()
        await _wait_for(lambda: len(manager) == 0)
        assert not session.is_alive
        assert session.pending_timers == 0
        assert network.decoder.pending == b""
    finally:
        await service.stop()


@pytest.mark.asyncio
async def test_connect_gives_up_after_retries():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    network = NetworkClient(_config(port, max_reconnect_retries=1))
    with pytest.raises(ConnectionFailure):
        await network.connect()
    assert not network.connected
