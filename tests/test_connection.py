"""Connection lifecycle: disconnect policy, reconnects and terminal closes."""

from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio

from HyperBridge.connection import (
    ConnectionManager,
    ConnectionState,
    DisconnectReason,
    SocketEvent,
    backoff_delay,
    classify_disconnect,
)
from HyperBridge.connection.base import load_socket_factory
from HyperBridge.connection.policy import MAX_BACKOFF
from HyperBridge.errors import ConnectionFatalError, ConnectionNotOpenError
from HyperBridge.kernel.signal_hub import SignalKind
from HyperBridge.session import CORE_ARTIFACT, SessionStore

from tests.conftest import build_config


async def _settle(predicate, timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


class TestPolicy:
    @pytest.mark.parametrize(
        "code,reason",
        [
            (428, DisconnectReason.CONNECTION_CLOSED),
            (408, DisconnectReason.CONNECTION_LOST),
            (440, DisconnectReason.CONNECTION_REPLACED),
            (401, DisconnectReason.LOGGED_OUT),
            (500, DisconnectReason.BAD_SESSION),
            (515, DisconnectReason.RESTART_REQUIRED),
            (411, DisconnectReason.MULTIDEVICE_MISMATCH),
            (403, DisconnectReason.FORBIDDEN),
            (503, DisconnectReason.UNAVAILABLE_SERVICE),
        ],
    )
    def test_known_codes(self, code, reason):
        assert classify_disconnect(code) is reason

    def test_unknown_and_missing_codes_are_retryable(self):
        assert classify_disconnect(None) is DisconnectReason.UNKNOWN
        assert classify_disconnect(999) is DisconnectReason.UNKNOWN
        assert not DisconnectReason.UNKNOWN.terminal

    def test_terminal_reasons(self):
        terminal = {r for r in DisconnectReason if r.terminal}
        assert terminal == {
            DisconnectReason.LOGGED_OUT,
            DisconnectReason.BAD_SESSION,
            DisconnectReason.FORBIDDEN,
            DisconnectReason.MULTIDEVICE_MISMATCH,
        }

    def test_backoff_modes(self):
        assert backoff_delay(3, 5.0) == 15.0
        assert backoff_delay(3, 5.0, "exponential") == 20.0
        assert backoff_delay(50, 5.0, "exponential") == MAX_BACKOFF
        assert backoff_delay(0, 5.0) == 5.0

    def test_load_socket_factory_rejects_bad_path(self):
        with pytest.raises(ValueError):
            load_socket_factory("no_colon_here")
        with pytest.raises(ValueError):
            load_socket_factory("os.path:sep")


@pytest_asyncio.fixture
async def sessions(storage, config):
    return SessionStore(storage, config.get("whatsapp.auth_dir"))


@pytest_asyncio.fixture
async def manager(config, sessions, sockets, hub):
    mgr = ConnectionManager(config, sessions, sockets, hub)
    yield mgr
    await mgr.stop()


def _record(hub, kind):
    seen = []
    hub.connect(kind, lambda signal: seen.append(signal))
    return seen


class TestConnectionManager:
    async def test_open_resets_attempts_and_emits(self, manager, sockets, hub):
        opened = _record(hub, SignalKind.CONNECTION_OPEN)
        await manager.start()
        assert manager.state is ConnectionState.CONNECTING
        with pytest.raises(ConnectionNotOpenError):
            manager.require_socket()

        await sockets.latest.open("1555:2@s.whatsapp.net")
        assert manager.state is ConnectionState.OPEN
        assert manager.is_open
        assert manager.attempts == 0
        assert opened[0].payload == "1555:2@s.whatsapp.net"

    async def test_retryable_close_replaces_socket(self, manager, sockets, hub):
        closed = _record(hub, SignalKind.CONNECTION_CLOSED)
        await manager.start()
        first = sockets.latest
        await first.open()

        await first.close(428)
        assert manager.attempts == 1
        await _settle(lambda: len(sockets.sockets) == 2)

        assert first.ended
        assert first.listener_count(SocketEvent.CONNECTION_UPDATE) == 0
        assert manager.socket is sockets.latest
        assert sockets.latest.connect_calls == 1
        assert closed[0].payload == "CONNECTION_CLOSED"
        assert closed[0].metadata["status_code"] == 428

        await sockets.latest.open()
        assert manager.attempts == 0

    async def test_subscriptions_follow_new_sockets(self, manager, sockets):
        seen = []
        manager.subscribe(SocketEvent.MESSAGES_UPSERT, seen.append)
        await manager.start()
        await sockets.latest.close(515)
        await _settle(lambda: len(sockets.sockets) == 2)

        await sockets.latest.emit(SocketEvent.MESSAGES_UPSERT, {"type": "notify"})
        assert seen == [{"type": "notify"}]

    async def test_exceeding_attempts_is_fatal_but_keeps_session(self, manager, sessions, sockets, hub):
        sessions.auth_dir.mkdir(parents=True)
        (sessions.auth_dir / CORE_ARTIFACT).write_text("{}", encoding="utf-8")
        await sessions.save()
        fatal = _record(hub, SignalKind.CONNECTION_FATAL)

        await manager.start()
        for expected in (1, 2):
            await sockets.latest.close(408)
            await _settle(lambda: len(sockets.sockets) == expected + 1)
        await sockets.latest.close(408)

        assert manager.state is ConnectionState.PERMANENTLY_CLOSED
        with pytest.raises(ConnectionFatalError):
            await manager.wait_closed()
        assert len(fatal) == 1
        assert await sessions.exists() is True

    async def test_terminal_close_clears_session(self, manager, sessions, sockets):
        sessions.auth_dir.mkdir(parents=True)
        (sessions.auth_dir / CORE_ARTIFACT).write_text("{}", encoding="utf-8")
        await sessions.save()

        await manager.start()
        await sockets.latest.open()
        await sockets.latest.close(401)

        assert manager.state is ConnectionState.PERMANENTLY_CLOSED
        with pytest.raises(ConnectionFatalError) as info:
            await manager.wait_closed()
        assert info.value.status_code == 401
        assert await sessions.exists() is False
        assert not sessions.auth_dir.exists()
        assert len(sockets.sockets) == 1

    async def test_qr_refresh_does_not_count(self, tmp_path, sessions, sockets, hub):
        config = build_config(tmp_path, whatsapp__qr_timeout=0.05)
        manager = ConnectionManager(config, sessions, sockets, hub)
        codes = _record(hub, SignalKind.CONNECTION_QR)
        try:
            await manager.start()
            from HyperBridge.connection.base import ConnectionUpdate

            await sockets.latest.emit(SocketEvent.CONNECTION_UPDATE, ConnectionUpdate(qr="2@abc"))
            assert manager.state is ConnectionState.AWAITING_SCAN
            assert codes[0].payload == "2@abc"

            await _settle(lambda: len(sockets.sockets) == 2)
            assert manager.attempts == 0
        finally:
            await manager.stop()

    async def test_watchdog_counts_stuck_handshake(self, tmp_path, sessions, sockets, hub):
        config = build_config(tmp_path, whatsapp__connect_timeout=0.05)
        manager = ConnectionManager(config, sessions, sockets, hub)
        try:
            await manager.start()
            await _settle(lambda: len(sockets.sockets) >= 2)
            assert manager.attempts >= 1
        finally:
            await manager.stop()

    async def test_creds_update_persists_session(self, manager, sessions, sockets):
        await manager.start()
        (sessions.auth_dir / CORE_ARTIFACT).write_text('{"fresh": true}', encoding="utf-8")
        await sockets.latest.emit(SocketEvent.CREDS_UPDATE, {})
        assert await sessions.exists() is True

    async def test_stop_releases_socket(self, manager, sockets):
        await manager.start()
        await sockets.latest.open()
        await manager.stop()
        assert manager.state is ConnectionState.DISCONNECTED
        assert sockets.latest.ended
        assert manager.socket is None
        await manager.wait_closed()
