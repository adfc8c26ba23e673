"""
连接生命周期管理器
Connection lifecycle manager.

状态机 / State machine:
    DISCONNECTED -> CONNECTING -> AWAITING_SCAN -> OPEN -> RECONNECTING -> PERMANENTLY_CLOSED

同一时刻最多只有一个套接字和一个重连任务；重新打开前总是先释放旧套接字。
At most one socket and one reconnect task exist at a time; the old socket is
always released before a new one is opened.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import Enum
from typing import Any

from HyperBridge.config.manager import ConfigManager
from HyperBridge.connection.base import (
    ConnectionUpdate,
    MessengerSocket,
    SocketEvent,
    SocketFactory,
)
from HyperBridge.connection.policy import DisconnectReason, backoff_delay, classify_disconnect
from HyperBridge.errors import ConnectionFatalError, ConnectionNotOpenError
from HyperBridge.kernel.signal_hub import SignalHub, SignalKind
from HyperBridge.session.store import SessionStore

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """连接状态 / Connection state."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_SCAN = "awaiting_scan"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    PERMANENTLY_CLOSED = "permanently_closed"


class ConnectionManager:
    """
    连接管理器 - 负责握手、扫码登录、断开分类和重连
    Connection manager - handshake, QR login, disconnect classification, reconnects.
    """

    def __init__(
        self,
        config: ConfigManager,
        sessions: SessionStore,
        socket_factory: SocketFactory,
        hub: SignalHub,
    ) -> None:
        self._config = config
        self._sessions = sessions
        self._factory = socket_factory
        self._hub = hub

        self._state = ConnectionState.DISCONNECTED
        self._socket: MessengerSocket | None = None
        self._attempts = 0
        self._reconnect_task: asyncio.Task | None = None
        self._watchdog_task: asyncio.Task | None = None
        self._qr_task: asyncio.Task | None = None
        self._stopping = False
        self._fatal: ConnectionFatalError | None = None
        self._closed = asyncio.Event()

        # 转发给管线的订阅，每个新套接字都会重新挂载
        self._subscriptions: list[tuple[SocketEvent, Callable[[Any], Any]]] = []

    # ==================== 属性 / Properties ====================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def socket(self) -> MessengerSocket | None:
        return self._socket

    @property
    def is_open(self) -> bool:
        return self._state == ConnectionState.OPEN and self._socket is not None

    @property
    def user_id(self) -> str | None:
        if self._socket is None or not self._socket.user:
            return None
        return self._socket.user.get("id")

    def require_socket(self) -> MessengerSocket:
        """
        获取已打开的套接字
        Get the open socket.

        Raises:
            ConnectionNotOpenError: 当前没有打开的连接。
        """
        if not self.is_open:
            raise ConnectionNotOpenError(f"WhatsApp 未连接 (状态={self._state.value})")
        assert self._socket is not None
        return self._socket

    def subscribe(self, event: SocketEvent, handler: Callable[[Any], Any]) -> None:
        """
        订阅套接字事件（对当前及之后的每个套接字生效）
        Subscribe to a socket event on the current and every future socket.
        """
        self._subscriptions.append((event, handler))
        if self._socket is not None:
            self._socket.on(event, handler)

    # ==================== 生命周期 / Lifecycle ====================

    async def start(self) -> None:
        """
        恢复凭据并打开第一个套接字
        Restore credentials and open the first socket.
        """
        self._stopping = False
        self._closed.clear()

        if self._config.get("whatsapp.clear_auth_on_start", False):
            logger.warning("配置要求启动时清除凭据")
            await self._sessions.clear()

        restored = await self._sessions.load()
        if not restored:
            logger.info("没有可用凭据，等待扫码登录")

        await self._open_socket()

    async def stop(self) -> None:
        """
        为关闭流程释放套接字
        Release the socket for shutdown.
        """
        self._stopping = True
        self._cancel_timers()
        if self._reconnect_task and not self._reconnect_task.done():
            if self._reconnect_task is not asyncio.current_task():
                self._reconnect_task.cancel()
        self._reconnect_task = None
        await self._release_socket()
        if self._state != ConnectionState.PERMANENTLY_CLOSED:
            self._set_state(ConnectionState.DISCONNECTED)
        self._closed.set()

    async def wait_closed(self) -> None:
        """
        等待连接永久关闭；若因致命错误关闭则抛出
        Wait for permanent closure; raise the fatal error if one occurred.
        """
        await self._closed.wait()
        if self._fatal is not None:
            raise self._fatal

    async def send_message(self, conversation_id: str, content: dict[str, Any]) -> dict[str, Any] | None:
        """
        发往 WhatsApp 的唯一出口
        The single outbound path to WhatsApp.
        """
        return await self.require_socket().send_message(conversation_id, content)

    # ==================== 内部 / Internals ====================

    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state:
            logger.debug("连接状态: %s -> %s", self._state.value, state.value)
            self._state = state

    async def _open_socket(self) -> None:
        if self._stopping:
            return

        self._set_state(ConnectionState.CONNECTING)
        sock = self._factory(str(self._sessions.auth_dir))
        sock.on(SocketEvent.CONNECTION_UPDATE, lambda update: self._on_connection_update(sock, update))
        sock.on(SocketEvent.CREDS_UPDATE, lambda _payload: self._on_creds_update(sock))
        for event, handler in self._subscriptions:
            sock.on(event, handler)
        self._socket = sock

        self._arm_watchdog()
        logger.info("正在连接 WhatsApp...")
        try:
            await sock.connect()
        except Exception as exc:
            logger.error("打开 WhatsApp 套接字失败: %s", exc)
            await self._schedule_reconnect(DisconnectReason.UNKNOWN)

    async def _release_socket(self) -> None:
        sock, self._socket = self._socket, None
        if sock is None:
            return
        sock.remove_all_listeners()
        try:
            await sock.end()
        except Exception as exc:
            logger.debug("关闭旧套接字时出错: %s", exc)

    async def _on_creds_update(self, sock: MessengerSocket) -> None:
        if sock is not self._socket:
            return
        await self._sessions.save()

    async def _on_connection_update(self, sock: MessengerSocket, update: ConnectionUpdate) -> None:
        if sock is not self._socket or self._stopping:
            return

        if update.qr:
            self._cancel_timers()
            self._set_state(ConnectionState.AWAITING_SCAN)
            logger.info("收到登录二维码，请用 WhatsApp 扫码")
            self._arm_qr_timeout()
            await self._hub.emit_new(SignalKind.CONNECTION_QR, payload=update.qr, source="connection")

        if update.connection == "open":
            self._cancel_timers()
            self._attempts = 0
            self._set_state(ConnectionState.OPEN)
            logger.info("已连接到 WhatsApp，账号: %s", self.user_id or "未知")
            await self._hub.emit_new(SignalKind.CONNECTION_OPEN, payload=self.user_id, source="connection")

        elif update.connection == "close":
            self._cancel_timers()
            reason = classify_disconnect(update.status_code)
            logger.warning(
                "WhatsApp 连接已关闭: %s (%s)", update.error or reason.name, update.status_code
            )
            await self._hub.emit_new(
                SignalKind.CONNECTION_CLOSED,
                payload=reason.name,
                source="connection",
                status_code=update.status_code,
            )
            await self._handle_disconnect(reason, update.status_code)

        elif update.connection == "connecting":
            logger.debug("WhatsApp 握手中...")

    async def _handle_disconnect(self, reason: DisconnectReason, status_code: int | None) -> None:
        if self._stopping:
            return
        if reason.terminal:
            logger.error("不可恢复的断开原因 %s，清除凭据", reason.name)
            await self._fail(reason.name, status_code, clear_session=True)
            return
        await self._schedule_reconnect(reason)

    async def _schedule_reconnect(self, reason: DisconnectReason, counted: bool = True) -> None:
        """
        安排唯一的重连任务
        Schedule the single reconnect task.

        counted=False 用于二维码刷新，不消耗重连次数。
        counted=False is used for QR refreshes and does not consume the budget.
        """
        if self._stopping or self._state == ConnectionState.PERMANENTLY_CLOSED:
            return
        if self._reconnect_task and not self._reconnect_task.done():
            logger.debug("已有重连任务在等待，忽略 %s", reason.name)
            return

        delay = 0.0
        if counted:
            self._attempts += 1
            max_attempts = int(self._config.get("whatsapp.max_reconnect_attempts", 5))
            if self._attempts > max_attempts:
                logger.error("已达到最大重连次数 (%d)", max_attempts)
                await self._fail("max reconnect attempts exceeded", None, clear_session=False)
                return
            delay = backoff_delay(
                self._attempts,
                float(self._config.get("whatsapp.reconnect_delay", 5.0)),
                self._config.get("whatsapp.backoff", "linear"),
            )
            logger.warning(
                "第 %d/%d 次重连将在 %.1f 秒后进行", self._attempts, max_attempts, delay
            )

        self._set_state(ConnectionState.RECONNECTING)
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            await self._release_socket()
        finally:
            self._reconnect_task = None
        await self._open_socket()

    async def _fail(self, reason: str, status_code: int | None, clear_session: bool) -> None:
        self._fatal = ConnectionFatalError(reason, status_code)
        self._set_state(ConnectionState.PERMANENTLY_CLOSED)
        self._cancel_timers()
        await self._release_socket()
        if clear_session:
            await self._sessions.clear()
        await self._hub.emit_new(
            SignalKind.CONNECTION_FATAL,
            payload=reason,
            source="connection",
            status_code=status_code,
        )
        self._closed.set()

    # ==================== 计时器 / Timers ====================

    def _arm_watchdog(self) -> None:
        self._cancel_timers()
        timeout = float(self._config.get("whatsapp.connect_timeout", 60.0))
        self._watchdog_task = asyncio.create_task(self._watchdog(timeout))

    def _arm_qr_timeout(self) -> None:
        timeout = float(self._config.get("whatsapp.qr_timeout", 30.0))
        self._qr_task = asyncio.create_task(self._qr_timeout(timeout))

    async def _watchdog(self, timeout: float) -> None:
        await asyncio.sleep(timeout)
        self._watchdog_task = None
        if self._state in (ConnectionState.CONNECTING, ConnectionState.RECONNECTING):
            logger.warning("连接超时 (%.0f 秒)，准备重试", timeout)
            await self._schedule_reconnect(DisconnectReason.CONNECTION_LOST)

    async def _qr_timeout(self, timeout: float) -> None:
        await asyncio.sleep(timeout)
        self._qr_task = None
        if self._state == ConnectionState.AWAITING_SCAN:
            logger.info("二维码 %.0f 秒内未被扫描，重新生成", timeout)
            await self._schedule_reconnect(DisconnectReason.UNKNOWN, counted=False)

    def _cancel_timers(self) -> None:
        current = asyncio.current_task()
        for task in (self._watchdog_task, self._qr_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._watchdog_task = None
        self._qr_task = None
