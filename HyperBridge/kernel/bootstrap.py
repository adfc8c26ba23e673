"""
启动引导器 - 桥接程序的生命周期管理
Bootstrap - bridge lifecycle management.

负责按正确顺序初始化所有子系统，并管理关闭流程。
Responsible for initializing all subsystems in the correct order
and managing the shutdown process.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Any

from HyperBridge import __app_name__
from HyperBridge.config.manager import ConfigManager
from HyperBridge.connection.base import SocketFactory, load_socket_factory
from HyperBridge.connection.manager import ConnectionManager
from HyperBridge.directory.service import BridgeDirectory
from HyperBridge.errors import BridgeError
from HyperBridge.gateway.base import ThreadGateway
from HyperBridge.kernel.signal_hub import Signal, SignalHub, SignalKind
from HyperBridge.message.whatsapp import to_jid
from HyperBridge.pack.builtin.bridge_commands import BridgeCommandsPack
from HyperBridge.pack.registry import PackRegistry
from HyperBridge.pipeline.media import MediaTranscoder
from HyperBridge.pipeline.notifier import Notifier
from HyperBridge.pipeline.sync import MessagePipeline
from HyperBridge.session.store import SessionStore
from HyperBridge.store.engine import StorageEngine

logger = logging.getLogger(__name__)


class BridgeApp:
    """
    桥接应用 - 编排整个桥接的启动和关闭
    Bridge application - orchestrates startup and shutdown of the bridge.

    启动顺序：
    1. 初始化存储层和会话存储
    2. 创建 Telegram 网关
    3. 加载桥接目录
    4. 创建连接管理器和同步管线
    5. 注册命令扩展包
    6. 启动网关轮询
    7. 连接 WhatsApp
    8. 发射 SYSTEM_READY 信号

    关闭顺序与之相反：先排空管线，再释放连接、停止网关、关闭存储。
    Shutdown runs in reverse: drain the pipeline, release the connection,
    halt the gateway, dispose the store.
    """

    def __init__(
        self,
        config: ConfigManager,
        socket_factory: SocketFactory | None = None,
        gateway: ThreadGateway | None = None,
    ) -> None:
        self.config = config
        self.hub = SignalHub()
        self._socket_factory = socket_factory
        self._gateway = gateway

        self.storage: StorageEngine | None = None
        self.sessions: SessionStore | None = None
        self.directory: BridgeDirectory | None = None
        self.transcoder: MediaTranscoder | None = None
        self._connection: ConnectionManager | None = None
        self.pipeline: MessagePipeline | None = None
        self.notifier: Notifier | None = None
        self.packs: PackRegistry | None = None

        self._shutdown_event = asyncio.Event()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._started = False
        self._stopped = False

    # ==================== 属性 / Properties ====================

    @property
    def gateway(self) -> ThreadGateway:
        if self._gateway is None:
            raise BridgeError("网关尚未初始化")
        return self._gateway

    @property
    def connection(self) -> ConnectionManager:
        if self._connection is None:
            raise BridgeError("连接管理器尚未初始化")
        return self._connection

    # ==================== 启动 / Startup ====================

    async def initialize(self) -> None:
        """
        创建并连接所有子系统，不启动任何网络活动
        Build and wire every subsystem without starting any network activity.
        """
        cfg = self.config

        self.storage = StorageEngine(cfg.get("store.db_path", "data/bridge.db"))
        await self.storage.initialize()
        self.sessions = SessionStore(self.storage, cfg.get("whatsapp.auth_dir", "data/auth_info"))

        if self._gateway is None:
            from HyperBridge.gateway.adapters.telegram_adapter import TelegramGateway

            self._gateway = TelegramGateway(cfg.get("telegram", {}))

        self.directory = BridgeDirectory(
            self.storage,
            self._gateway,
            self.hub,
            verify_ttl=float(cfg.get("pipeline.thread_verify_ttl", 300.0)),
        )
        await self.directory.load()

        self.transcoder = MediaTranscoder(
            cfg.get("pipeline.temp_dir", "data/temp"),
            max_concurrent=int(cfg.get("pipeline.max_transcodes", 2)),
            transfer_timeout=float(cfg.get("pipeline.transfer_timeout", 60.0)),
            transfer_retries=int(cfg.get("pipeline.transfer_retries", 1)),
        )

        factory = self._socket_factory
        if factory is None:
            path = cfg.get("whatsapp.socket_factory", "")
            if not path:
                raise BridgeError("未配置 whatsapp.socket_factory")
            factory = load_socket_factory(path)
        self._connection = ConnectionManager(cfg, self.sessions, factory, self.hub)

        self.pipeline = MessagePipeline(
            cfg, self._connection, self.directory, self._gateway, self.hub, self.transcoder
        )
        self.pipeline.attach()

        self.notifier = Notifier(cfg, self._gateway, self.directory)
        self.notifier.attach(self.hub)
        self.hub.connect(SignalKind.CONNECTION_OPEN, self._on_connection_open)

        self.packs = PackRegistry(cfg, self._gateway)
        await self.packs.register(BridgeCommandsPack(self))
        self._gateway.set_command_handler(self.packs.dispatch)

        logger.info("子系统初始化完成")

    async def start(self) -> None:
        """
        启动桥接
        Start the bridge.
        """
        logger.info("%s 正在启动...", __app_name__)
        if self.pipeline is None:
            await self.initialize()

        if self.config.get("telegram.enabled", True):
            await self.gateway.launch()
            try:
                await self.gateway.register_commands(self.packs.command_menu())
            except Exception as exc:
                logger.error("注册 Telegram 命令失败: %s", exc)
        else:
            logger.warning("Telegram 网关已禁用")

        await self.connection.start()
        self._started = True

        await self.hub.emit_new(SignalKind.SYSTEM_READY, source="bootstrap")
        logger.info("%s 启动成功", __app_name__)

    async def _on_connection_open(self, signal: Signal) -> None:
        user_id = signal.payload
        if user_id and not self.config.get("bridge.owner_jid"):
            self.config.set("bridge.owner_jid", user_id)
            try:
                await self.config.save()
            except OSError as exc:
                logger.error("保存配置失败: %s", exc)
            logger.info("已设置桥接所有者: %s", user_id)

        # 套接字事件回调中不做耗时的同步
        task = asyncio.create_task(self._after_open())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _after_open(self) -> None:
        try:
            await self.pipeline.sync_contacts()
            await self.pipeline.update_thread_names()
            await self.notifier.log_event(
                "WhatsApp Bot Connected",
                f"✅ Account: {self.connection.user_id or 'Unknown'}",
            )
            await self.notifier.send_start_message()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("连接后的同步失败")

    # ==================== 运行 / Run ====================

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def run_forever(self) -> None:
        """
        持续运行直到收到关闭信号或连接永久关闭
        Run until a shutdown signal arrives or the connection closes for good.

        Raises:
            ConnectionFatalError: WhatsApp 连接不可恢复。
        """
        loop = asyncio.get_running_loop()

        # 注册系统信号（仅 Unix）
        if sys.platform != "win32":
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self._shutdown_event.set)

        stop_wait = asyncio.create_task(self._shutdown_event.wait())
        closed_wait = asyncio.create_task(self.connection.wait_closed())
        try:
            done, _ = await asyncio.wait({stop_wait, closed_wait}, return_when=asyncio.FIRST_COMPLETED)
            if closed_wait in done:
                # 致命错误会在这里抛出
                closed_wait.result()
        finally:
            for task in (stop_wait, closed_wait):
                if not task.done():
                    task.cancel()
            await self.shutdown()

    async def shutdown(self) -> None:
        """
        优雅关闭
        Graceful shutdown.
        """
        if self._stopped:
            return
        self._stopped = True
        logger.info("%s 正在关闭...", __app_name__)

        await self.hub.emit_new(SignalKind.SYSTEM_SHUTDOWN, source="bootstrap")

        if self.pipeline is not None:
            await self.pipeline.drain(float(self.config.get("pipeline.shutdown_grace", 10.0)))

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if self._connection is not None:
            await self._connection.stop()

        if self._gateway is not None and self._started:
            try:
                await self._gateway.halt()
            except Exception as exc:
                logger.error("停止网关出错: %s", exc)

        if self.packs is not None:
            await self.packs.unregister_all()

        if self.storage is not None:
            await self.storage.dispose()

        self.hub.clear()
        logger.info("%s 已完全关闭", __app_name__)

    # ==================== 命令接口 / Command surface ====================

    async def send_to_conversation(self, target: str, content: str | dict[str, Any]) -> dict[str, Any] | None:
        """
        直接向号码或 JID 发送消息
        Send a message straight to a phone number or JID.
        """
        if isinstance(content, str):
            content = {"text": content}
        return await self.connection.send_message(to_jid(target), content)

    async def sync_contacts(self) -> int:
        return await self.pipeline.sync_contacts()

    def list_contacts(self) -> list[tuple[str, str]]:
        return self.directory.list_contacts()

    def search_contacts(self, query: str) -> list[tuple[str, str]]:
        return self.directory.search_contacts(query)

    def counts(self) -> dict[str, int]:
        return self.directory.counts()
