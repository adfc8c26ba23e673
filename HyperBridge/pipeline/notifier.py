"""
运行通知 - 把连接和同步事件转发给 Telegram 的主人和日志频道
Operational notifier - forwards connection and sync events to the Telegram
owner and log channel.
"""

from __future__ import annotations

import io
import logging
from datetime import datetime

import qrcode
from PIL import Image

from HyperBridge.config.manager import ConfigManager
from HyperBridge.directory.service import BridgeDirectory
from HyperBridge.gateway.base import ThreadGateway
from HyperBridge.kernel.signal_hub import Signal, SignalHub, SignalKind

logger = logging.getLogger(__name__)

QR_SIZE = 512


def render_qr_png(data: str, size: int = QR_SIZE) -> bytes:
    """
    把二维码内容渲染为 PNG
    Render QR content as a PNG.
    """
    qr = qrcode.QRCode(border=2, box_size=10)
    qr.add_data(data)
    qr.make(fit=True)

    raw = io.BytesIO()
    qr.make_image(fill_color="black", back_color="white").save(raw)
    raw.seek(0)

    with Image.open(raw) as image:
        resized = image.convert("RGB").resize((size, size), Image.Resampling.NEAREST)
        out = io.BytesIO()
        resized.save(out, format="PNG")
        return out.getvalue()


def render_qr_ascii(data: str) -> str:
    """终端里显示的二维码 / QR code for the terminal."""
    qr = qrcode.QRCode(border=1)
    qr.add_data(data)
    qr.make(fit=True)
    buf = io.StringIO()
    qr.print_ascii(out=buf, invert=True)
    return buf.getvalue()


class Notifier:
    """
    运行通知器
    Operational notifier.
    """

    def __init__(
        self,
        config: ConfigManager,
        gateway: ThreadGateway,
        directory: BridgeDirectory,
    ) -> None:
        self._config = config
        self._gateway = gateway
        self._directory = directory

    def attach(self, hub: SignalHub) -> None:
        hub.connect(SignalKind.CONNECTION_QR, self._on_qr)
        hub.connect(SignalKind.CONNECTION_FATAL, self._on_fatal)
        hub.connect(SignalKind.SYNC_SUMMARY, self._on_summary)

    def _targets(self) -> list[int | str]:
        owner = self._config.get("telegram.owner_id") or self._config.get("telegram.chat_id")
        log_channel = self._config.get("telegram.log_channel")
        targets: list[int | str] = []
        if owner:
            targets.append(owner)
        if log_channel and str(log_channel) != str(owner):
            targets.append(log_channel)
        return targets

    async def send_qr(self, qr_data: str) -> None:
        """把登录二维码发给主人和日志频道 / Send the login QR to the owner and log channel."""
        logger.info("请用 WhatsApp 扫描二维码:\n%s", render_qr_ascii(qr_data))
        try:
            png = render_qr_png(qr_data)
        except (ValueError, OSError):
            logger.exception("二维码渲染失败")
            return

        for target in self._targets():
            try:
                await self._gateway.send_private_photo(
                    target,
                    png,
                    caption="📱 Scan this QR code with WhatsApp to log in",
                )
            except Exception as exc:
                logger.error("发送二维码到 %s 失败: %s", target, exc)

    async def log_event(self, title: str, message: str) -> None:
        """
        发送到日志频道
        Post to the log channel.
        """
        log_channel = self._config.get("telegram.log_channel")
        if not log_channel:
            logger.debug("未配置日志频道")
            return
        text = f"🤖 {title}\n\n{message}\n\n⏰ {datetime.now():%Y-%m-%d %H:%M:%S}"
        try:
            await self._gateway.send_private(log_channel, text)
        except Exception as exc:
            logger.debug("发送日志到 Telegram 失败: %s", exc)

    async def notify_owner(self, text: str) -> None:
        for target in self._targets():
            try:
                await self._gateway.send_private(target, text)
            except Exception as exc:
                logger.error("发送通知到 %s 失败: %s", target, exc)

    async def send_start_message(self) -> None:
        """连接成功后的启动消息 / Start message after the connection opens."""
        counts = self._directory.counts()
        name = self._config.get("bridge.name", "HyperBridge")
        text = (
            f"🚀 {name} started\n\n"
            "✅ WhatsApp: Connected\n"
            "✅ Telegram Bridge: Active\n"
            f"📞 Contacts: {counts['contacts']} synced\n"
            f"💬 Chats: {counts['chats']} mapped\n\n"
            f"⏰ Started at: {datetime.now():%Y-%m-%d %H:%M:%S}"
        )
        await self.notify_owner(text)

    async def _on_qr(self, signal: Signal) -> None:
        await self.send_qr(str(signal.payload))

    async def _on_fatal(self, signal: Signal) -> None:
        await self.notify_owner(
            f"❌ WhatsApp connection closed permanently: {signal.payload}\n"
            "Restart the bridge to log in again."
        )

    async def _on_summary(self, signal: Signal) -> None:
        title = signal.metadata.get("title", "Sync")
        await self.log_event(title, str(signal.payload))
