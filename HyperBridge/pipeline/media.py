"""
媒体处理 - 传输重试与格式转换
Media handling - transfer retries and format conversion.

图片类转换使用 Pillow（放进线程池执行），视频类转换调用 ffmpeg 子进程。
并发转换数由信号量限制。
Image conversions use Pillow (run in a worker thread); video conversions call
an ffmpeg subprocess. Concurrent conversions are bounded by a semaphore.
"""

from __future__ import annotations

import asyncio
import io
import logging
import shutil
import uuid
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

from PIL import Image, ImageOps

from HyperBridge.errors import TransferError

logger = logging.getLogger(__name__)

T = TypeVar("T")

VIDEO_NOTE_SIZE = 240
VIDEO_NOTE_MAX_SECONDS = 60
STICKER_SIZE = 512
# WhatsApp 贴纸上限
STICKER_MAX_BYTES = 1024 * 1024
FFMPEG_TIMEOUT = 120.0


class MediaTranscoder:
    """
    媒体转换器
    Media transcoder.
    """

    def __init__(
        self,
        temp_dir: str,
        max_concurrent: int = 2,
        transfer_timeout: float = 60.0,
        transfer_retries: int = 1,
    ) -> None:
        self._temp_dir = Path(temp_dir)
        self._temp_dir.mkdir(parents=True, exist_ok=True)
        self._semaphore = asyncio.Semaphore(max(1, max_concurrent))
        self._transfer_timeout = transfer_timeout
        self._transfer_retries = max(0, transfer_retries)
        self._ffmpeg = shutil.which("ffmpeg")
        if self._ffmpeg is None:
            logger.warning("未找到 ffmpeg，视频消息和动态贴纸将按原样发送")

    @property
    def temp_dir(self) -> Path:
        return self._temp_dir

    @property
    def has_ffmpeg(self) -> bool:
        return self._ffmpeg is not None

    def scratch_path(self, suffix: str) -> Path:
        """生成唯一的临时文件路径 / Build a unique scratch file path."""
        return self._temp_dir / f"media_{uuid.uuid4().hex}{suffix}"

    def cleanup(self) -> None:
        """清空临时目录 / Empty the scratch directory."""
        for entry in self._temp_dir.glob("media_*"):
            entry.unlink(missing_ok=True)

    async def transfer(self, fetch: Callable[[], Awaitable[bytes]], label: str = "media") -> bytes:
        """
        带超时的下载，失败后重试一次
        Download with a timeout, retried once on failure.

        Raises:
            TransferError: 所有尝试都失败，或得到空内容。
        """
        return await self._attempt(fetch, label, require_data=True)

    async def upload(self, send: Callable[[], Awaitable[T]], label: str = "upload") -> T:
        """
        带超时的上传/发送，失败后重试一次
        Upload or send with a timeout, retried once on failure.

        Raises:
            TransferError: 所有尝试都失败。
        """
        return await self._attempt(send, label, require_data=False)

    async def _attempt(self, operation: Callable[[], Awaitable[T]], label: str, require_data: bool) -> T:
        last_error: BaseException | None = None
        for attempt in range(1, self._transfer_retries + 2):
            try:
                result = await asyncio.wait_for(operation(), timeout=self._transfer_timeout)
            except asyncio.TimeoutError as exc:
                last_error = exc
                logger.warning("%s 传输超时 (第 %d 次)", label, attempt)
                continue
            except Exception as exc:
                last_error = exc
                logger.warning("%s 传输失败 (第 %d 次): %s", label, attempt, exc)
                continue
            if require_data and not result:
                last_error = TransferError(f"{label} 内容为空")
                logger.warning("%s 内容为空 (第 %d 次)", label, attempt)
                continue
            return result

        raise TransferError(f"{label} 传输失败: {last_error}") from last_error

    # ==================== ffmpeg ====================

    async def _run_ffmpeg(self, args: list[str]) -> bool:
        if self._ffmpeg is None:
            return False
        proc = await asyncio.create_subprocess_exec(
            self._ffmpeg,
            "-y",
            "-loglevel",
            "error",
            *args,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=FFMPEG_TIMEOUT)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("ffmpeg 超时")
            return False
        if proc.returncode != 0:
            logger.debug("ffmpeg 失败: %s", stderr.decode(errors="replace").strip())
            return False
        return True

    async def _ffmpeg_convert(self, data: bytes, in_suffix: str, out_suffix: str, args: list[str]) -> bytes | None:
        source = self.scratch_path(in_suffix)
        target = self.scratch_path(out_suffix)
        try:
            source.write_bytes(data)
            async with self._semaphore:
                try:
                    ok = await self._run_ffmpeg(["-i", str(source), *args, str(target)])
                except OSError as exc:
                    logger.warning("无法运行 ffmpeg: %s", exc)
                    return None
            if not ok or not target.exists():
                return None
            return target.read_bytes()
        finally:
            source.unlink(missing_ok=True)
            target.unlink(missing_ok=True)

    async def to_video_note(self, data: bytes) -> bytes:
        """
        转为 240x240 方形、最长 60 秒的视频消息；失败时返回原视频
        Convert to a 240x240 square video note of at most 60 s; the original
        is returned when conversion fails.
        """
        size = VIDEO_NOTE_SIZE
        converted = await self._ffmpeg_convert(
            data,
            ".mp4",
            ".mp4",
            [
                "-vf",
                f"scale={size}:{size}:force_original_aspect_ratio=increase,crop={size}:{size}",
                "-t",
                str(VIDEO_NOTE_MAX_SECONDS),
                "-f",
                "mp4",
            ],
        )
        if converted is None:
            logger.debug("视频消息转换失败，发送原视频")
            return data
        return converted

    # ==================== 贴纸 / Stickers ====================

    async def is_image(self, data: bytes) -> bool:
        """Pillow 能否识别这些数据 / Whether Pillow can decode the data."""
        return await asyncio.to_thread(_is_image, data)

    async def sticker_to_png(self, data: bytes) -> bytes:
        """
        贴纸转 PNG（贴纸发送被拒绝时作为图片发送）
        Convert a sticker to PNG, used when a sticker upload is rejected.
        """
        async with self._semaphore:
            return await asyncio.to_thread(_to_png, data)

    async def sticker_for_whatsapp(self, data: bytes, animated: bool = False, allow_animated: bool = True) -> bytes | None:
        """
        规范化为 512x512 的 WebP 贴纸；全部方法失败时返回 None
        Normalise into a 512x512 WebP sticker; None when every method fails.
        """
        if animated and allow_animated:
            size = STICKER_SIZE
            converted = await self._ffmpeg_convert(
                data,
                ".webm",
                ".webp",
                [
                    "-vf",
                    f"scale={size}:{size}:force_original_aspect_ratio=decrease,"
                    f"pad={size}:{size}:(ow-iw)/2:(oh-ih)/2:color=0x00000000",
                    "-loop",
                    "0",
                    "-an",
                    "-vcodec",
                    "libwebp",
                    "-f",
                    "webp",
                ],
            )
            if converted and len(converted) < STICKER_MAX_BYTES:
                return converted
            logger.debug("动态贴纸转换失败，改为静态转换")

        try:
            async with self._semaphore:
                converted = await asyncio.to_thread(_to_sticker_webp, data)
        except (OSError, ValueError) as exc:
            logger.debug("静态贴纸转换失败: %s", exc)
            return None
        if len(converted) >= STICKER_MAX_BYTES:
            return None
        return converted


def _is_image(data: bytes) -> bool:
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.verify()
    except (OSError, ValueError, SyntaxError):
        return False
    return True


def _to_png(data: bytes) -> bytes:
    with Image.open(io.BytesIO(data)) as image:
        out = io.BytesIO()
        image.convert("RGBA").save(out, format="PNG")
        return out.getvalue()


def _to_sticker_webp(data: bytes) -> bytes:
    with Image.open(io.BytesIO(data)) as image:
        image = ImageOps.contain(image.convert("RGBA"), (STICKER_SIZE, STICKER_SIZE))
        canvas = Image.new("RGBA", (STICKER_SIZE, STICKER_SIZE), (0, 0, 0, 0))
        offset = ((STICKER_SIZE - image.width) // 2, (STICKER_SIZE - image.height) // 2)
        canvas.paste(image, offset, image)
        out = io.BytesIO()
        canvas.save(out, format="WEBP", quality=100, method=6)
        return out.getvalue()
