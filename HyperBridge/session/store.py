"""
会话存储 - 凭据归档与数据库之间的唯一通道
Session store - the only path between the credential archive and the database.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path

from sqlalchemy import delete, select

from HyperBridge.errors import CorruptSessionError
from HyperBridge.session.archive import CORE_ARTIFACT, pack_directory, unpack_archive
from HyperBridge.store.engine import StorageEngine
from HyperBridge.store.models import SESSION_RECORD_ID, SessionRecord

logger = logging.getLogger(__name__)


class SessionStore:
    """
    会话存储
    Session store.

    数据库中始终最多只有一条 id="session" 的记录；本地凭据目录只是它的工作副本。
    The database holds at most one record with id="session"; the local
    credential directory is only a working copy of it.
    """

    def __init__(self, storage: StorageEngine, auth_dir: str) -> None:
        self._storage = storage
        self._auth_dir = Path(auth_dir)

    @property
    def auth_dir(self) -> Path:
        return self._auth_dir

    def _wipe_dir(self) -> None:
        shutil.rmtree(self._auth_dir, ignore_errors=True)

    async def load(self) -> bool:
        """
        从数据库恢复凭据目录
        Restore the credential directory from the database.

        返回 True 表示凭据可用；False 表示需要重新扫码登录。
        Returns True when credentials are usable; False forces a fresh QR login.
        """
        await asyncio.to_thread(self._wipe_dir)

        async with self._storage.session() as db:
            record = await db.get(SessionRecord, SESSION_RECORD_ID)
            blob = record.archive if record is not None else None

        if not blob:
            if record is not None:
                logger.warning("凭据记录为空，已丢弃")
                await self._discard()
            else:
                logger.info("数据库中没有凭据，需要扫码登录")
            await asyncio.to_thread(self._auth_dir.mkdir, parents=True, exist_ok=True)
            return False

        try:
            await asyncio.to_thread(unpack_archive, blob, self._auth_dir)
            if not (self._auth_dir / CORE_ARTIFACT).is_file():
                raise CorruptSessionError(f"归档中缺少 {CORE_ARTIFACT}")
        except CorruptSessionError as exc:
            logger.warning("凭据归档已损坏，已丢弃: %s", exc)
            await self._discard()
            await asyncio.to_thread(self._wipe_dir)
            await asyncio.to_thread(self._auth_dir.mkdir, parents=True, exist_ok=True)
            return False

        logger.info("凭据已从数据库恢复")
        return True

    async def save(self) -> bool:
        """
        把当前凭据目录写回数据库（单行替换）
        Write the current credential directory back to the database.

        失败只记录日志，不向套接字回调抛出。
        Failures are logged and never raised into the socket callback.
        """
        try:
            if not (self._auth_dir / CORE_ARTIFACT).is_file():
                logger.debug("凭据目录中还没有 %s，跳过保存", CORE_ARTIFACT)
                return False
            blob = await asyncio.to_thread(pack_directory, self._auth_dir)
            async with self._storage.session() as db:
                await db.merge(SessionRecord(id=SESSION_RECORD_ID, archive=blob))
                await db.commit()
        except Exception:
            logger.exception("保存凭据失败")
            return False

        logger.debug("凭据已保存 (%d 字节)", len(blob))
        return True

    async def clear(self) -> None:
        """
        删除数据库记录和本地凭据目录
        Delete the database record and the local credential directory.
        """
        await self._discard()
        await asyncio.to_thread(self._wipe_dir)
        logger.info("凭据已清除")

    async def exists(self) -> bool:
        """数据库中是否有凭据记录 / Whether a credential record exists."""
        async with self._storage.session() as db:
            result = await db.execute(
                select(SessionRecord.id).where(SessionRecord.id == SESSION_RECORD_ID)
            )
            return result.scalar_one_or_none() is not None

    async def _discard(self) -> None:
        async with self._storage.session() as db:
            await db.execute(
                delete(SessionRecord).where(SessionRecord.id == SESSION_RECORD_ID)
            )
            await db.commit()
