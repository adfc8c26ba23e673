"""Credential persistence: archive safety and the single session record."""

from __future__ import annotations

import io
import tarfile

import pytest
import pytest_asyncio

from HyperBridge.errors import CorruptSessionError
from HyperBridge.session import CORE_ARTIFACT, SessionStore, pack_directory, unpack_archive
from HyperBridge.store.models import SESSION_RECORD_ID, SessionRecord


def _tar_with(member: tarfile.TarInfo, data: bytes = b"") -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        member.size = len(data)
        tf.addfile(member, io.BytesIO(data) if data else None)
    return buf.getvalue()


async def _put_record(storage, blob: bytes) -> None:
    async with storage.session() as db:
        await db.merge(SessionRecord(id=SESSION_RECORD_ID, archive=blob))
        await db.commit()


@pytest_asyncio.fixture
async def sessions(storage, tmp_path):
    return SessionStore(storage, str(tmp_path / "auth"))


def _write_creds(auth_dir) -> None:
    auth_dir.mkdir(parents=True, exist_ok=True)
    (auth_dir / CORE_ARTIFACT).write_text('{"me": "1"}', encoding="utf-8")
    (auth_dir / "keys").mkdir(exist_ok=True)
    (auth_dir / "keys" / "pre-key-1.json").write_text('{"k": 1}', encoding="utf-8")


class TestArchive:
    def test_pack_uses_relative_names(self, tmp_path):
        _write_creds(tmp_path / "auth")
        blob = pack_directory(tmp_path / "auth")
        with tarfile.open(fileobj=io.BytesIO(blob), mode="r:gz") as tf:
            assert sorted(tf.getnames()) == [CORE_ARTIFACT, "keys/pre-key-1.json"]

    def test_unpack_rejects_parent_escape(self, tmp_path):
        blob = _tar_with(tarfile.TarInfo("../evil.json"), b"x")
        with pytest.raises(CorruptSessionError):
            unpack_archive(blob, tmp_path / "auth")
        assert not (tmp_path / "evil.json").exists()

    def test_unpack_rejects_absolute_symlink(self, tmp_path):
        link = tarfile.TarInfo("creds.json")
        link.type = tarfile.SYMTYPE
        link.linkname = "/etc/passwd"
        with pytest.raises(CorruptSessionError):
            unpack_archive(_tar_with(link), tmp_path / "auth")

    def test_unpack_rejects_garbage(self, tmp_path):
        with pytest.raises(CorruptSessionError):
            unpack_archive(b"definitely not a tarball", tmp_path / "auth")

    def test_unpack_rejects_empty_blob(self, tmp_path):
        with pytest.raises(CorruptSessionError):
            unpack_archive(b"", tmp_path / "auth")


class TestSessionStore:
    async def test_save_then_load_restores_directory(self, sessions):
        _write_creds(sessions.auth_dir)
        assert await sessions.save() is True

        (sessions.auth_dir / CORE_ARTIFACT).write_text("stale", encoding="utf-8")
        assert await sessions.load() is True
        assert (sessions.auth_dir / CORE_ARTIFACT).read_text(encoding="utf-8") == '{"me": "1"}'
        assert (sessions.auth_dir / "keys" / "pre-key-1.json").is_file()

    async def test_load_twice_gives_same_directory(self, sessions):
        _write_creds(sessions.auth_dir)
        await sessions.save()

        assert await sessions.load() is True
        first = sorted(p.relative_to(sessions.auth_dir) for p in sessions.auth_dir.rglob("*"))
        assert await sessions.load() is True
        second = sorted(p.relative_to(sessions.auth_dir) for p in sessions.auth_dir.rglob("*"))
        assert first == second

    async def test_load_without_record_leaves_empty_directory(self, sessions):
        assert await sessions.load() is False
        assert sessions.auth_dir.is_dir()
        assert list(sessions.auth_dir.iterdir()) == []

    async def test_save_without_core_artifact_is_skipped(self, sessions):
        sessions.auth_dir.mkdir(parents=True)
        (sessions.auth_dir / "app-state.json").write_text("{}", encoding="utf-8")
        assert await sessions.save() is False
        assert await sessions.exists() is False

    async def test_corrupt_record_is_discarded(self, sessions, storage):
        await _put_record(storage, b"garbage bytes")
        assert await sessions.load() is False
        assert await sessions.exists() is False
        assert list(sessions.auth_dir.iterdir()) == []

    async def test_archive_without_creds_is_discarded(self, sessions, storage, tmp_path):
        other = tmp_path / "other"
        other.mkdir()
        (other / "app-state.json").write_text("{}", encoding="utf-8")
        await _put_record(storage, pack_directory(other))

        assert await sessions.load() is False
        assert await sessions.exists() is False

    async def test_empty_record_is_discarded(self, sessions, storage):
        await _put_record(storage, b"")
        assert await sessions.load() is False
        assert await sessions.exists() is False

    async def test_save_replaces_single_record(self, sessions, storage):
        _write_creds(sessions.auth_dir)
        await sessions.save()
        (sessions.auth_dir / CORE_ARTIFACT).write_text('{"me": "2"}', encoding="utf-8")
        await sessions.save()

        async with storage.session() as db:
            record = await db.get(SessionRecord, SESSION_RECORD_ID)
        await sessions.load()
        assert record is not None
        assert (sessions.auth_dir / CORE_ARTIFACT).read_text(encoding="utf-8") == '{"me": "2"}'

    async def test_clear_removes_record_and_directory(self, sessions):
        _write_creds(sessions.auth_dir)
        await sessions.save()
        await sessions.clear()
        assert await sessions.exists() is False
        assert not sessions.auth_dir.exists()
