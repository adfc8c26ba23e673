"""
凭据归档 - 在内存中打包/解包凭据目录
Credential archive - packs and unpacks the credential directory in memory.

归档格式为 gzip 压缩的 tar。解包前逐个检查成员，拒绝逃逸出目标目录的路径和链接。
The archive is a gzipped tar. Members are checked before extraction; any path
or link escaping the target directory is rejected.
"""

from __future__ import annotations

import io
import os
import tarfile
from pathlib import Path

from HyperBridge.errors import CorruptSessionError

CORE_ARTIFACT = "creds.json"


def pack_directory(path: str | os.PathLike[str]) -> bytes:
    """
    把目录内容打包成 tar.gz 字节串（成员名相对于目录）
    Pack the directory contents into tar.gz bytes (member names relative to it).
    """
    root = Path(path)
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tf:
        for entry in sorted(root.rglob("*")):
            if entry.is_file():
                tf.add(entry, arcname=entry.relative_to(root).as_posix())
    return buf.getvalue()


def _check_members(tf: tarfile.TarFile, dest: Path) -> None:
    dest_abs = dest.resolve()
    for member in tf.getmembers():
        member_path = dest_abs / member.name
        member_abs = member_path.resolve()
        if member_abs != dest_abs and dest_abs not in member_abs.parents:
            raise CorruptSessionError(f"归档包含越界路径: {member.name}")
        if member.islnk() or member.issym():
            target = Path(member.linkname or "")
            if target.is_absolute():
                raise CorruptSessionError(f"归档包含绝对链接: {member.name}")
            target_abs = (member_path.parent / target).resolve()
            if target_abs != dest_abs and dest_abs not in target_abs.parents:
                raise CorruptSessionError(f"归档包含越界链接: {member.name}")
        elif not (member.isfile() or member.isdir()):
            raise CorruptSessionError(f"归档包含不支持的成员: {member.name}")


def unpack_archive(blob: bytes, path: str | os.PathLike[str]) -> None:
    """
    把归档解包到目录
    Unpack an archive into a directory.

    Raises:
        CorruptSessionError: 归档为空、无法读取或包含不安全成员。
            The archive is empty, unreadable, or holds unsafe members.
    """
    if not blob:
        raise CorruptSessionError("凭据归档为空")

    dest = Path(path)
    dest.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(fileobj=io.BytesIO(blob), mode="r:*") as tf:
            _check_members(tf, dest)
            tf.extractall(dest)
    except (tarfile.TarError, EOFError, OSError) as exc:
        raise CorruptSessionError(f"凭据归档无法读取: {exc}") from exc
