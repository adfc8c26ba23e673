"""
会话持久化层 - 把 WhatsApp 凭据目录存进数据库
Session persistence layer - stores the WhatsApp credential directory in the database.
"""

from HyperBridge.session.archive import CORE_ARTIFACT, pack_directory, unpack_archive
from HyperBridge.session.store import SessionStore

__all__ = ["CORE_ARTIFACT", "SessionStore", "pack_directory", "unpack_archive"]
