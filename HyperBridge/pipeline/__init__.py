"""
消息同步管线模块
Message synchronization pipeline module.
"""

from HyperBridge.pipeline.media import MediaTranscoder
from HyperBridge.pipeline.notifier import Notifier
from HyperBridge.pipeline.receipts import ReadReceiptQueue
from HyperBridge.pipeline.status_index import StatusIndex
from HyperBridge.pipeline.sync import STATUS_MISS_NOTICE, MessagePipeline

__all__ = [
    "MediaTranscoder",
    "MessagePipeline",
    "Notifier",
    "ReadReceiptQueue",
    "STATUS_MISS_NOTICE",
    "StatusIndex",
]
