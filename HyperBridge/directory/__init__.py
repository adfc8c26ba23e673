"""
桥接目录 - 会话、话题、参与者与联系人名称之间的映射
Bridge directory - the mapping between conversations, threads, participants and names.
"""

from HyperBridge.directory.service import BridgeDirectory, ParticipantProfile, is_meaningful_name

__all__ = ["BridgeDirectory", "ParticipantProfile", "is_meaningful_name"]
