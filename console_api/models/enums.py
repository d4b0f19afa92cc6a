"""
数据模型枚举
"""

from enum import Enum


class AccessRequestStatus(str, Enum):
    """AI 权限申请状态"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
