"""
数据模型模块
"""

from console_api.models.enums import AccessRequestStatus
from console_api.models.schemas import (
    HealthResponse,
    LoginRequest,
    ItemPayload,
    UserCreateRequest,
    UserUpdateRequest,
    PermissionsUpdateRequest,
    ChatMessage,
    ChatRequest,
    ChatHistoryPayload,
    AccessRequestCreate,
)

__all__ = [
    # 枚举
    "AccessRequestStatus",
    # API 模型
    "HealthResponse",
    "LoginRequest",
    "ItemPayload",
    "UserCreateRequest",
    "UserUpdateRequest",
    "PermissionsUpdateRequest",
    "ChatMessage",
    "ChatRequest",
    "ChatHistoryPayload",
    "AccessRequestCreate",
]
