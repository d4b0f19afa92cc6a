"""
API 请求/响应模型

请求字段全部可选：必填校验在路由中完成，以便返回约定的中文提示（40000）。
字段名与前端保持 camelCase，Python 侧用 snake_case + alias。
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class HealthResponse(BaseModel):
    """健康检查"""

    status: str = Field(..., description="ok")
    time: int = Field(..., description="服务器当前毫秒时间戳")
    version: str = Field(..., description="API 版本")


class LoginRequest(BaseModel):
    """登录请求"""

    username: Optional[str] = Field(default=None, description="用户名")
    password: Optional[str] = Field(default=None, description="密码")

    model_config = ConfigDict(
        json_schema_extra={"example": {"username": "admin", "password": "admin123"}}
    )


class ItemPayload(BaseModel):
    """条目创建 / 更新"""

    name: Optional[str] = Field(default=None, description="名称，去除首尾空白后不能为空")


class UserCreateRequest(CamelModel):
    """创建用户"""

    username: Optional[str] = None
    password: Optional[str] = None
    nickname: Optional[str] = None
    account: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    is_admin: Optional[bool] = Field(default=None, alias="isAdmin")
    permissions: Optional[Dict[str, bool]] = None

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "username": "zhangsan",
                "password": "secret",
                "nickname": "张三",
                "phone": "13800000000",
                "email": "zhangsan@example.com",
                "permissions": {"users": False, "ai": True, "vip": False},
            }
        },
    )


class UserUpdateRequest(UserCreateRequest):
    """更新用户：只修改提供的字段"""


class PermissionsUpdateRequest(CamelModel):
    """设置能力开关"""

    permissions: Dict[str, bool] = Field(default_factory=dict)
    is_admin: Optional[bool] = Field(default=None, alias="isAdmin")


class ChatMessage(BaseModel):
    """对话消息"""

    role: str = Field(..., description="原样转发给上游，例如 user / assistant / system / developer")
    content: str


class ChatRequest(BaseModel):
    """AI 对话请求"""

    messages: Optional[List[ChatMessage]] = Field(default=None, description="完整对话记录")


class ChatHistoryPayload(CamelModel):
    """对话历史（前端会话列表原样保存）"""

    active_id: Optional[str] = Field(default=None, alias="activeId")
    conversations: List[Any] = Field(default_factory=list)


class AccessRequestCreate(BaseModel):
    """AI 权限申请"""

    reason: Optional[str] = Field(default=None, description="申请理由")
