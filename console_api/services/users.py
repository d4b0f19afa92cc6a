"""
用户记录辅助函数

文档中的用户是普通 dict；这里集中处理查找、脱敏与创建。
"""

from typing import Any

from console_api.core.exceptions import ConflictError
from console_api.services.auth import DEFAULT_PERMISSIONS, CAPABILITIES, hash_password, heal_user
from console_api.services.document_store import allocate_id
from console_api.utils.datetime import now_ms


def sanitize_user(user: dict) -> dict:
    """去掉密码字段"""
    return {k: v for k, v in user.items() if k != "password"}


def find_user(document: dict, user_id: int) -> dict | None:
    return next((u for u in document["users"] if u.get("id") == user_id), None)


def find_user_index(document: dict, user_id: int) -> int:
    for index, user in enumerate(document["users"]):
        if user.get("id") == user_id:
            return index
    return -1


def username_taken(document: dict, username: str, exclude_id: int | None = None) -> bool:
    return any(
        u.get("username") == username and u.get("id") != exclude_id
        for u in document["users"]
    )


def merge_permissions(current: dict | None, updates: dict[str, Any] | None) -> dict[str, bool]:
    """只接受已知能力项，其余键忽略"""
    merged = dict(DEFAULT_PERMISSIONS)
    merged.update({k: v for k, v in (current or {}).items() if k in CAPABILITIES})
    for capability, value in (updates or {}).items():
        if capability in CAPABILITIES and isinstance(value, bool):
            merged[capability] = value
    return merged


def create_user(
    document: dict,
    *,
    username: str,
    password: str,
    admin_username: str,
    nickname: str = "",
    account: str | None = None,
    phone: str = "",
    email: str = "",
    is_admin: bool = False,
    permissions: dict[str, Any] | None = None,
) -> dict:
    """
    创建用户并追加到文档

    Raises:
        ConflictError: 用户名已存在（文档不做任何修改）
    """
    if username_taken(document, username):
        raise ConflictError("用户名已存在", extra={"username": username})

    timestamp = now_ms()
    user = {
        "id": allocate_id(document, "nextUserId"),
        "username": username,
        "password": hash_password(password),
        "nickname": nickname,
        "account": account or username,
        "phone": phone,
        "email": email,
        "isAdmin": is_admin,
        "permissions": merge_permissions(None, permissions),
        "createdAt": timestamp,
        "updatedAt": timestamp,
    }
    heal_user(user, admin_username)
    document["users"].append(user)
    return user
