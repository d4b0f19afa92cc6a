"""
用户管理路由模块

所有接口需要 `users` 能力；返回的用户均不含密码字段。

更新语义：只修改请求中提供的字段，其余保持不变；
username / password 传空字符串视为未提供。
只有管理员可以设置 isAdmin，也只有管理员可以修改或删除管理员账号。
"""

from fastapi import APIRouter

from console_api.container import StoreDep
from console_api.core.exceptions import (
    BadRequestError,
    ConflictError,
    ItemNotFoundError,
    PermissionDeniedError,
    ok,
)
from console_api.core.logging import get_logger
from console_api.dependencies import UsersCapabilityDep, parse_id
from console_api.models import PermissionsUpdateRequest, UserCreateRequest, UserUpdateRequest
from console_api.services.auth import hash_password, heal_user
from console_api.services.users import (
    create_user,
    find_user_index,
    merge_permissions,
    sanitize_user,
    username_taken,
)
from console_api.utils.datetime import now_ms

logger = get_logger(__name__)


def _strip(value: str | None) -> str | None:
    return value.strip() if isinstance(value, str) else None


def _user_index(document: dict, user_id: int) -> int:
    index = find_user_index(document, user_id)
    if index == -1:
        raise ItemNotFoundError("用户不存在", extra={"id": user_id})
    return index


def _check_admin_flag(caller: dict, is_admin: bool | None) -> None:
    if is_admin is not None and caller.get("isAdmin") is not True:
        raise PermissionDeniedError("需要管理员权限")


def _check_reserved_name(caller: dict, username: str, admin_username: str) -> None:
    """保留管理员名会被自愈为管理员，只有管理员可以分配"""
    if username == admin_username and caller.get("isAdmin") is not True:
        raise PermissionDeniedError("需要管理员权限")


def _check_admin_target(caller: dict, target: dict) -> None:
    """管理员账号只能由管理员修改或删除"""
    if target.get("isAdmin") is True and caller.get("isAdmin") is not True:
        raise PermissionDeniedError("需要管理员权限", extra={"id": target.get("id")})


def create_router() -> APIRouter:
    """
    创建用户管理路由器（工厂函数）

    Returns:
        配置完成的 APIRouter 实例
    """
    router = APIRouter()

    @router.get("/users", summary="用户列表")
    async def list_users(caller: UsersCapabilityDep, store: StoreDep):
        document = await store.load()
        return ok([sanitize_user(u) for u in document["users"]])

    @router.get("/users/{user_id}", summary="用户详情")
    async def get_user(user_id: str, caller: UsersCapabilityDep, store: StoreDep):
        target = parse_id(user_id)
        document = await store.load()
        return ok(sanitize_user(document["users"][_user_index(document, target)]))

    @router.post("/users", summary="创建用户")
    async def create_user_route(
        caller: UsersCapabilityDep,
        store: StoreDep,
        payload: UserCreateRequest | None = None,
    ):
        payload = payload or UserCreateRequest()
        username = _strip(payload.username)
        password = _strip(payload.password)
        if not username:
            raise BadRequestError("用户名必填")
        if not password:
            raise BadRequestError("密码必填")
        _check_admin_flag(caller, payload.is_admin)
        _check_reserved_name(caller, username, store.admin_username)

        async with store.transaction() as document:
            user = create_user(
                document,
                username=username,
                password=password,
                admin_username=store.admin_username,
                nickname=_strip(payload.nickname) or "",
                account=_strip(payload.account) or None,
                phone=_strip(payload.phone) or "",
                email=_strip(payload.email) or "",
                is_admin=bool(payload.is_admin),
                permissions=payload.permissions,
            )

        logger.info(f"User {user['id']} ({username}) created by {caller['id']}")
        return ok(sanitize_user(user))

    @router.put("/users/{user_id}", summary="更新用户")
    async def update_user(
        user_id: str,
        caller: UsersCapabilityDep,
        store: StoreDep,
        payload: UserUpdateRequest | None = None,
    ):
        target = parse_id(user_id)
        payload = payload or UserUpdateRequest()
        _check_admin_flag(caller, payload.is_admin)

        async with store.transaction() as document:
            index = _user_index(document, target)
            user = dict(document["users"][index])
            _check_admin_target(caller, user)

            username = _strip(payload.username)
            if username and username != user.get("username"):
                if user.get("username") == store.admin_username:
                    raise BadRequestError("保留管理员的用户名不可修改")
                _check_reserved_name(caller, username, store.admin_username)
                if username_taken(document, username, exclude_id=target):
                    raise ConflictError("用户名已存在", extra={"username": username})
                user["username"] = username

            password = _strip(payload.password)
            if password:
                user["password"] = hash_password(password)

            for field in ("nickname", "account", "phone", "email"):
                value = _strip(getattr(payload, field))
                if value is not None:
                    user[field] = value

            if payload.is_admin is not None:
                user["isAdmin"] = payload.is_admin
            if payload.permissions is not None:
                user["permissions"] = merge_permissions(user.get("permissions"), payload.permissions)

            user["updatedAt"] = now_ms()
            heal_user(user, store.admin_username)
            document["users"][index] = user

        logger.info(f"User {target} updated by {caller['id']}")
        return ok(sanitize_user(user))

    @router.put("/users/{user_id}/permissions", summary="设置能力")
    async def update_permissions(
        user_id: str,
        caller: UsersCapabilityDep,
        store: StoreDep,
        payload: PermissionsUpdateRequest | None = None,
    ):
        target = parse_id(user_id)
        payload = payload or PermissionsUpdateRequest()
        _check_admin_flag(caller, payload.is_admin)

        async with store.transaction() as document:
            index = _user_index(document, target)
            user = dict(document["users"][index])
            _check_admin_target(caller, user)
            if payload.is_admin is not None:
                user["isAdmin"] = payload.is_admin
            user["permissions"] = merge_permissions(user.get("permissions"), payload.permissions)
            user["updatedAt"] = now_ms()
            heal_user(user, store.admin_username)
            document["users"][index] = user

        logger.info(f"Permissions of user {target} set to {user['permissions']} by {caller['id']}")
        return ok(sanitize_user(user))

    @router.delete("/users/{user_id}", summary="删除用户")
    async def delete_user(user_id: str, caller: UsersCapabilityDep, store: StoreDep):
        target = parse_id(user_id)
        if target == caller["id"]:
            raise BadRequestError("不能删除当前登录用户")

        async with store.transaction() as document:
            index = _user_index(document, target)
            _check_admin_target(caller, document["users"][index])
            if document["users"][index].get("username") == store.admin_username:
                raise BadRequestError("保留管理员不可删除")
            removed = document["users"].pop(index)
            document["chatHistory"].pop(str(target), None)
            document["chatUsage"].pop(str(target), None)

        logger.info(f"User {target} deleted by {caller['id']}")
        return ok(sanitize_user(removed))

    return router
