"""
登录与当前用户路由模块
"""

from fastapi import APIRouter

from console_api.container import AuthGateDep
from console_api.core.exceptions import BadRequestError, ok
from console_api.core.logging import get_logger
from console_api.dependencies import CurrentUserDep
from console_api.models import LoginRequest
from console_api.services.users import sanitize_user

logger = get_logger(__name__)


def create_router() -> APIRouter:
    """
    创建鉴权路由器（工厂函数）

    Returns:
        配置完成的 APIRouter 实例
    """
    router = APIRouter()

    @router.post(
        "/login",
        summary="登录",
        description="用户名 + 密码登录，返回 Bearer token（默认 1 小时有效）与脱敏后的用户信息",
    )
    async def login(gate: AuthGateDep, payload: LoginRequest | None = None):
        username = payload.username if payload else None
        password = payload.password if payload else None
        if not username or not password:
            raise BadRequestError("用户名和密码必填")

        token, user = await gate.login(username, password)
        logger.info(f"User {user['id']} logged in")
        return ok({
            "token": token,
            "expiresIn": gate.tokens.expires_in,
            "user": sanitize_user(user),
        })

    @router.get(
        "/user/info",
        summary="当前用户",
        description="返回 token 对应用户的完整信息（不含密码）",
    )
    async def user_info(user: CurrentUserDep):
        return ok(sanitize_user(user))

    return router
