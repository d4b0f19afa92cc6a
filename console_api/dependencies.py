"""
鉴权依赖

路由通过类型别名声明所需身份：
- ClaimsDep:        仅校验 token
- CurrentUserDep:   校验 token 并加载用户（用户已删除 → 401）
- require_capability("ai") / AdminDep: 能力或管理员校验（不足 → 403）
"""

from typing import Annotated, Callable

from fastapi import Depends, Header

from console_api.container import AuthGateDep
from console_api.core.exceptions import BadRequestError
from console_api.core.logging import LogContext
from console_api.services.auth import extract_bearer


async def get_claims(
    gate: AuthGateDep,
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """从 Authorization: Bearer <token> 中解析 claims"""
    claims = gate.authenticate(extract_bearer(authorization))
    LogContext.bind(user_id=claims["id"])
    return claims


ClaimsDep = Annotated[dict, Depends(get_claims)]


async def get_current_user(claims: ClaimsDep, gate: AuthGateDep) -> dict:
    return await gate.load_user(claims)


def require_capability(capability: str) -> Callable:
    """生成能力校验依赖"""

    async def dependency(claims: ClaimsDep, gate: AuthGateDep) -> dict:
        return await gate.resolve_capability(claims, capability)

    dependency.__name__ = f"require_{capability}"
    return dependency


async def require_admin(claims: ClaimsDep, gate: AuthGateDep) -> dict:
    return await gate.resolve_admin(claims)


CurrentUserDep = Annotated[dict, Depends(get_current_user)]
UsersCapabilityDep = Annotated[dict, Depends(require_capability("users"))]
AICapabilityDep = Annotated[dict, Depends(require_capability("ai"))]
AdminDep = Annotated[dict, Depends(require_admin)]


def parse_id(raw: str) -> int:
    """路径参数转整数 id"""
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise BadRequestError("id 参数非法", extra={"id": raw})
