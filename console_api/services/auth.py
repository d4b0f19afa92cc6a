"""
鉴权服务

- TokenService: 签发 / 校验 JWT（HS256，默认 1 小时有效）
- 密码：werkzeug.security 加盐哈希；旧版明文密码在登录时自动升级
- heal_user: 权限自愈（每次加载用户时执行，幂等）
- AuthGate: token → claims → 用户 → 能力 / 管理员校验
"""

import hmac
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

import jwt
from werkzeug.security import check_password_hash, generate_password_hash

from console_api.core.exceptions import (
    AuthenticationError,
    InvalidCredentialsError,
    PermissionDeniedError,
)
from console_api.core.logging import get_logger
from console_api.utils.datetime import utc_now

if TYPE_CHECKING:
    from console_api.services.document_store import DocumentStore

logger = get_logger(__name__)


CAPABILITIES: tuple[str, ...] = ("users", "ai", "vip")
DEFAULT_PERMISSIONS: dict[str, bool] = {"users": False, "ai": False, "vip": False}
DEFAULT_ADMIN_USERNAME = "admin"


# =============================================================================
# 权限自愈
# =============================================================================


def heal_user(user: dict, admin_username: str = DEFAULT_ADMIN_USERNAME) -> bool:
    """
    修正用户的权限字段

    - 用户名等于保留管理员名 → isAdmin = True
    - isAdmin → 三项能力全部为 True
    - 否则仅补齐缺失的能力项（默认 False），不覆盖已有值

    Returns:
        是否有字段被修改（调用方据此决定是否回写）
    """
    changed = False

    if user.get("username") == admin_username and user.get("isAdmin") is not True:
        user["isAdmin"] = True
        changed = True

    if not isinstance(user.get("isAdmin"), bool):
        user["isAdmin"] = bool(user.get("isAdmin"))
        changed = True

    permissions = user.get("permissions")
    if not isinstance(permissions, dict):
        permissions = {}
        user["permissions"] = permissions
        changed = True

    if user["isAdmin"]:
        for capability in CAPABILITIES:
            if permissions.get(capability) is not True:
                permissions[capability] = True
                changed = True
    else:
        for capability, default in DEFAULT_PERMISSIONS.items():
            if capability not in permissions:
                permissions[capability] = default
                changed = True

    return changed


def has_capability(user: dict, capability: str) -> bool:
    """管理员或显式开启该能力"""
    if user.get("isAdmin") is True:
        return True
    return (user.get("permissions") or {}).get(capability) is True


# =============================================================================
# 密码哈希
# =============================================================================

PASSWORD_METHOD = "pbkdf2:sha256:600000"
HASH_PREFIXES = ("pbkdf2:", "scrypt:")


def hash_password(password: str, method: str | None = None) -> str:
    """生成 werkzeug 格式的哈希 `<method>$<salt>$<digest>`"""
    return generate_password_hash(password, method=method or PASSWORD_METHOD)


def is_password_hash(stored: Any) -> bool:
    return isinstance(stored, str) and stored.startswith(HASH_PREFIXES)


def verify_password(stored: Any, password: str) -> bool:
    """
    校验密码

    旧数据中的明文密码同样可以通过校验（常量时间比较），
    调用方应在成功后用 hash_password 覆盖。
    """
    if not isinstance(stored, str) or not isinstance(password, str):
        return False

    if not is_password_hash(stored):
        return hmac.compare_digest(stored.encode("utf-8"), password.encode("utf-8"))

    try:
        return check_password_hash(stored, password)
    except ValueError:
        logger.warning("Malformed password hash in store")
        return False


# =============================================================================
# Token
# =============================================================================


class TokenService:
    """
    JWT 签发与校验

    claims: id / username / nickname / iat / exp
    校验失败（格式错误、过期、签名被篡改）统一返回 None，不向调用方区分原因。
    """

    algorithm = "HS256"

    def __init__(self, secret: str, expires_in: int = 3600):
        self._secret = secret
        self.expires_in = expires_in

    def issue(self, user: dict, now: datetime | None = None) -> str:
        issued_at = now or utc_now()
        payload = {
            "id": user["id"],
            "username": user.get("username"),
            "nickname": user.get("nickname", ""),
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=self.expires_in),
        }
        return jwt.encode(payload, self._secret, algorithm=self.algorithm)

    def verify(self, token: str | None) -> dict | None:
        if not token:
            return None
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.InvalidTokenError as e:
            logger.debug(f"Token rejected: {type(e).__name__}")
            return None


def extract_bearer(authorization: str | None) -> str | None:
    """从 Authorization 头中提取 Bearer token"""
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):].strip() or None
    return None


# =============================================================================
# AuthGate
# =============================================================================


class AuthGate:
    """
    鉴权 / 授权网关

    Usage:
        ```python
        gate = AuthGate(store, TokenService(secret))
        claims = gate.authenticate(token)
        user = await gate.resolve_capability(claims, "ai")
        ```
    """

    def __init__(self, store: "DocumentStore", tokens: TokenService):
        self._store = store
        self.tokens = tokens

    def authenticate(self, token: str | None) -> dict:
        """校验 token，返回 claims；任何失败都是同一个 401"""
        claims = self.tokens.verify(token)
        if not claims or not isinstance(claims.get("id"), int):
            raise AuthenticationError()
        return claims

    async def load_user(self, claims: dict) -> dict:
        """按 claims.id 加载用户（load 过程中已完成权限自愈）"""
        document = await self._store.load()
        for user in document["users"]:
            if user.get("id") == claims.get("id"):
                return user
        raise AuthenticationError("用户不存在")

    async def resolve_capability(self, claims: dict, capability: str) -> dict:
        user = await self.load_user(claims)
        if not has_capability(user, capability):
            raise PermissionDeniedError(
                "无权限访问", extra={"permission": capability}
            )
        return user

    async def resolve_admin(self, claims: dict) -> dict:
        user = await self.load_user(claims)
        if user.get("isAdmin") is not True:
            raise PermissionDeniedError("需要管理员权限")
        return user

    async def login(self, username: str, password: str) -> tuple[str, dict]:
        """
        用户名 + 密码登录

        Returns:
            (token, user)

        Raises:
            InvalidCredentialsError: 用户名或密码错误
        """
        async with self._store.transaction() as document:
            user = next(
                (u for u in document["users"] if u.get("username") == username),
                None,
            )
            if user is None or not verify_password(user.get("password"), password):
                raise InvalidCredentialsError()

            if not is_password_hash(user.get("password")):
                logger.info(f"Upgrading legacy password storage for user {user['id']}")
                user["password"] = hash_password(password)

            token = self.tokens.issue(user)
            return token, dict(user)
