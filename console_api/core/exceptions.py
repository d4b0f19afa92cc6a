"""
统一异常处理模块

提供：
1. 业务状态码与 {code, data} 响应信封
2. 自定义异常类
3. 异常处理器注册函数

约定：业务错误一律 HTTP 200，错误信息放在 data 里；
只有鉴权失败 (401) 与权限不足 (403) 使用专用 HTTP 状态码。
"""

from enum import IntEnum
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from console_api.core.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# 业务状态码
# =============================================================================


class BizCode(IntEnum):
    """业务状态码（XXYYY）"""
    SUCCESS = 0
    BAD_REQUEST = 40000
    UNAUTHORIZED = 40100
    FORBIDDEN = 40300
    NOT_FOUND = 40400
    QUOTA_EXCEEDED = 42901
    INTERNAL_ERROR = 50000
    UPSTREAM_ERROR = 50200


CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type,Authorization",
}


# =============================================================================
# 响应信封
# =============================================================================


def ok(data: Any = None) -> dict:
    """成功信封"""
    return {"code": BizCode.SUCCESS.value, "data": data}


def envelope_response(
    code: int,
    message: str,
    extra: dict | None = None,
    status_code: int = 200,
) -> JSONResponse:
    """错误信封：{code, data: {message, ...extra}}"""
    content = {"code": int(code), "data": {"message": message, **(extra or {})}}
    return JSONResponse(status_code=status_code, content=content, headers=CORS_HEADERS)


# =============================================================================
# 自定义异常类
# =============================================================================


class APIException(Exception):
    """API 基础异常"""

    def __init__(
        self,
        message: str,
        code: int = BizCode.INTERNAL_ERROR,
        status_code: int = 200,
        extra: dict | None = None,
    ):
        self.message = message
        self.code = int(code)
        self.status_code = status_code
        self.extra = extra or {}
        super().__init__(message)


class BadRequestError(APIException):
    """参数校验失败"""

    def __init__(self, message: str, extra: dict | None = None):
        super().__init__(message, code=BizCode.BAD_REQUEST, extra=extra)


class ConflictError(APIException):
    """唯一性冲突（沿用 40000，与前端约定保持一致）"""

    def __init__(self, message: str, extra: dict | None = None):
        super().__init__(message, code=BizCode.BAD_REQUEST, extra=extra)


class AuthenticationError(APIException):
    """Token 缺失、格式错误、过期或被篡改"""

    def __init__(self, message: str = "Token 无效或已过期"):
        super().__init__(message, code=BizCode.UNAUTHORIZED, status_code=401)


class InvalidCredentialsError(APIException):
    """登录失败：用户名或密码错误（业务错误，HTTP 200）"""

    def __init__(self, message: str = "用户名或密码错误"):
        super().__init__(message, code=BizCode.UNAUTHORIZED)


class PermissionDeniedError(APIException):
    """身份有效但权限不足"""

    def __init__(self, message: str = "无权限访问", extra: dict | None = None):
        super().__init__(message, code=BizCode.FORBIDDEN, status_code=403, extra=extra)


class ItemNotFoundError(APIException):
    """资源不存在"""

    def __init__(self, message: str = "资源不存在", extra: dict | None = None):
        super().__init__(message, code=BizCode.NOT_FOUND, extra=extra)


class QuotaExceededError(APIException):
    """今日额度已用完"""

    def __init__(self, message: str = "今日对话次数已用完", extra: dict | None = None):
        super().__init__(message, code=BizCode.QUOTA_EXCEEDED, extra=extra)


class UpstreamError(APIException):
    """外部 AI 服务报错或返回非 JSON"""

    def __init__(
        self,
        message: str,
        code: int = BizCode.UPSTREAM_ERROR,
        extra: dict | None = None,
    ):
        super().__init__(message, code=code, extra=extra)


# =============================================================================
# 异常处理器注册
# =============================================================================


def _validation_message(exc: RequestValidationError) -> tuple[str, list]:
    errors = exc.errors()
    if any(e.get("type") == "json_invalid" for e in errors):
        return "JSON 解析失败", []
    detail = [
        {"loc": ".".join(str(p) for p in e.get("loc", ())), "msg": e.get("msg", "")}
        for e in errors
    ]
    return "请求参数错误", detail


def setup_exception_handlers(app: FastAPI) -> None:
    """
    注册所有异常处理器

    1. 自定义 API 异常
    2. 请求验证错误 → 40000
    3. 路由未命中 / 方法不匹配 → 40400（HTTP 200）
    未预期异常由 middleware 中的错误边界兜底。
    """

    @app.exception_handler(APIException)
    async def api_exception_handler(request: Request, exc: APIException):
        logger.warning(f"API Exception: {exc.code} - {exc.message}")
        return envelope_response(exc.code, exc.message, exc.extra, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        message, detail = _validation_message(exc)
        logger.warning(f"Validation error: {exc.errors()}")
        extra = {"detail": detail} if detail else None
        return envelope_response(BizCode.BAD_REQUEST, message, extra)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            return envelope_response(
                BizCode.NOT_FOUND,
                "接口不存在",
                {"path": request.url.path, "method": request.method},
            )
        return envelope_response(
            exc.status_code * 100,
            str(exc.detail) if exc.detail else "HTTP Error",
        )


__all__ = [
    "BizCode",
    "CORS_HEADERS",
    "ok",
    "envelope_response",
    "APIException",
    "BadRequestError",
    "ConflictError",
    "AuthenticationError",
    "InvalidCredentialsError",
    "PermissionDeniedError",
    "ItemNotFoundError",
    "QuotaExceededError",
    "UpstreamError",
    "setup_exception_handlers",
]
