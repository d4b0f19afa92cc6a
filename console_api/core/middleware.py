"""
中间件模块

执行顺序（外 → 内）：
1. 错误边界：兜底未预期异常，转换为 50000 信封，进程不因单个请求崩溃
2. 预检短路：任意路径的 OPTIONS 直接返回成功
3. Correlation ID：生成请求 ID，记录访问日志
4. CORS：所有响应附加固定的跨域头
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from console_api.core.correlation import correlator, generate_request_id
from console_api.core.exceptions import CORS_HEADERS, BizCode, envelope_response, ok

logger = logging.getLogger(__name__)


def setup_middlewares(app: FastAPI) -> None:
    """
    配置所有中间件

    Starlette 中后注册的中间件位于外层，因此按内 → 外的顺序注册。
    """
    _setup_cors(app)
    _setup_correlation_id(app)
    _setup_preflight(app)
    _setup_error_boundary(app)


def _setup_cors(app: FastAPI) -> None:
    """所有响应允许任意来源"""

    @app.middleware("http")
    async def cors_middleware(request: Request, call_next):
        response = await call_next(request)
        for key, value in CORS_HEADERS.items():
            response.headers[key] = value
        return response


def _setup_correlation_id(app: FastAPI) -> None:
    """配置 Correlation ID 中间件"""

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        """
        为每个请求生成唯一的 correlation_id

        - 从请求头 X-Correlation-ID 获取，或自动生成
        - 在响应头中返回 X-Correlation-ID
        """
        correlation_id = request.headers.get("X-Correlation-ID")
        if not correlation_id:
            correlation_id = f"R{generate_request_id()}"

        with correlator.scope(
            correlation_id,
            properties={
                "request_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
            }
        ):
            logger.info(f"→ {request.method} {request.url.path}")

            response = await call_next(request)
            response.headers["X-Correlation-ID"] = correlation_id

            logger.info(f"← {request.method} {request.url.path} [{response.status_code}]")
            return response


def _setup_preflight(app: FastAPI) -> None:
    """OPTIONS 预检请求在路由匹配之前直接返回"""

    @app.middleware("http")
    async def preflight_middleware(request: Request, call_next):
        if request.method == "OPTIONS":
            return JSONResponse(status_code=200, content=ok("ok"), headers=CORS_HEADERS)
        return await call_next(request)


def _setup_error_boundary(app: FastAPI) -> None:
    """最外层错误边界"""

    @app.middleware("http")
    async def error_boundary_middleware(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(
                f"Unhandled exception: {request.method} {request.url.path} - {e}",
                exc_info=True,
            )
            return envelope_response(
                BizCode.INTERNAL_ERROR,
                "服务器异常",
                {"detail": str(e) or type(e).__name__},
            )
