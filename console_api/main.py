"""
Console API

主应用入口
"""

import asyncio
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from starlette.types import Receive, Scope, Send

from console_api import __version__
from console_api.container import AppConfig, AppContext
from console_api.core import get_logger, setup_exception_handlers, setup_logging, setup_middlewares
from console_api.routers import ai_requests, auth, balance, chat, health, items, users

# 加载 .env 并初始化日志
load_dotenv()
log_file_path = setup_logging()
logger = get_logger(__name__)
if log_file_path:
    logger.info(f"Log file: {log_file_path}")


# =============================================================================
# AppWrapper - ASGI 异常处理
# =============================================================================


class AppWrapper:
    """
    ASGI 应用包装器

    FastAPI 内置的异常处理不会捕获 BaseException（如 asyncio.CancelledError）
    这会导致服务进程以丑陋的 traceback 终止
    此包装器专门处理 asyncio.CancelledError，使其优雅退出
    """

    def __init__(self, app: FastAPI) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            return await self.app(scope, receive, send)
        except asyncio.CancelledError:
            pass  # 优雅退出，不抛出异常


# =============================================================================
# 应用创建
# =============================================================================


def create_app(config: AppConfig | None = None) -> FastAPI:
    """
    创建 FastAPI 应用

    Args:
        config: 应用配置，默认从环境变量读取（测试中传入独立配置）
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Console API...")
        try:
            await AppContext.create(config or AppConfig.from_env())
        except Exception as e:
            logger.error(f"Failed to initialize: {e}", exc_info=True)
            raise

        yield

        logger.info("Shutting down Console API...")
        await AppContext.get_instance().shutdown()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Console API",
        description="后台管理 API：用户与权限、条目、AI 对话、余额表",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # 中间件与异常处理
    setup_middlewares(app)
    setup_exception_handlers(app)

    # 路由注册
    app.include_router(health.create_router(), prefix="/api", tags=["Health"])
    app.include_router(auth.create_router(), prefix="/api", tags=["Auth"])
    app.include_router(chat.create_router(), prefix="/api", tags=["Chat"])
    app.include_router(balance.create_router(), prefix="/api", tags=["Balance"])
    app.include_router(ai_requests.create_router(), prefix="/api", tags=["AI Access"])
    app.include_router(items.create_router(), prefix="/api", tags=["Items"])
    app.include_router(users.create_router(), prefix="/api", tags=["Users"])

    return app


# =============================================================================
# 导出 ASGI 应用（使用 AppWrapper 包装）
# =============================================================================

app = AppWrapper(create_app())


# =============================================================================
# 启动入口
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    debug = os.getenv("DEBUG", "false").lower() == "true"
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "3000"))

    # 使用 reload 时必须用字符串形式的应用路径
    reload_enabled = os.getenv("RELOAD", str(debug)).lower() == "true"

    logger.info(
        f"Starting server - host: {host}, port: {port}, "
        f"debug: {debug}, reload: {reload_enabled}"
    )

    # 单 worker：文档存储的写锁只在进程内有效
    uvicorn.run(
        "console_api.main:app",
        host=host,
        port=port,
        reload=reload_enabled,
        reload_dirs=["console_api"] if reload_enabled else None,
        log_level="debug" if debug else "info",
    )
