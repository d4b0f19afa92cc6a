"""
应用上下文容器

设计原则：
- AppContext 封装所有服务实例，避免全局变量散落
- 单例通过类变量实现，lifespan 中 create / shutdown
- 与 FastAPI 依赖注入系统兼容
- 易于测试（reset() 后可用独立配置重新创建）
"""

import os
from dataclasses import dataclass, field
from typing import Annotated

from fastapi import Depends

from console_api.core.logging import get_logger
from console_api.services.auth import DEFAULT_ADMIN_USERNAME, AuthGate, TokenService
from console_api.services.completion import CompletionConfig, CompletionProxy
from console_api.services.document_store import DocumentStore, create_document_store
from console_api.services.quota import DEFAULT_DAILY_LIMIT, QuotaTracker

logger = get_logger(__name__)

DEFAULT_JWT_SECRET = "your-super-secret-key-change-in-production"


# =============================================================================
# 配置
# =============================================================================


@dataclass
class AppConfig:
    """应用配置"""

    # Storage
    store_backend: str = "file"
    db_path: str = "data/db.json"

    # Auth
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_expires_in: int = 3600
    admin_username: str = DEFAULT_ADMIN_USERNAME
    admin_password: str | None = "admin123"

    # Chat
    chat_daily_limit: int = DEFAULT_DAILY_LIMIT
    completion: CompletionConfig = field(default_factory=CompletionConfig)

    # Upload
    max_upload_bytes: int = 5 * 1024 * 1024

    @classmethod
    def from_env(cls) -> "AppConfig":
        """从环境变量创建配置"""
        return cls(
            store_backend=os.getenv("STORE_BACKEND", "file").lower(),
            db_path=os.getenv("DB_PATH", "data/db.json"),
            jwt_secret=os.getenv("JWT_SECRET", DEFAULT_JWT_SECRET),
            jwt_expires_in=int(os.getenv("JWT_EXPIRES_IN", "3600")),
            admin_username=os.getenv("ADMIN_USERNAME", DEFAULT_ADMIN_USERNAME),
            admin_password=os.getenv("ADMIN_PASSWORD", "admin123") or None,
            chat_daily_limit=int(os.getenv("CHAT_DAILY_LIMIT", str(DEFAULT_DAILY_LIMIT))),
            completion=CompletionConfig.from_env(),
            max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024))),
        )


# =============================================================================
# 应用上下文
# =============================================================================


@dataclass
class AppContext:
    """
    应用上下文容器

    Usage:
        ```python
        ctx = await AppContext.create(AppConfig.from_env())
        document = await ctx.store.load()
        await ctx.shutdown()
        ```
    """

    config: AppConfig
    store: DocumentStore
    auth: AuthGate
    quota: QuotaTracker
    completion: CompletionProxy

    _instance: "AppContext | None" = field(default=None, init=False, repr=False)

    @classmethod
    async def create(cls, config: AppConfig | None = None) -> "AppContext":
        """创建并初始化应用上下文"""
        if cls._instance is not None:
            return cls._instance

        config = config or AppConfig.from_env()
        if config.jwt_secret == DEFAULT_JWT_SECRET:
            logger.warning("JWT_SECRET not set, using the built-in development secret")

        store = create_document_store(
            config.store_backend,
            config.db_path,
            admin_username=config.admin_username,
            admin_password=config.admin_password,
        )
        # 启动时执行一次：结构修正 + 权限自愈 + 默认管理员
        document = await store.load()

        ctx = cls(
            config=config,
            store=store,
            auth=AuthGate(store, TokenService(config.jwt_secret, config.jwt_expires_in)),
            quota=QuotaTracker(store, daily_limit=config.chat_daily_limit),
            completion=CompletionProxy(config.completion),
        )

        cls._instance = ctx
        logger.info(
            f"AppContext initialized - store={store.store_type}, "
            f"users={len(document['users'])}, "
            f"ai_mode={config.completion.mode.value}, "
            f"ai_base_url={'set' if config.completion.base_url else 'missing'}"
        )
        return ctx

    async def shutdown(self) -> None:
        AppContext._instance = None
        logger.info("AppContext shutdown")

    @classmethod
    def get_instance(cls) -> "AppContext":
        """获取单例"""
        if cls._instance is None:
            raise RuntimeError("AppContext not initialized")
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """重置单例（测试用）"""
        cls._instance = None


# =============================================================================
# FastAPI 依赖注入
# =============================================================================


def get_app_context() -> AppContext:
    return AppContext.get_instance()


def get_store() -> DocumentStore:
    return AppContext.get_instance().store


def get_auth_gate() -> AuthGate:
    return AppContext.get_instance().auth


def get_quota_tracker() -> QuotaTracker:
    return AppContext.get_instance().quota


def get_completion_proxy() -> CompletionProxy:
    return AppContext.get_instance().completion


# =============================================================================
# 依赖类型别名
# =============================================================================

AppContextDep = Annotated[AppContext, Depends(get_app_context)]
StoreDep = Annotated[DocumentStore, Depends(get_store)]
AuthGateDep = Annotated[AuthGate, Depends(get_auth_gate)]
QuotaTrackerDep = Annotated[QuotaTracker, Depends(get_quota_tracker)]
CompletionProxyDep = Annotated[CompletionProxy, Depends(get_completion_proxy)]
