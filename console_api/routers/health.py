"""
健康检查路由模块

无需鉴权
"""

from fastapi import APIRouter

from console_api.core.exceptions import ok
from console_api.models import HealthResponse
from console_api.utils.datetime import now_ms


def create_router() -> APIRouter:
    """
    创建健康检查路由器（工厂函数）

    Returns:
        配置完成的 APIRouter 实例
    """
    router = APIRouter()

    @router.get(
        "/health",
        summary="健康检查",
        description="返回服务状态与服务器当前时间（毫秒）",
    )
    async def health_check():
        """健康检查"""
        from console_api import __version__

        return ok(
            HealthResponse(status="ok", time=now_ms(), version=__version__).model_dump()
        )

    return router
