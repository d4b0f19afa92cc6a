"""
AI 对话路由模块

所有接口需要 `ai` 能力：
- /chat/history  会话列表（前端原样保存，按用户隔离）
- /chat/usage    今日额度
- /chat          转发对话到补全服务（普通用户受每日额度限制）
"""

from fastapi import APIRouter

from console_api.container import CompletionProxyDep, QuotaTrackerDep, StoreDep
from console_api.core.exceptions import BadRequestError, QuotaExceededError, ok
from console_api.core.logging import LogContext, get_logger
from console_api.dependencies import AICapabilityDep
from console_api.models import ChatHistoryPayload, ChatRequest
from console_api.utils.datetime import now_ms

logger = get_logger(__name__)


def _empty_session() -> dict:
    return {"activeId": None, "conversations": [], "updatedAt": None}


def create_router() -> APIRouter:
    """
    创建对话路由器（工厂函数）

    Returns:
        配置完成的 APIRouter 实例
    """
    router = APIRouter()

    # =========================================================================
    # 对话历史
    # =========================================================================

    @router.get("/chat/history", summary="获取对话历史")
    async def get_history(user: AICapabilityDep, store: StoreDep):
        document = await store.load()
        session = document["chatHistory"].get(str(user["id"]))
        return ok(session if isinstance(session, dict) else _empty_session())

    @router.put("/chat/history", summary="保存对话历史")
    async def save_history(
        user: AICapabilityDep,
        store: StoreDep,
        payload: ChatHistoryPayload | None = None,
    ):
        payload = payload or ChatHistoryPayload()
        session = {
            "activeId": payload.active_id,
            "conversations": payload.conversations,
            "updatedAt": now_ms(),
        }
        async with store.transaction() as document:
            document["chatHistory"][str(user["id"])] = session
        return ok(session)

    @router.delete("/chat/history", summary="清空对话历史")
    async def clear_history(user: AICapabilityDep, store: StoreDep):
        async with store.transaction() as document:
            document["chatHistory"].pop(str(user["id"]), None)
        return ok(_empty_session())

    # =========================================================================
    # 额度与对话
    # =========================================================================

    @router.get("/chat/usage", summary="今日对话额度")
    async def get_usage(user: AICapabilityDep, quota: QuotaTrackerDep):
        result = await quota.status(user)
        return ok(result.to_dict())

    @router.post("/chat", summary="AI 对话")
    async def chat(
        user: AICapabilityDep,
        quota: QuotaTrackerDep,
        proxy: CompletionProxyDep,
        payload: ChatRequest | None = None,
    ):
        if payload is None or payload.messages is None:
            raise BadRequestError("messages 格式错误")

        usage = await quota.consume(user)
        if not usage.allowed:
            raise QuotaExceededError(extra={"count": usage.count, "limit": usage.limit})

        transcript = [m.model_dump(mode="json") for m in payload.messages]
        with LogContext.operation("chat_completion", messages=len(transcript)):
            content = await proxy.complete(transcript)

        return ok({"content": content, "usage": usage.to_dict()})

    return router
