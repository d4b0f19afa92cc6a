"""
对话额度

按用户、按本地自然日计数：
- 存储的 date 与今天不同 → 计数惰性归零（无后台任务）
- 管理员与 vip 用户不限次数，也不计数
- 普通用户达到上限后拒绝，计数保持不变
"""

from dataclasses import dataclass
from typing import Callable

from console_api.core.logging import get_logger
from console_api.services.auth import has_capability
from console_api.services.document_store import DocumentStore
from console_api.utils.datetime import today_key

logger = get_logger(__name__)

DEFAULT_DAILY_LIMIT = 20


@dataclass
class QuotaResult:
    """额度查询 / 消费结果"""
    allowed: bool
    count: int
    limit: int
    unlimited: bool = False

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "count": self.count,
            "limit": self.limit,
            "unlimited": self.unlimited,
        }


class QuotaTracker:
    """
    每日对话额度

    Args:
        store: 文档存储
        daily_limit: 每日上限
        today: 返回当天日期键的函数（测试中可替换以模拟跨天）
    """

    def __init__(
        self,
        store: DocumentStore,
        daily_limit: int = DEFAULT_DAILY_LIMIT,
        today: Callable[[], str] = today_key,
    ):
        self._store = store
        self.daily_limit = daily_limit
        self._today = today

    @staticmethod
    def is_unlimited(user: dict) -> bool:
        return user.get("isAdmin") is True or has_capability(user, "vip")

    def _counter(self, document: dict, user_id: int) -> dict:
        """取当天计数器，跨天时归零"""
        key = str(user_id)
        today = self._today()
        counter = document["chatUsage"].get(key)
        if not isinstance(counter, dict) or counter.get("date") != today:
            counter = {"date": today, "count": 0}
            document["chatUsage"][key] = counter
        if not isinstance(counter.get("count"), int) or counter["count"] < 0:
            counter["count"] = 0
        return counter

    async def consume(self, user: dict) -> QuotaResult:
        """消费一次额度"""
        if self.is_unlimited(user):
            return QuotaResult(allowed=True, count=0, limit=self.daily_limit, unlimited=True)

        async with self._store.transaction() as document:
            counter = self._counter(document, user["id"])
            if counter["count"] >= self.daily_limit:
                logger.info(
                    f"Quota exceeded for user {user['id']}: "
                    f"{counter['count']}/{self.daily_limit}"
                )
                return QuotaResult(
                    allowed=False, count=counter["count"], limit=self.daily_limit
                )
            counter["count"] += 1
            return QuotaResult(allowed=True, count=counter["count"], limit=self.daily_limit)

    async def status(self, user: dict) -> QuotaResult:
        """查询当天额度（不消费）"""
        if self.is_unlimited(user):
            return QuotaResult(allowed=True, count=0, limit=self.daily_limit, unlimited=True)

        document = await self._store.load()
        counter = document["chatUsage"].get(str(user["id"]))
        count = 0
        if isinstance(counter, dict) and counter.get("date") == self._today():
            count = counter.get("count") or 0
        return QuotaResult(
            allowed=count < self.daily_limit, count=count, limit=self.daily_limit
        )
