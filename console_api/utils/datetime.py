"""
时间处理工具函数

约定：
- 存储：整数毫秒时间戳（与前端 Date.now() 对齐）
- 配额：按本地自然日切换，而不是滚动 24 小时
"""

import time
from datetime import date, datetime, timezone


def now_ms() -> int:
    """
    当前时间的毫秒时间戳

    Example:
        >>> isinstance(now_ms(), int)
        True
    """
    return int(time.time() * 1000)


def utc_now() -> datetime:
    """获取当前 UTC 时间（带时区）"""
    return datetime.now(timezone.utc)


def today_key(today: date | None = None) -> str:
    """
    本地自然日的字符串键

    Args:
        today: 指定日期，默认取本地当天

    Returns:
        形如 "2026-02-03" 的日期键

    Example:
        >>> today_key(date(2026, 2, 3))
        '2026-02-03'
    """
    return (today or date.today()).isoformat()

