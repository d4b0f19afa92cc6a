"""
工具函数模块
"""

from console_api.utils.datetime import (
    now_ms,
    utc_now,
    today_key,
)

__all__ = [
    "now_ms",
    "utc_now",
    "today_key",
]
