"""
路由模块

采用模块化设计，每个路由模块提供 create_router() 工厂函数。
字面量路由（/balance/list）必须先于参数路由（/balance/{balance_id}）注册。
"""

from console_api.routers import ai_requests, auth, balance, chat, health, items, users

__all__ = [
    "health",
    "auth",
    "chat",
    "balance",
    "ai_requests",
    "items",
    "users",
]
