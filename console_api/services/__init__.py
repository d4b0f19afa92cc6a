"""
服务模块

- document_store: 单文档持久化
- auth: token / 密码 / 权限自愈 / 鉴权网关
- quota: 每日对话额度
- balance: 余额表聚合
- spreadsheet: 表格解析
- completion: AI 对话代理
"""

from console_api.services.auth import AuthGate, TokenService
from console_api.services.balance import BalanceTable, aggregate_rows
from console_api.services.completion import CompletionConfig, CompletionProxy, ProviderMode
from console_api.services.document_store import (
    DocumentStore,
    JsonFileDocumentStore,
    MemoryDocumentStore,
    create_document_store,
)
from console_api.services.quota import QuotaResult, QuotaTracker

__all__ = [
    "AuthGate",
    "TokenService",
    "BalanceTable",
    "aggregate_rows",
    "CompletionConfig",
    "CompletionProxy",
    "ProviderMode",
    "DocumentStore",
    "JsonFileDocumentStore",
    "MemoryDocumentStore",
    "create_document_store",
    "QuotaResult",
    "QuotaTracker",
]
