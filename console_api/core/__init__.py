"""
核心基础设施模块

提供日志、追踪、中间件、异常处理等基础功能
"""

from console_api.core.correlation import (
    correlator,
    generate_request_id,
    ContextualCorrelator,
)
from console_api.core.logging import (
    setup_logging,
    get_logger,
    LogContext,
)
from console_api.core.middleware import setup_middlewares
from console_api.core.exceptions import (
    BizCode,
    ok,
    envelope_response,
    APIException,
    BadRequestError,
    ConflictError,
    AuthenticationError,
    InvalidCredentialsError,
    PermissionDeniedError,
    ItemNotFoundError,
    QuotaExceededError,
    UpstreamError,
    setup_exception_handlers,
)

__all__ = [
    # Correlation
    "correlator",
    "generate_request_id",
    "ContextualCorrelator",
    # Logging
    "setup_logging",
    "get_logger",
    "LogContext",
    # Middleware
    "setup_middlewares",
    # Exceptions
    "BizCode",
    "ok",
    "envelope_response",
    "APIException",
    "BadRequestError",
    "ConflictError",
    "AuthenticationError",
    "InvalidCredentialsError",
    "PermissionDeniedError",
    "ItemNotFoundError",
    "QuotaExceededError",
    "UpstreamError",
    "setup_exception_handlers",
]
