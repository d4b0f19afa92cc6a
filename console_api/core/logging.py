"""
统一日志模块

提供基于上下文作用域的结构化日志：
- 自动注入 correlation_id、user_id 等上下文信息
- 支持作用域嵌套
- 支持操作计时和异常捕获

使用示例:
    from console_api.core.logging import get_logger, LogContext

    logger = get_logger(__name__)

    with LogContext(user_id=3):
        logger.info("Handling request")  # 自动包含 user_id

        with LogContext.operation("balance_upload"):
            logger.info("Parsing workbook")  # 自动计时
"""

from __future__ import annotations
import contextvars
import logging
import os
import time
import traceback
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from console_api.core.correlation import correlator


# =============================================================================
# 上下文变量
# =============================================================================

_log_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "log_context", default={}
)

_scope_stack: contextvars.ContextVar[list[str]] = contextvars.ContextVar(
    "scope_stack", default=[]
)


# =============================================================================
# LogContext - 上下文管理器
# =============================================================================


class LogContext:
    """
    日志上下文管理器

    自动将上下文信息注入到日志中，支持嵌套作用域。
    """

    def __init__(self, **kwargs: Any):
        self._props = kwargs
        self._token: contextvars.Token | None = None

    def __enter__(self) -> "LogContext":
        current = _log_context.get().copy()
        current.update(self._props)
        self._token = _log_context.set(current)
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token:
            _log_context.reset(self._token)

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """获取上下文属性"""
        return _log_context.get().get(key, default)

    @classmethod
    def bind(cls, **kwargs: Any) -> None:
        """
        在当前上下文中追加属性（不恢复）

        用于依赖注入阶段：鉴权通过后把 user_id 写入本次请求的上下文。
        """
        current = _log_context.get().copy()
        current.update(kwargs)
        _log_context.set(current)

    @classmethod
    @contextmanager
    def scope(cls, name: str, **kwargs: Any) -> Iterator[None]:
        """进入命名作用域"""
        current_stack = _scope_stack.get().copy()
        current_stack.append(name)
        stack_token = _scope_stack.set(current_stack)

        current_ctx = _log_context.get().copy()
        current_ctx.update(kwargs)
        ctx_token = _log_context.set(current_ctx)

        try:
            yield
        finally:
            _scope_stack.reset(stack_token)
            _log_context.reset(ctx_token)

    @classmethod
    @contextmanager
    def operation(cls, name: str, **kwargs: Any) -> Iterator[None]:
        """
        操作计时上下文

        Args:
            name: 操作名称
            **kwargs: 附加上下文属性
        """
        logger = get_logger("operation")
        t_start = time.time()

        with cls.scope(name, **kwargs):
            try:
                yield
                elapsed = time.time() - t_start
                logger.info(f"{name} completed in {elapsed:.3f}s")
            except Exception as e:
                elapsed = time.time() - t_start
                logger.warning(f"{name} failed after {elapsed:.3f}s: {e}")
                logger.debug(traceback.format_exc())
                raise


# =============================================================================
# 日志格式化器
# =============================================================================


class ContextFormatter(logging.Formatter):
    """
    上下文感知的日志格式化器

    输出形如 `[R3fa9c01xyz] [u:3:balance_upload]` 的上下文前缀。
    """

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        ct = datetime.fromtimestamp(record.created)
        if datefmt:
            return ct.strftime(datefmt.replace("%f", f"{ct.microsecond:06d}"))
        return ct.isoformat(timespec="milliseconds")

    def format(self, record: logging.LogRecord) -> str:
        correlation_id = correlator.correlation_id
        cid = "*" if not correlation_id or correlation_id == "-" else correlation_id[:11]

        user_id = _log_context.get().get("user_id")
        scopes = _scope_stack.get()
        scope = scopes[-1] if scopes else None

        if user_id is not None and scope:
            ctx_str = f"[{cid}] [u:{user_id}:{scope}]"
        elif user_id is not None:
            ctx_str = f"[{cid}] [u:{user_id}]"
        else:
            ctx_str = f"[{cid}]"

        record.ctx = ctx_str
        return super().format(record)


# =============================================================================
# 日志配置
# =============================================================================


_initialized = False


def setup_logging(
    log_dir: str | None = None,
    log_level: str = "INFO",
    console: bool = True,
    file: bool | None = None,
) -> str | None:
    """
    配置日志系统

    Args:
        log_dir: 日志目录，默认从 LOG_DIR 环境变量读取或使用 "logs"
        log_level: 日志级别，默认从 LOG_LEVEL 环境变量读取
        console: 是否输出到控制台
        file: 是否输出到文件，默认从 LOG_TO_FILE 环境变量读取

    Returns:
        日志文件路径（如果启用文件输出）
    """
    global _initialized

    if _initialized:
        return None

    log_base_dir = log_dir or os.getenv("LOG_DIR", "logs")
    level_name = os.getenv("LOG_LEVEL", log_level).upper()
    level = getattr(logging, level_name, logging.INFO)
    if file is None:
        file = os.getenv("LOG_TO_FILE", "true").lower() == "true"

    log_format = "%(asctime)s [%(levelname)-8s] %(ctx)s %(message)s"
    formatter = ContextFormatter(log_format, datefmt="%Y-%m-%dT%H:%M:%S.%f")

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    log_file_path = None

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if file:
        now = datetime.now()
        log_path = Path(log_base_dir) / now.strftime("%Y-%m-%d")
        log_path.mkdir(parents=True, exist_ok=True)

        log_file = log_path / (now.strftime("%H-%M-%S") + ".log")
        log_file_path = str(log_file)

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    _initialized = True
    return log_file_path


def get_logger(name: str) -> logging.Logger:
    """获取日志器，name 通常使用 __name__"""
    return logging.getLogger(name)


__all__ = [
    "LogContext",
    "ContextFormatter",
    "setup_logging",
    "get_logger",
]
