"""
Correlation ID 模块

请求追踪的轻量级实现：
- ContextualCorrelator: 上下文管理器，支持作用域嵌套
- 日志集成: 格式化器从这里读取当前 correlation_id

使用示例:
    with correlator.scope("R1234xyz", properties={"method": "GET"}):
        logger.info("Processing...")  # 日志自动包含 correlation_id
"""

import contextvars
from contextlib import contextmanager
from typing import Any, Generator

import nanoid


# =============================================================================
# ID 生成配置
# =============================================================================

# 62 字符：数字 + 大小写字母，URL-safe
ID_GENERATION_ALPHABET: str = (
    "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
)

ID_SIZE: int = 10


# =============================================================================
# Correlation ID 上下文变量
# =============================================================================

_correlation_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)
_correlation_properties: contextvars.ContextVar[dict] = contextvars.ContextVar(
    "correlation_properties", default={}
)


def generate_request_id() -> str:
    """生成唯一请求 ID（nanoid，10 位）"""
    return nanoid.generate(alphabet=ID_GENERATION_ALPHABET, size=ID_SIZE)


# =============================================================================
# ContextualCorrelator
# =============================================================================


class ContextualCorrelator:
    """
    上下文关联器

    使用示例:
        with correlator.scope("R1234xyz"):
            print(correlator.correlation_id)  # R1234xyz

            with correlator.scope("upload"):
                print(correlator.correlation_id)  # R1234xyz::upload
    """

    @contextmanager
    def scope(
        self,
        scope_id: str,
        properties: dict[str, Any] | None = None
    ) -> Generator[str, None, None]:
        """
        进入新的作用域

        Args:
            scope_id: 作用域标识符
            properties: 附加属性（如 request_id, method, path）

        Yields:
            当前完整的 correlation_id
        """
        current = _correlation_id.get()
        new_scope = f"{current}::{scope_id}" if current else scope_id

        current_props = _correlation_properties.get().copy()
        if properties:
            current_props.update(properties)

        token_id = _correlation_id.set(new_scope)
        token_props = _correlation_properties.set(current_props)

        try:
            yield new_scope
        finally:
            _correlation_id.reset(token_id)
            _correlation_properties.reset(token_props)

    @property
    def correlation_id(self) -> str:
        return _correlation_id.get() or "-"

    @property
    def properties(self) -> dict[str, Any]:
        return _correlation_properties.get().copy()


# 全局单例
correlator = ContextualCorrelator()

