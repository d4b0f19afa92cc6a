"""
日志与请求追踪测试
"""

import logging

import pytest

from console_api.core.correlation import correlator, generate_request_id
from console_api.core.logging import ContextFormatter, LogContext


def _format(message: str = "hello") -> str:
    formatter = ContextFormatter("%(ctx)s %(message)s")
    record = logging.LogRecord("test", logging.INFO, __file__, 1, message, None, None)
    return formatter.format(record)


class TestCorrelator:
    """ContextualCorrelator 测试"""

    def test_generate_request_id(self):
        first, second = generate_request_id(), generate_request_id()

        assert len(first) == 10
        assert first.isalnum()
        assert first != second

    def test_nested_scopes(self):
        assert correlator.correlation_id == "-"

        with correlator.scope("R1", properties={"method": "GET"}):
            with correlator.scope("upload") as scope_id:
                assert scope_id == "R1::upload"
                assert correlator.properties == {"method": "GET"}
            assert correlator.correlation_id == "R1"

        assert correlator.correlation_id == "-"
        assert correlator.properties == {}


class TestContextFormatter:
    """上下文前缀"""

    def test_without_context(self):
        assert _format() == "[*] hello"

    def test_correlation_and_user(self):
        with correlator.scope("Rabc"):
            with LogContext(user_id=3):
                assert _format() == "[Rabc] [u:3] hello"
                with LogContext.scope("balance_upload"):
                    assert _format() == "[Rabc] [u:3:balance_upload] hello"
                assert LogContext.get("user_id") == 3

        assert LogContext.get("user_id") is None

    def test_operation_reraises(self):
        with pytest.raises(ValueError, match="boom"):
            with LogContext.operation("failing"):
                raise ValueError("boom")
