"""
AI 对话代理单元测试

上游通过 httpx.MockTransport 模拟
"""

import json

import httpx
import pytest

from console_api.core.exceptions import UpstreamError
from console_api.services.completion import (
    CompletionConfig,
    CompletionProxy,
    ProviderMode,
    extract_reply,
    parse_chat_reply,
    parse_responses_reply,
)

TRANSCRIPT = [
    {"role": "system", "content": "你是助手"},
    {"role": "user", "content": "你好"},
]

RESPONSES_BODY = {
    "output": [
        {"type": "reasoning", "summary": []},
        {
            "type": "message",
            "content": [
                {"type": "output_text", "text": "你好"},
                {"type": "output_text", "text": "，世界 "},
            ],
        },
    ]
}

CHAT_BODY = {"choices": [{"message": {"role": "assistant", "content": "来自 chat"}}]}


def make_proxy(handler, mode: ProviderMode = ProviderMode.RESPONSES, **kwargs) -> CompletionProxy:
    config = CompletionConfig(
        base_url="http://ai.test/v1/", api_key="sk-test", model="m-1", mode=mode, **kwargs
    )
    return CompletionProxy(config, transport=httpx.MockTransport(handler))


# =============================================================================
# 回复解析
# =============================================================================


class TestReplyParsers:
    """回复解析测试"""

    def test_responses_shape(self):
        assert parse_responses_reply(RESPONSES_BODY) == "你好，世界"

    def test_chat_shape(self):
        assert parse_chat_reply(CHAT_BODY) == "来自 chat"

    def test_fallback_to_other_shape(self):
        assert extract_reply(CHAT_BODY, ProviderMode.RESPONSES) == "来自 chat"
        assert extract_reply(RESPONSES_BODY, ProviderMode.CHAT) == "你好，世界"

    @pytest.mark.parametrize(
        "data",
        [{}, {"output": []}, {"choices": []}, {"output": "x", "choices": [{}]}, [], None],
    )
    def test_empty_reply(self, data):
        assert extract_reply(data) == ""


# =============================================================================
# 请求形态
# =============================================================================


class TestCompletionProxy:
    """CompletionProxy 测试"""

    @pytest.mark.asyncio
    async def test_responses_request_shape(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=RESPONSES_BODY)

        reply = await make_proxy(handler).complete(TRANSCRIPT)

        assert reply == "你好，世界"
        assert captured["url"] == "http://ai.test/v1/responses"
        assert captured["auth"] == "Bearer sk-test"
        assert captured["body"] == {"model": "m-1", "input": TRANSCRIPT, "stream": False}

    @pytest.mark.asyncio
    async def test_chat_request_shape(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=CHAT_BODY)

        reply = await make_proxy(handler, mode=ProviderMode.CHAT).complete(TRANSCRIPT)

        assert reply == "来自 chat"
        assert captured["url"] == "http://ai.test/v1/chat/completions"
        assert captured["body"] == {"model": "m-1", "messages": TRANSCRIPT, "stream": False}

    @pytest.mark.asyncio
    async def test_empty_reply_is_not_an_error(self):
        proxy = make_proxy(lambda request: httpx.Response(200, json={"output": []}))

        assert await proxy.complete(TRANSCRIPT) == ""

    @pytest.mark.asyncio
    async def test_upstream_error_message_surfaced(self):
        proxy = make_proxy(
            lambda request: httpx.Response(429, json={"error": {"message": "rate limited"}})
        )

        with pytest.raises(UpstreamError) as exc_info:
            await proxy.complete(TRANSCRIPT)

        assert exc_info.value.message == "rate limited"
        assert exc_info.value.code == 50200
        assert exc_info.value.extra == {"status": 429}

    @pytest.mark.asyncio
    async def test_upstream_error_without_message(self):
        proxy = make_proxy(lambda request: httpx.Response(500, json={"detail": "?"}))

        with pytest.raises(UpstreamError, match="AI 接口报错"):
            await proxy.complete(TRANSCRIPT)

    @pytest.mark.asyncio
    async def test_non_json_reply(self):
        html = "<html>" + "x" * 300 + "</html>"
        proxy = make_proxy(
            lambda request: httpx.Response(
                403, text=html, headers={"content-type": "text/html"}
            )
        )

        with pytest.raises(UpstreamError) as exc_info:
            await proxy.complete(TRANSCRIPT)

        error = exc_info.value
        assert error.message == "接口返回格式错误"
        assert error.extra["status"] == 403
        assert error.extra["detail"] == html[:100]

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(UpstreamError) as exc_info:
            await make_proxy(handler).complete(TRANSCRIPT)

        assert exc_info.value.message == "AI 服务连接失败"
        assert exc_info.value.code == 50000
        assert "connection refused" in exc_info.value.extra["detail"]

    @pytest.mark.asyncio
    async def test_not_configured(self):
        proxy = CompletionProxy(CompletionConfig(base_url=None))

        with pytest.raises(UpstreamError) as exc_info:
            await proxy.complete(TRANSCRIPT)

        assert exc_info.value.code == 50000


class TestCompletionConfig:
    """CompletionConfig.from_env 测试"""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("AI_BASE_URL", "http://example.test")
        monkeypatch.setenv("AI_PROVIDER_MODE", "CHAT")
        monkeypatch.setenv("AI_TIMEOUT", "5")

        config = CompletionConfig.from_env()

        assert config.base_url == "http://example.test"
        assert config.mode is ProviderMode.CHAT
        assert config.timeout == 5.0

    def test_unknown_mode_defaults_to_responses(self, monkeypatch):
        monkeypatch.setenv("AI_PROVIDER_MODE", "something")

        assert CompletionConfig.from_env().mode is ProviderMode.RESPONSES
