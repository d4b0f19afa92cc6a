"""
AI 对话代理

把对话记录转发到外部补全服务，支持两种接口形态：
- responses:         POST {base}/responses          {"model", "input", "stream": false}
- chat completions:  POST {base}/chat/completions   {"model", "messages", "stream": false}

响应处理：
- Content-Type 不是 JSON → 上游错误，附带响应体前 100 个字符
- 非 2xx → 上游错误，优先透传 error.message
- 成功 → 按配置的形态解析回复，解析不到再尝试另一种形态；都没有则返回空字符串
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

import httpx

from console_api.core.exceptions import BizCode, UpstreamError
from console_api.core.logging import get_logger

logger = get_logger(__name__)

SNIPPET_LENGTH = 100


class ProviderMode(str, Enum):
    """上游接口形态"""
    RESPONSES = "responses"
    CHAT = "chat"


@dataclass
class CompletionConfig:
    """补全服务配置"""
    base_url: str | None = None
    api_key: str | None = None
    model: str = "gpt-4o-mini"
    mode: ProviderMode = ProviderMode.RESPONSES
    timeout: float = 60.0

    @classmethod
    def from_env(cls) -> "CompletionConfig":
        """从环境变量加载配置"""
        mode = os.getenv("AI_PROVIDER_MODE", ProviderMode.RESPONSES.value).lower()
        return cls(
            base_url=os.getenv("AI_BASE_URL"),
            api_key=os.getenv("AI_API_KEY"),
            model=os.getenv("AI_MODEL", "gpt-4o-mini"),
            mode=ProviderMode.CHAT if mode == ProviderMode.CHAT.value else ProviderMode.RESPONSES,
            timeout=float(os.getenv("AI_TIMEOUT", "60")),
        )


# =============================================================================
# 回复解析
# =============================================================================


def parse_responses_reply(data: Any) -> str:
    """responses 形态：output 中 type=message 的条目，拼接其 content[].text"""
    if not isinstance(data, dict) or not isinstance(data.get("output"), list):
        return ""
    fragments = []
    for item in data["output"]:
        if not isinstance(item, dict) or item.get("type") != "message":
            continue
        if not isinstance(item.get("content"), list):
            continue
        for block in item["content"]:
            if isinstance(block, dict) and isinstance(block.get("text"), str):
                fragments.append(block["text"])
    return "".join(fragments).strip()


def parse_chat_reply(data: Any) -> str:
    """chat completions 形态：choices[0].message.content"""
    if not isinstance(data, dict):
        return ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    message = choices[0].get("message")
    content = message.get("content") if isinstance(message, dict) else None
    return content if isinstance(content, str) else ""


REPLY_PARSERS: dict[ProviderMode, Callable[[Any], str]] = {
    ProviderMode.RESPONSES: parse_responses_reply,
    ProviderMode.CHAT: parse_chat_reply,
}


def extract_reply(data: Any, mode: ProviderMode = ProviderMode.RESPONSES) -> str:
    """先用配置的形态解析，解析不到再回退到另一种形态"""
    fallback = ProviderMode.CHAT if mode == ProviderMode.RESPONSES else ProviderMode.RESPONSES
    return REPLY_PARSERS[mode](data) or REPLY_PARSERS[fallback](data)


# =============================================================================
# 代理
# =============================================================================


class CompletionProxy:
    """
    补全服务代理

    Usage:
        ```python
        proxy = CompletionProxy(CompletionConfig.from_env())
        text = await proxy.complete([{"role": "user", "content": "你好"}])
        ```
    """

    def __init__(
        self,
        config: CompletionConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._config = config
        self._transport = transport

    @property
    def config(self) -> CompletionConfig:
        return self._config

    @property
    def endpoint(self) -> str:
        base = (self._config.base_url or "").rstrip("/")
        if self._config.mode == ProviderMode.CHAT:
            return f"{base}/chat/completions"
        return f"{base}/responses"

    def build_payload(self, transcript: list[dict[str, str]]) -> dict[str, Any]:
        messages = [{"role": m["role"], "content": m["content"]} for m in transcript]
        key = "messages" if self._config.mode == ProviderMode.CHAT else "input"
        return {"model": self._config.model, key: messages, "stream": False}

    async def complete(self, transcript: list[dict[str, str]]) -> str:
        """
        转发对话并返回回复文本

        Raises:
            UpstreamError: 连接失败、非 JSON 响应或上游报错
        """
        if not self._config.base_url:
            raise UpstreamError("AI 服务未配置", code=BizCode.INTERNAL_ERROR)

        payload = self.build_payload(transcript)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._config.api_key or ''}",
        }
        logger.info(
            f"Completion REQ: mode={self._config.mode.value}, "
            f"model={self._config.model}, messages={len(transcript)}"
        )

        try:
            async with httpx.AsyncClient(
                timeout=self._config.timeout, transport=self._transport
            ) as client:
                resp = await client.post(self.endpoint, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Completion service unreachable: {e}")
            raise UpstreamError(
                "AI 服务连接失败",
                code=BizCode.INTERNAL_ERROR,
                extra={"detail": str(e) or type(e).__name__},
            ) from e

        content_type = resp.headers.get("content-type", "")
        if "application/json" not in content_type:
            logger.error(
                f"Completion RESP non-JSON: status={resp.status_code}, "
                f"body={resp.text[:200]}"
            )
            raise UpstreamError(
                "接口返回格式错误",
                extra={"status": resp.status_code, "detail": resp.text[:SNIPPET_LENGTH]},
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamError(
                "接口返回格式错误",
                extra={"status": resp.status_code, "detail": resp.text[:SNIPPET_LENGTH]},
            ) from e

        if resp.is_error:
            error = data.get("error") if isinstance(data, dict) else None
            message = error.get("message") if isinstance(error, dict) else None
            logger.warning(f"Completion RESP error: status={resp.status_code}, message={message}")
            raise UpstreamError(message or "AI 接口报错", extra={"status": resp.status_code})

        reply = extract_reply(data, self._config.mode)
        logger.info(f"Completion RESP: status={resp.status_code}, length={len(reply)}")
        return reply
