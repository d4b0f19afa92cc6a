"""
测试公共夹具

- 关闭文件日志
- 每个测试使用独立的内存存储与 AppContext
- AI 补全服务通过 httpx.MockTransport 替换
"""

import io
import os

os.environ.setdefault("LOG_TO_FILE", "false")

import httpx
import pytest
from fastapi.testclient import TestClient
from openpyxl import Workbook

from console_api.container import AppConfig, AppContext, get_completion_proxy
from console_api.main import create_app
from console_api.services.completion import CompletionConfig, CompletionProxy

TEST_SECRET = "test-secret"
ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "admin123"
CHAT_LIMIT = 2


def responses_reply(text: str) -> dict:
    return {
        "output": [
            {"type": "reasoning", "summary": []},
            {"type": "message", "content": [{"type": "output_text", "text": text}]},
        ]
    }


def make_workbook(rows: list[list], sheet_name: str = "Sheet1") -> bytes:
    """用 openpyxl 生成内存中的 .xlsx 文件"""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_name
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    monkeypatch.setattr("console_api.services.auth.PASSWORD_METHOD", "pbkdf2:sha256:1000")


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(
        store_backend="memory",
        jwt_secret=TEST_SECRET,
        admin_username=ADMIN_USERNAME,
        admin_password=ADMIN_PASSWORD,
        chat_daily_limit=CHAT_LIMIT,
        completion=CompletionConfig(base_url="http://ai.test/v1", api_key="sk-test"),
    )


@pytest.fixture
def completion_requests() -> list:
    """记录发往补全服务的请求"""
    return []


@pytest.fixture
def completion_proxy(app_config, completion_requests) -> CompletionProxy:
    def handler(request: httpx.Request) -> httpx.Response:
        completion_requests.append(request)
        return httpx.Response(200, json=responses_reply("你好，我是助手"))

    return CompletionProxy(app_config.completion, transport=httpx.MockTransport(handler))


@pytest.fixture
def app(app_config, completion_proxy):
    AppContext.reset()
    application = create_app(app_config)
    application.dependency_overrides[get_completion_proxy] = lambda: completion_proxy
    yield application
    application.dependency_overrides.clear()
    AppContext.reset()


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def login(client: TestClient, username: str, password: str) -> str:
    response = client.post("/api/login", json={"username": username, "password": password})
    body = response.json()
    assert body["code"] == 0, body
    return body["data"]["token"]


@pytest.fixture
def admin_token(client) -> str:
    return login(client, ADMIN_USERNAME, ADMIN_PASSWORD)


@pytest.fixture
def create_account(client, admin_token):
    """通过管理员接口创建用户并返回 (user, token)"""

    def _create(username: str, password: str = "secret", **fields) -> tuple[dict, str]:
        response = client.post(
            "/api/users",
            json={"username": username, "password": password, **fields},
            headers=auth(admin_token),
        )
        body = response.json()
        assert body["code"] == 0, body
        return body["data"], login(client, username, password)

    return _create
