"""
鉴权单元测试

测试：
- 权限自愈规则与幂等性
- 密码哈希与旧版明文兼容
- token 签发 / 过期 / 篡改
- AuthGate 能力与管理员校验、登录时的密码升级
"""

import base64
import json
from datetime import datetime, timedelta, timezone

import pytest
from werkzeug.security import check_password_hash, generate_password_hash

from console_api.core.exceptions import (
    AuthenticationError,
    InvalidCredentialsError,
    PermissionDeniedError,
)
from console_api.services.auth import (
    AuthGate,
    TokenService,
    extract_bearer,
    has_capability,
    hash_password,
    heal_user,
    is_password_hash,
    verify_password,
)
from console_api.services import auth as auth_service
from console_api.services.document_store import MemoryDocumentStore, empty_document

FAST_METHOD = "pbkdf2:sha256:1000"


# =============================================================================
# 权限自愈
# =============================================================================


class TestHealUser:
    """heal_user 测试"""

    def test_reserved_name_becomes_admin(self):
        user = {"id": 1, "username": "admin", "isAdmin": False, "permissions": {"ai": False}}

        assert heal_user(user, "admin") is True
        assert user["isAdmin"] is True
        assert user["permissions"] == {"users": True, "ai": True, "vip": True}

    def test_admin_always_has_every_capability(self):
        user = {"id": 2, "username": "boss", "isAdmin": True, "permissions": {"vip": False}}

        heal_user(user, "admin")

        assert user["permissions"] == {"users": True, "ai": True, "vip": True}

    def test_missing_flags_filled_without_overwriting(self):
        user = {"id": 3, "username": "bob", "permissions": {"ai": True}}

        heal_user(user, "admin")

        assert user["isAdmin"] is False
        assert user["permissions"] == {"ai": True, "users": False, "vip": False}

    def test_idempotent(self):
        user = {"id": 4, "username": "carol"}

        assert heal_user(user, "admin") is True
        snapshot = json.loads(json.dumps(user))
        assert heal_user(user, "admin") is False
        assert user == snapshot

    def test_has_capability(self):
        assert has_capability({"isAdmin": True, "permissions": {}}, "users") is True
        assert has_capability({"isAdmin": False, "permissions": {"ai": True}}, "ai") is True
        assert has_capability({"isAdmin": False, "permissions": {"ai": False}}, "ai") is False
        assert has_capability({}, "vip") is False


# =============================================================================
# 密码
# =============================================================================


class TestPasswords:
    """密码哈希测试"""

    def test_hash_and_verify(self):
        stored = hash_password("s3cret", method=FAST_METHOD)

        assert is_password_hash(stored)
        assert verify_password(stored, "s3cret") is True
        assert verify_password(stored, "wrong") is False

    def test_salted(self):
        assert hash_password("same", method=FAST_METHOD) != hash_password("same", method=FAST_METHOD)

    def test_default_method_is_werkzeug_format(self):
        stored = hash_password("s3cret")

        assert stored.startswith(f"{auth_service.PASSWORD_METHOD}$")
        assert check_password_hash(stored, "s3cret")

    def test_accepts_existing_werkzeug_hashes(self):
        stored = generate_password_hash("s3cret", method="scrypt")

        assert is_password_hash(stored)
        assert verify_password(stored, "s3cret") is True

    def test_legacy_plain_text(self):
        assert verify_password("plain", "plain") is True
        assert verify_password("plain", "Plain") is False

    def test_malformed_hash(self):
        assert verify_password("pbkdf2:sha256$oops", "anything") is False
        assert verify_password("pbkdf2:sha256:many$salt$digest", "anything") is False

    def test_non_string_input(self):
        assert verify_password(None, "x") is False


# =============================================================================
# Token
# =============================================================================


class TestTokenService:
    """TokenService 测试"""

    user = {"id": 7, "username": "dave", "nickname": "Dave"}

    def test_issue_and_verify(self):
        tokens = TokenService("secret", expires_in=60)

        claims = tokens.verify(tokens.issue(self.user))

        assert claims["id"] == 7
        assert claims["username"] == "dave"
        assert claims["nickname"] == "Dave"
        assert claims["exp"] - claims["iat"] == 60

    def test_expired(self):
        tokens = TokenService("secret", expires_in=3600)
        issued = datetime.now(timezone.utc) - timedelta(seconds=3601)

        assert tokens.verify(tokens.issue(self.user, now=issued)) is None

    def test_wrong_secret(self):
        token = TokenService("other").issue(self.user)

        assert TokenService("secret").verify(token) is None

    def test_tampered_payload(self):
        tokens = TokenService("secret")
        header, _, signature = tokens.issue(self.user).split(".")
        forged_claims = {**self.user, "id": 1, "iat": 0, "exp": 9999999999}
        payload = base64.urlsafe_b64encode(json.dumps(forged_claims).encode()).decode().rstrip("=")

        assert tokens.verify(f"{header}.{payload}.{signature}") is None

    @pytest.mark.parametrize("token", [None, "", "garbage", "a.b.c"])
    def test_malformed(self, token):
        assert TokenService("secret").verify(token) is None

    @pytest.mark.parametrize(
        "header,expected",
        [
            ("Bearer abc", "abc"),
            ("Bearer   ", None),
            ("Basic abc", None),
            (None, None),
        ],
    )
    def test_extract_bearer(self, header, expected):
        assert extract_bearer(header) == expected


# =============================================================================
# AuthGate
# =============================================================================


def _document(*users: dict) -> dict:
    return {**empty_document(), "users": list(users), "nextUserId": len(users) + 1}


class TestAuthGate:
    """AuthGate 测试"""

    @pytest.fixture
    def store(self):
        return MemoryDocumentStore(
            initial=_document(
                {"id": 1, "username": "admin", "password": "legacy-pass", "nickname": "管理员"},
                {
                    "id": 2,
                    "username": "erin",
                    "password": hash_password("pw", method=FAST_METHOD),
                    "permissions": {"ai": True},
                },
            ),
            admin_username="admin",
        )

    @pytest.fixture
    def gate(self, store):
        return AuthGate(store, TokenService("secret"))

    def test_authenticate_rejects_invalid_token(self, gate):
        with pytest.raises(AuthenticationError) as exc_info:
            gate.authenticate("nope")

        assert exc_info.value.status_code == 401
        assert exc_info.value.code == 40100

    @pytest.mark.asyncio
    async def test_resolve_capability(self, gate):
        claims = gate.authenticate(gate.tokens.issue({"id": 2, "username": "erin"}))

        user = await gate.resolve_capability(claims, "ai")
        assert user["username"] == "erin"

        with pytest.raises(PermissionDeniedError) as exc_info:
            await gate.resolve_capability(claims, "users")
        assert exc_info.value.status_code == 403
        assert exc_info.value.extra == {"permission": "users"}

    @pytest.mark.asyncio
    async def test_resolve_admin(self, gate):
        admin_claims = gate.authenticate(gate.tokens.issue({"id": 1, "username": "admin"}))
        user_claims = gate.authenticate(gate.tokens.issue({"id": 2, "username": "erin"}))

        assert (await gate.resolve_admin(admin_claims))["id"] == 1
        with pytest.raises(PermissionDeniedError):
            await gate.resolve_admin(user_claims)

    @pytest.mark.asyncio
    async def test_malformed_user_entries_do_not_break_lookup(self):
        store = MemoryDocumentStore(
            initial={**empty_document(), "users": ["junk", {"id": 1, "username": "admin"}]},
            admin_username="admin",
        )
        gate = AuthGate(store, TokenService("secret"))
        claims = gate.authenticate(gate.tokens.issue({"id": 1, "username": "admin"}))

        user = await gate.resolve_admin(claims)

        assert user["username"] == "admin"
        assert (await store.load())["users"] == [user]

    @pytest.mark.asyncio
    async def test_missing_user(self, gate):
        claims = gate.authenticate(gate.tokens.issue({"id": 99, "username": "ghost"}))

        with pytest.raises(AuthenticationError, match="用户不存在"):
            await gate.load_user(claims)

    @pytest.mark.asyncio
    async def test_login_upgrades_legacy_password(self, gate, store):
        token, user = await gate.login("admin", "legacy-pass")

        assert gate.tokens.verify(token)["id"] == 1
        assert user["isAdmin"] is True

        stored = (await store.load())["users"][0]["password"]
        assert is_password_hash(stored)
        assert verify_password(stored, "legacy-pass")

        # 升级后仍可登录
        await gate.login("admin", "legacy-pass")

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, gate):
        with pytest.raises(InvalidCredentialsError) as exc_info:
            await gate.login("erin", "wrong")

        assert exc_info.value.status_code == 200
        assert exc_info.value.code == 40100

    @pytest.mark.asyncio
    async def test_login_unknown_user(self, gate):
        with pytest.raises(InvalidCredentialsError):
            await gate.login("nobody", "pw")
