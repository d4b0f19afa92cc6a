"""
文档存储

整个应用的数据保存在一个共享 JSON 文档中（users / items / chatHistory /
chatUsage / aiAccessRequests / balanceUploads + 自增计数器）。

设计原则：
- 每次修改整体重写文档，无增量写入
- load() 自动补齐缺失 / 类型错误的集合与计数器，并执行权限自愈
- transaction() 以单写者锁包裹 读 → 改 → 写，进程内不会丢失更新
- JSON 文件模式：生产使用，临时文件 + os.replace 原子替换
- Memory 模式：测试 / 临时运行
"""

import asyncio
import copy
import json
import os
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator

from console_api.core.logging import get_logger
from console_api.services.auth import DEFAULT_ADMIN_USERNAME, hash_password, heal_user
from console_api.utils.datetime import now_ms

logger = get_logger(__name__)


# =============================================================================
# 文档结构
# =============================================================================

# 集合名 → (默认值工厂, 对应的 id 计数器)
COLLECTIONS: dict[str, tuple[type, str | None]] = {
    "items": (list, "nextId"),
    "users": (list, "nextUserId"),
    "aiAccessRequests": (list, "nextRequestId"),
    "balanceUploads": (list, "nextBalanceId"),
    "chatHistory": (dict, None),
    "chatUsage": (dict, None),
}

COUNTERS: tuple[str, ...] = ("nextId", "nextUserId", "nextRequestId", "nextBalanceId")


def empty_document() -> dict[str, Any]:
    """空文档：所有集合为空，计数器从 1 开始"""
    document: dict[str, Any] = {counter: 1 for counter in COUNTERS}
    for name, (factory, _) in COLLECTIONS.items():
        document[name] = factory()
    return document


def normalize_document(raw: Any) -> tuple[dict[str, Any], bool]:
    """
    结构修正

    - 非 dict → 空文档
    - 缺失或类型错误的集合 → 默认值；列表集合中非 dict 的条目被丢弃
    - 计数器非整数 → 1；并保证不小于 max(id) + 1，删除后的 id 永不复用

    Returns:
        (文档, 是否有修改)
    """
    if not isinstance(raw, dict):
        return empty_document(), True

    document = raw
    changed = False

    for name, (factory, _) in COLLECTIONS.items():
        if not isinstance(document.get(name), factory):
            document[name] = factory()
            changed = True
        elif factory is list:
            records = [entry for entry in document[name] if isinstance(entry, dict)]
            if len(records) != len(document[name]):
                logger.warning(
                    f"Dropped {len(document[name]) - len(records)} malformed entries from {name}"
                )
                document[name] = records
                changed = True

    for counter in COUNTERS:
        value = document.get(counter)
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            document[counter] = 1
            changed = True

    for name, (_, counter) in COLLECTIONS.items():
        if counter is None:
            continue
        ids = [
            entry["id"] for entry in document[name]
            if isinstance(entry, dict) and isinstance(entry.get("id"), int)
        ]
        if ids and document[counter] <= max(ids):
            document[counter] = max(ids) + 1
            changed = True

    return document, changed


def allocate_id(document: dict[str, Any], counter: str) -> int:
    """分配下一个 id 并推进计数器"""
    next_id = document[counter]
    document[counter] = next_id + 1
    return next_id


# =============================================================================
# 存储接口
# =============================================================================


class DocumentStore(ABC):
    """
    文档存储抽象基类

    子类只需实现原始读写；结构修正、权限自愈、管理员初始化与加锁在基类完成。

    Usage:
        ```python
        store = JsonFileDocumentStore("data/db.json")

        document = await store.load()            # 只读

        async with store.transaction() as doc:   # 读 → 改 → 写
            doc["items"].append(item)
        ```
    """

    def __init__(
        self,
        admin_username: str = DEFAULT_ADMIN_USERNAME,
        admin_password: str | None = None,
    ):
        self.admin_username = admin_username
        self._admin_password = admin_password
        self._lock = asyncio.Lock()

    @abstractmethod
    async def _read(self) -> Any | None:
        """读取原始文档；不存在或无法解析时返回 None"""
        ...

    @abstractmethod
    async def _write(self, document: dict[str, Any]) -> None:
        """整体写入文档"""
        ...

    @property
    @abstractmethod
    def store_type(self) -> str:
        ...

    async def load(self) -> dict[str, Any]:
        async with self._lock:
            return await self._load_locked()

    async def save(self, document: dict[str, Any]) -> None:
        async with self._lock:
            await self._write(document)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[dict[str, Any]]:
        """
        单写者事务

        正常退出时整体保存；块内抛出异常则丢弃本次修改。
        """
        async with self._lock:
            document = await self._load_locked()
            yield document
            await self._write(document)

    async def _load_locked(self) -> dict[str, Any]:
        raw = await self._read()
        document, changed = normalize_document(raw)
        if raw is None:
            logger.info(f"Initializing empty document ({self.store_type})")
            changed = True

        if not document["users"] and self._admin_password:
            self._bootstrap_admin(document)
            changed = True

        for user in document["users"]:
            if isinstance(user, dict) and heal_user(user, self.admin_username):
                logger.info(f"Permissions healed for user {user.get('id')}")
                changed = True

        if changed:
            await self._write(document)
        return document

    def _bootstrap_admin(self, document: dict[str, Any]) -> None:
        """文档中没有任何用户时创建默认管理员"""
        timestamp = now_ms()
        admin = {
            "id": allocate_id(document, "nextUserId"),
            "username": self.admin_username,
            "password": hash_password(self._admin_password),
            "nickname": "管理员",
            "account": self.admin_username,
            "phone": "",
            "email": "",
            "isAdmin": True,
            "permissions": {"users": True, "ai": True, "vip": True},
            "createdAt": timestamp,
            "updatedAt": timestamp,
        }
        document["users"].append(admin)
        logger.info(f"Bootstrap administrator created: {self.admin_username}")


# =============================================================================
# 内存存储（测试 / 临时运行）
# =============================================================================


class MemoryDocumentStore(DocumentStore):
    """
    内存文档存储

    读写都做深拷贝，行为与文件存储一致：未保存的修改不可见。
    """

    def __init__(self, initial: Any | None = None, **kwargs: Any):
        super().__init__(**kwargs)
        self._data: Any | None = copy.deepcopy(initial)

    async def _read(self) -> Any | None:
        return copy.deepcopy(self._data)

    async def _write(self, document: dict[str, Any]) -> None:
        self._data = copy.deepcopy(document)

    @property
    def store_type(self) -> str:
        return "memory"


# =============================================================================
# JSON 文件存储（生产）
# =============================================================================


class JsonFileDocumentStore(DocumentStore):
    """
    JSON 文件文档存储

    特点：
    - 阻塞的文件 IO 放到线程中执行，不阻塞事件循环
    - 先写临时文件再 os.replace，崩溃时不会留下半截文件
    - 文件损坏时保留一份 .corrupt 备份后重新初始化
    """

    def __init__(self, path: str | Path, **kwargs: Any):
        super().__init__(**kwargs)
        self.path = Path(path)

    async def _read(self) -> Any | None:
        return await asyncio.to_thread(self._read_sync)

    async def _write(self, document: dict[str, Any]) -> None:
        text = json.dumps(document, ensure_ascii=False, indent=2)
        await asyncio.to_thread(self._write_sync, text)

    def _read_sync(self) -> Any | None:
        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            backup = self.path.with_name(f"{self.path.name}.corrupt-{now_ms()}")
            logger.error(f"Document {self.path} unreadable ({e}), backup saved to {backup}")
            self.path.replace(backup)
            return None
        if not isinstance(raw, dict):
            logger.error(f"Document {self.path} is not an object, reinitializing")
            return None
        return raw

    def _write_sync(self, text: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(text, encoding="utf-8")
        os.replace(tmp_path, self.path)

    @property
    def store_type(self) -> str:
        return "file"


# =============================================================================
# 工厂函数
# =============================================================================


def create_document_store(
    backend: str = "file",
    path: str | Path = "data/db.json",
    **kwargs: Any,
) -> DocumentStore:
    """
    创建文档存储

    Args:
        backend: "file" 或 "memory"
        path: JSON 文件路径（file 模式）
    """
    if backend == "memory":
        logger.info("DocumentStore: memory")
        return MemoryDocumentStore(**kwargs)
    logger.info(f"DocumentStore: file ({path})")
    return JsonFileDocumentStore(path, **kwargs)
