"""
条目 CRUD 路由模块

所有接口只需有效 token
"""

from fastapi import APIRouter

from console_api.container import StoreDep
from console_api.core.exceptions import BadRequestError, ItemNotFoundError, ok
from console_api.core.logging import get_logger
from console_api.dependencies import ClaimsDep, parse_id
from console_api.models import ItemPayload
from console_api.services.document_store import allocate_id
from console_api.utils.datetime import now_ms

logger = get_logger(__name__)


def _required_name(payload: ItemPayload | None) -> str:
    name = (payload.name if payload else None) or ""
    name = name.strip()
    if not name:
        raise BadRequestError("name 必填")
    return name


def _find_index(document: dict, item_id: int) -> int:
    for index, item in enumerate(document["items"]):
        if item.get("id") == item_id:
            return index
    raise ItemNotFoundError(extra={"id": item_id})


def create_router() -> APIRouter:
    """
    创建条目路由器（工厂函数）

    Returns:
        配置完成的 APIRouter 实例
    """
    router = APIRouter()

    @router.get("/items", summary="条目列表")
    async def list_items(claims: ClaimsDep, store: StoreDep):
        document = await store.load()
        return ok(document["items"])

    @router.get("/items/{item_id}", summary="条目详情")
    async def get_item(item_id: str, claims: ClaimsDep, store: StoreDep):
        target = parse_id(item_id)
        document = await store.load()
        return ok(document["items"][_find_index(document, target)])

    @router.post("/items", summary="创建条目")
    async def create_item(
        claims: ClaimsDep,
        store: StoreDep,
        payload: ItemPayload | None = None,
    ):
        name = _required_name(payload)
        async with store.transaction() as document:
            timestamp = now_ms()
            item = {
                "id": allocate_id(document, "nextId"),
                "name": name,
                "createdAt": timestamp,
                "updatedAt": timestamp,
            }
            document["items"].append(item)

        logger.info(f"Item {item['id']} created")
        return ok(item)

    @router.put("/items/{item_id}", summary="更新条目")
    async def update_item(
        item_id: str,
        claims: ClaimsDep,
        store: StoreDep,
        payload: ItemPayload | None = None,
    ):
        target = parse_id(item_id)
        name = _required_name(payload)
        async with store.transaction() as document:
            index = _find_index(document, target)
            item = {**document["items"][index], "name": name, "updatedAt": now_ms()}
            document["items"][index] = item
        return ok(item)

    @router.delete("/items/{item_id}", summary="删除条目")
    async def delete_item(item_id: str, claims: ClaimsDep, store: StoreDep):
        target = parse_id(item_id)
        async with store.transaction() as document:
            removed = document["items"].pop(_find_index(document, target))

        logger.info(f"Item {target} deleted")
        return ok(removed)

    return router
