"""
AI 权限申请路由模块

- 任意登录用户可以申请 `ai` 能力（已拥有或已有待审核申请时拒绝）
- 管理员审核：通过时为申请人开启 `ai`，驳回不改动权限
- 已处理的申请不能再次审核
"""

from fastapi import APIRouter

from console_api.container import StoreDep
from console_api.core.exceptions import BadRequestError, ItemNotFoundError, ok
from console_api.core.logging import get_logger
from console_api.dependencies import AdminDep, CurrentUserDep, parse_id
from console_api.models import AccessRequestCreate, AccessRequestStatus
from console_api.services.auth import has_capability
from console_api.services.document_store import allocate_id
from console_api.services.users import find_user
from console_api.utils.datetime import now_ms

logger = get_logger(__name__)


def _newest_first(requests: list[dict]) -> list[dict]:
    return sorted(requests, key=lambda r: r.get("id") or 0, reverse=True)


def _pending_request(document: dict, request_id: int) -> dict:
    request = next(
        (r for r in document["aiAccessRequests"] if r.get("id") == request_id), None
    )
    if request is None:
        raise ItemNotFoundError("申请不存在", extra={"id": request_id})
    if request.get("status") != AccessRequestStatus.PENDING.value:
        raise BadRequestError(
            "该申请已处理", extra={"id": request_id, "status": request.get("status")}
        )
    return request


def create_router() -> APIRouter:
    """
    创建 AI 权限申请路由器（工厂函数）

    Returns:
        配置完成的 APIRouter 实例
    """
    router = APIRouter()

    @router.post("/ai/requests", summary="申请 AI 权限")
    async def create_request(
        user: CurrentUserDep,
        store: StoreDep,
        payload: AccessRequestCreate | None = None,
    ):
        if has_capability(user, "ai"):
            raise BadRequestError("已拥有 AI 权限")

        reason = ((payload.reason if payload else None) or "").strip()
        async with store.transaction() as document:
            pending = next(
                (
                    r for r in document["aiAccessRequests"]
                    if r.get("userId") == user["id"]
                    and r.get("status") == AccessRequestStatus.PENDING.value
                ),
                None,
            )
            if pending is not None:
                raise BadRequestError("已有待审核的申请", extra={"id": pending["id"]})

            timestamp = now_ms()
            request = {
                "id": allocate_id(document, "nextRequestId"),
                "userId": user["id"],
                "username": user.get("username"),
                "nickname": user.get("nickname", ""),
                "reason": reason,
                "status": AccessRequestStatus.PENDING.value,
                "createdAt": timestamp,
                "updatedAt": timestamp,
            }
            document["aiAccessRequests"].append(request)

        logger.info(f"AI access request {request['id']} filed by user {user['id']}")
        return ok(request)

    @router.get("/ai/requests/mine", summary="我的申请")
    async def list_my_requests(user: CurrentUserDep, store: StoreDep):
        document = await store.load()
        mine = [r for r in document["aiAccessRequests"] if r.get("userId") == user["id"]]
        return ok(_newest_first(mine))

    @router.get("/ai/requests", summary="申请列表（管理员）")
    async def list_requests(
        admin: AdminDep,
        store: StoreDep,
        status: str | None = None,
    ):
        if status and status not in {s.value for s in AccessRequestStatus}:
            raise BadRequestError("status 参数非法", extra={"status": status})

        document = await store.load()
        requests = [
            r for r in document["aiAccessRequests"]
            if not status or r.get("status") == status
        ]
        return ok(_newest_first(requests))

    @router.put("/ai/requests/{request_id}/approve", summary="通过申请")
    async def approve_request(request_id: str, admin: AdminDep, store: StoreDep):
        target = parse_id(request_id)
        async with store.transaction() as document:
            request = _pending_request(document, target)
            timestamp = now_ms()
            request.update({
                "status": AccessRequestStatus.APPROVED.value,
                "reviewedBy": admin["id"],
                "reviewedAt": timestamp,
                "updatedAt": timestamp,
            })

            applicant = find_user(document, request["userId"])
            if applicant is None:
                logger.warning(f"Applicant {request['userId']} of request {target} no longer exists")
            else:
                applicant["permissions"] = {**applicant.get("permissions", {}), "ai": True}
                applicant["updatedAt"] = timestamp

        logger.info(f"AI access request {target} approved by {admin['id']}")
        return ok(request)

    @router.put("/ai/requests/{request_id}/reject", summary="驳回申请")
    async def reject_request(request_id: str, admin: AdminDep, store: StoreDep):
        target = parse_id(request_id)
        async with store.transaction() as document:
            request = _pending_request(document, target)
            timestamp = now_ms()
            request.update({
                "status": AccessRequestStatus.REJECTED.value,
                "reviewedBy": admin["id"],
                "reviewedAt": timestamp,
                "updatedAt": timestamp,
            })

        logger.info(f"AI access request {target} rejected by {admin['id']}")
        return ok(request)

    return router
