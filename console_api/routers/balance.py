"""
余额表路由模块

上传 .xlsx / .xls → 解析第一个工作表 → 聚合为余额表（或原样表）→ 保存记录。
记录只对上传者本人和管理员可见。
"""

import asyncio

from fastapi import APIRouter, File, Query, UploadFile

from console_api.container import AppContextDep, StoreDep
from console_api.core.exceptions import (
    BadRequestError,
    ItemNotFoundError,
    PermissionDeniedError,
    ok,
)
from console_api.core.logging import LogContext, get_logger
from console_api.dependencies import CurrentUserDep, parse_id
from console_api.services.balance import aggregate_rows
from console_api.services.document_store import allocate_id
from console_api.services.spreadsheet import (
    ALLOWED_EXTENSIONS,
    SpreadsheetError,
    file_extension,
    read_rows,
)
from console_api.utils.datetime import now_ms

logger = get_logger(__name__)


def _summary(record: dict) -> dict:
    """列表视图：不带完整表格数据"""
    return {k: v for k, v in record.items() if k != "data"}


def _visible(record: dict, user: dict) -> bool:
    return user.get("isAdmin") is True or record.get("userId") == user["id"]


def _find_index(document: dict, balance_id: int) -> int:
    for index, record in enumerate(document["balanceUploads"]):
        if record.get("id") == balance_id:
            return index
    raise ItemNotFoundError("记录不存在", extra={"id": balance_id})


def _check_owner(record: dict, user: dict) -> None:
    if not _visible(record, user):
        raise PermissionDeniedError("无权访问该记录", extra={"id": record.get("id")})


def create_router() -> APIRouter:
    """
    创建余额表路由器（工厂函数）

    Returns:
        配置完成的 APIRouter 实例
    """
    router = APIRouter()

    @router.post(
        "/balance/upload",
        summary="上传余额表",
        description="multipart/form-data，字段名 file，仅支持 .xlsx / .xls",
    )
    async def upload_balance(
        user: CurrentUserDep,
        ctx: AppContextDep,
        store: StoreDep,
        file: UploadFile | None = File(default=None),
    ):
        if file is None or not file.filename:
            raise BadRequestError("请上传文件")
        if file_extension(file.filename) not in ALLOWED_EXTENSIONS:
            raise BadRequestError(
                "仅支持 .xlsx / .xls 文件", extra={"fileName": file.filename}
            )

        limit = ctx.config.max_upload_bytes
        content = await file.read(limit + 1)
        if len(content) > limit:
            raise BadRequestError(
                f"文件大小不能超过 {limit // (1024 * 1024)}MB", extra={"limit": limit}
            )
        if not content:
            raise BadRequestError("文件为空")

        with LogContext.operation("balance_upload", file_name=file.filename):
            try:
                sheet_name, rows = await asyncio.to_thread(read_rows, content, file.filename)
            except SpreadsheetError as e:
                raise BadRequestError("文件解析失败", extra={"detail": str(e)}) from e
            if not rows:
                raise BadRequestError("表格中没有数据")
            table = aggregate_rows(rows)

        async with store.transaction() as document:
            record = {
                "id": allocate_id(document, "nextBalanceId"),
                "userId": user["id"],
                "fileName": file.filename,
                "sheetName": sheet_name,
                "createdAt": now_ms(),
                "mode": table.mode,
                "rowCount": table.row_count,
                "summary": table.summary,
                "data": table.to_dict(),
            }
            document["balanceUploads"].append(record)

        logger.info(
            f"Balance upload {record['id']} saved: mode={table.mode}, rows={table.row_count}"
        )
        return ok(record)

    @router.get("/balance/list", summary="余额表记录列表")
    async def list_balances(
        user: CurrentUserDep,
        store: StoreDep,
        page: int = Query(default=1, ge=1),
        page_size: int = Query(default=10, ge=1, le=100, alias="pageSize"),
    ):
        document = await store.load()
        records = [r for r in document["balanceUploads"] if _visible(r, user)]
        records.sort(key=lambda r: r.get("id") or 0, reverse=True)

        start = (page - 1) * page_size
        return ok({
            "list": [_summary(r) for r in records[start:start + page_size]],
            "total": len(records),
            "page": page,
            "pageSize": page_size,
        })

    @router.get("/balance/{balance_id}", summary="余额表详情")
    async def get_balance(balance_id: str, user: CurrentUserDep, store: StoreDep):
        target = parse_id(balance_id)
        document = await store.load()
        record = document["balanceUploads"][_find_index(document, target)]
        _check_owner(record, user)
        return ok(record)

    @router.delete("/balance/{balance_id}", summary="删除余额表记录")
    async def delete_balance(balance_id: str, user: CurrentUserDep, store: StoreDep):
        target = parse_id(balance_id)
        async with store.transaction() as document:
            index = _find_index(document, target)
            _check_owner(document["balanceUploads"][index], user)
            removed = document["balanceUploads"].pop(index)

        logger.info(f"Balance upload {target} deleted by {user['id']}")
        return ok(_summary(removed))

    return router
