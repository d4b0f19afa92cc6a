"""
表格解析

把上传的 .xlsx / .xls 字节解析为第一个工作表的行列表（列名 → 单元格）。
.xlsx 由 openpyxl 引擎读取，.xls 由 xlrd 引擎读取。
"""

import io
import math
from datetime import date, datetime
from pathlib import PurePath
from typing import Any

import pandas as pd

from console_api.core.logging import get_logger

logger = get_logger(__name__)

ALLOWED_EXTENSIONS: dict[str, str] = {
    ".xlsx": "openpyxl",
    ".xls": "xlrd",
}


class SpreadsheetError(Exception):
    """文件无法解析"""


def file_extension(filename: str | None) -> str:
    return PurePath(filename or "").suffix.lower()


def _cell(value: Any) -> Any:
    """单元格转为可 JSON 序列化的值，空值统一为空字符串"""
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    if value is pd.NaT:
        return ""
    if isinstance(value, (pd.Timestamp, datetime, date)):
        return value.isoformat()
    if hasattr(value, "item"):  # numpy 标量
        return value.item()
    return value


def read_rows(content: bytes, filename: str) -> tuple[str, list[dict[str, Any]]]:
    """
    解析工作簿

    Args:
        content: 文件字节
        filename: 原始文件名（用于选择解析引擎）

    Returns:
        (工作表名, 行列表)

    Raises:
        SpreadsheetError: 扩展名不支持或文件损坏
    """
    engine = ALLOWED_EXTENSIONS.get(file_extension(filename))
    if engine is None:
        raise SpreadsheetError(f"不支持的文件类型: {filename}")

    try:
        with pd.ExcelFile(io.BytesIO(content), engine=engine) as workbook:
            if not workbook.sheet_names:
                raise SpreadsheetError("工作簿中没有工作表")
            sheet_name = str(workbook.sheet_names[0])
            frame = workbook.parse(sheet_name)
    except SpreadsheetError:
        raise
    except Exception as e:
        logger.warning(f"Failed to parse workbook {filename}: {e}")
        raise SpreadsheetError(str(e)) from e

    frame.columns = [str(c).strip() for c in frame.columns]
    rows = [
        {column: _cell(value) for column, value in record.items()}
        for record in frame.astype(object).to_dict(orient="records")
    ]
    logger.info(f"Workbook parsed: {filename} sheet={sheet_name} rows={len(rows)}")
    return sheet_name, rows
