"""
余额表聚合

输入：上传表格的行（列名 → 单元格），列名大小写 / 空格不受控。
输出：
- balance 模式：按科目汇总借方、贷方、余额（借 - 贷），附合计
- raw 模式：无法识别为余额表时原样返回所有列

列名识别：去空白 + 小写后，按角色的候选词优先级，取第一个"等于或包含"候选词的列。
金额：去掉千分位（半角 / 全角逗号、空白）后按十进制解析，空值或非数字按 0 计。
"""

import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable

from console_api.core.logging import get_logger

logger = get_logger(__name__)


MODE_BALANCE = "balance"
MODE_RAW = "raw"

TWO_PLACES = Decimal("0.01")

# 角色 → 候选词（已规范化，按优先级）
ACCOUNT_CANDIDATES = ("科目名称", "会计科目", "科目", "账户名称", "账户", "accountname", "account", "subject")
OPENING_DEBIT_CANDIDATES = ("期初借方", "年初借方", "openingdebit")
OPENING_CREDIT_CANDIDATES = ("期初贷方", "年初贷方", "openingcredit")
PERIOD_DEBIT_CANDIDATES = ("本期借方", "本期发生借方", "借方发生额", "perioddebit")
PERIOD_CREDIT_CANDIDATES = ("本期贷方", "本期发生贷方", "贷方发生额", "periodcredit")
DEBIT_CANDIDATES = ("借方金额", "借方", "debit")
CREDIT_CANDIDATES = ("贷方金额", "贷方", "credit")

# 科目编码列不能当作科目名称
ACCOUNT_EXCLUDES = ("编码", "代码", "code")
# 期末余额列不能当作借 / 贷发生额
DIRECT_EXCLUDES = ("期末", "closing")

_SEPARATORS = re.compile(r"[,，\s]")


def normalize_header(header: Any) -> str:
    """去掉所有空白并转小写"""
    return re.sub(r"\s+", "", str(header)).lower()


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def to_decimal(value: Any) -> Decimal:
    """
    单元格转金额

    Example:
        >>> to_decimal("1,234.50")
        Decimal('1234.50')
        >>> to_decimal("abc")
        Decimal('0')
    """
    if value is None or isinstance(value, bool):
        return Decimal(0)
    if isinstance(value, (int, float)):
        if value != value:  # NaN
            return Decimal(0)
        return Decimal(str(value))
    text = _SEPARATORS.sub("", str(value))
    if not text:
        return Decimal(0)
    try:
        number = Decimal(text)
    except InvalidOperation:
        return Decimal(0)
    return number if number.is_finite() else Decimal(0)


def round2(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


# =============================================================================
# 列名识别
# =============================================================================


@dataclass
class ColumnMapping:
    """各角色解析到的原始列名"""
    account: str | None = None
    debit: str | None = None
    credit: str | None = None
    opening_debit: str | None = None
    opening_credit: str | None = None
    period_debit: str | None = None
    period_credit: str | None = None

    @property
    def has_direct_pair(self) -> bool:
        return self.debit is not None and self.credit is not None

    @property
    def has_breakdown(self) -> bool:
        return any(
            (self.opening_debit, self.opening_credit, self.period_debit, self.period_credit)
        )

    @property
    def is_balance_sheet(self) -> bool:
        return self.account is not None and (self.has_direct_pair or self.has_breakdown)

    def to_dict(self) -> dict[str, str]:
        return {k: v for k, v in self.__dict__.items() if v is not None}


def _resolve(
    headers: list[str],
    candidates: Iterable[str],
    excludes: Iterable[str] = (),
    taken: set[str] | None = None,
) -> str | None:
    normalized = [(h, normalize_header(h)) for h in headers]
    excludes = tuple(excludes)
    for candidate in candidates:
        for header, norm in normalized:
            if taken and header in taken:
                continue
            if any(word in norm for word in excludes):
                continue
            if norm == candidate or candidate in norm:
                return header
    return None


def resolve_columns(headers: list[str]) -> ColumnMapping:
    """识别各语义角色对应的列"""
    mapping = ColumnMapping()
    mapping.account = _resolve(headers, ACCOUNT_CANDIDATES, ACCOUNT_EXCLUDES)

    mapping.opening_debit = _resolve(headers, OPENING_DEBIT_CANDIDATES)
    mapping.opening_credit = _resolve(headers, OPENING_CREDIT_CANDIDATES)
    mapping.period_debit = _resolve(headers, PERIOD_DEBIT_CANDIDATES)
    mapping.period_credit = _resolve(headers, PERIOD_CREDIT_CANDIDATES)

    taken = {
        h for h in (
            mapping.account,
            mapping.opening_debit,
            mapping.opening_credit,
            mapping.period_debit,
            mapping.period_credit,
        ) if h is not None
    }
    mapping.debit = _resolve(headers, DEBIT_CANDIDATES, DIRECT_EXCLUDES, taken)
    mapping.credit = _resolve(headers, CREDIT_CANDIDATES, DIRECT_EXCLUDES, taken)
    return mapping


# =============================================================================
# 聚合
# =============================================================================


@dataclass
class BalanceTable:
    """聚合结果"""
    mode: str
    columns: list[str]
    rows: list[dict[str, Any]]
    summary: dict[str, float] | None = None
    resolved: dict[str, str] = field(default_factory=dict)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode,
            "columns": self.columns,
            "rows": self.rows,
            "summary": self.summary,
            "resolved": self.resolved,
        }


def collect_headers(rows: list[dict[str, Any]]) -> list[str]:
    """按首次出现顺序收集所有列名"""
    headers: dict[str, None] = {}
    for row in rows:
        for key in row:
            headers.setdefault(str(key), None)
    return list(headers)


def drop_blank_rows(rows: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    return [row for row in rows if not all(is_blank(v) for v in row.values())]


def _row_amounts(row: dict[str, Any], mapping: ColumnMapping) -> tuple[Decimal, Decimal]:
    if mapping.has_direct_pair:
        return to_decimal(row.get(mapping.debit)), to_decimal(row.get(mapping.credit))

    def cell(header: str | None) -> Decimal:
        return to_decimal(row.get(header)) if header else Decimal(0)

    debit = cell(mapping.opening_debit) + cell(mapping.period_debit)
    credit = cell(mapping.opening_credit) + cell(mapping.period_credit)
    return debit, credit


def aggregate_rows(rows: list[dict[str, Any]]) -> BalanceTable:
    """
    把表格行聚合成余额表

    合计 = 各科目（已四舍五入）金额之和，再四舍五入到两位。
    """
    rows = drop_blank_rows(rows)
    headers = collect_headers(rows)
    mapping = resolve_columns(headers)

    if not mapping.is_balance_sheet:
        logger.info(f"Not a balance sheet, falling back to raw table (headers={headers})")
        return BalanceTable(mode=MODE_RAW, columns=headers, rows=[dict(r) for r in rows])

    totals: dict[str, list[Decimal]] = {}
    for row in rows:
        account_cell = row.get(mapping.account)
        account = "" if account_cell is None else str(account_cell).strip()
        if not account:
            continue
        debit, credit = _row_amounts(row, mapping)
        sums = totals.setdefault(account, [Decimal(0), Decimal(0)])
        sums[0] += debit
        sums[1] += credit

    table_rows = []
    sum_debit = sum_credit = sum_balance = Decimal(0)
    for account, (debit, credit) in totals.items():
        debit_r, credit_r, balance_r = round2(debit), round2(credit), round2(debit - credit)
        sum_debit += debit_r
        sum_credit += credit_r
        sum_balance += balance_r
        table_rows.append({
            "account": account,
            "debit": float(debit_r),
            "credit": float(credit_r),
            "balance": float(balance_r),
        })

    summary = {
        "debit": float(round2(sum_debit)),
        "credit": float(round2(sum_credit)),
        "balance": float(round2(sum_balance)),
    }
    logger.info(f"Balance table aggregated: {len(table_rows)} accounts from {len(rows)} rows")
    return BalanceTable(
        mode=MODE_BALANCE,
        columns=["account", "debit", "credit", "balance"],
        rows=table_rows,
        summary=summary,
        resolved=mapping.to_dict(),
    )
