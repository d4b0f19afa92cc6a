"""
余额表聚合单元测试
"""

from decimal import Decimal

import pytest

from console_api.services.balance import (
    MODE_BALANCE,
    MODE_RAW,
    aggregate_rows,
    normalize_header,
    resolve_columns,
    round2,
    to_decimal,
)


class TestHelpers:
    """列名规范化与金额解析"""

    def test_normalize_header(self):
        assert normalize_header(" Account  Name ") == "accountname"
        assert normalize_header("借 方\t金额") == "借方金额"

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("1,234.50", Decimal("1234.50")),
            ("1，000", Decimal("1000")),
            (" 12 345 ", Decimal("12345")),
            (100, Decimal("100")),
            (0.1, Decimal("0.1")),
            ("", Decimal(0)),
            (None, Decimal(0)),
            ("abc", Decimal(0)),
            ("NaN", Decimal(0)),
            (float("nan"), Decimal(0)),
            (True, Decimal(0)),
        ],
    )
    def test_to_decimal(self, value, expected):
        assert to_decimal(value) == expected

    def test_round_half_up(self):
        assert round2(Decimal("0.125")) == Decimal("0.13")
        assert round2(Decimal("-0.125")) == Decimal("-0.13")
        assert round2(Decimal("2.675")) == Decimal("2.68")


class TestResolveColumns:
    """列名识别"""

    def test_direct_pair(self):
        mapping = resolve_columns(["科目编码", "科目名称", "借方金额", "贷方金额", "期末余额"])

        assert mapping.account == "科目名称"
        assert mapping.debit == "借方金额"
        assert mapping.credit == "贷方金额"
        assert mapping.is_balance_sheet

    def test_code_column_is_never_account(self):
        mapping = resolve_columns(["科目代码", "借方", "贷方"])

        assert mapping.account is None
        assert not mapping.is_balance_sheet

    def test_candidate_priority(self):
        mapping = resolve_columns(["账户", "会计科目", "借方", "贷方"])

        assert mapping.account == "会计科目"

    def test_breakdown_columns_are_not_direct(self):
        mapping = resolve_columns(["科目", "期初借方", "期初贷方", "本期借方", "本期贷方", "期末借方"])

        assert mapping.opening_debit == "期初借方"
        assert mapping.period_credit == "本期贷方"
        assert mapping.debit is None
        assert mapping.credit is None
        assert mapping.has_breakdown

    def test_english_headers(self):
        mapping = resolve_columns(["Account Name", "Debit", "Credit"])

        assert mapping.to_dict() == {"account": "Account Name", "debit": "Debit", "credit": "Credit"}


class TestAggregateRows:
    """聚合"""

    def test_cash_example(self):
        rows = [
            {"科目": "现金", "借方": "100", "贷方": "0"},
            {"科目": "现金", "借方": "50", "贷方": "30"},
        ]

        table = aggregate_rows(rows)

        assert table.mode == MODE_BALANCE
        assert table.rows == [{"account": "现金", "debit": 150.0, "credit": 30.0, "balance": 120.0}]
        assert table.summary == {"debit": 150.0, "credit": 30.0, "balance": 120.0}
        assert table.columns == ["account", "debit", "credit", "balance"]

    def test_accounts_keep_first_appearance_order(self):
        rows = [
            {"科目": "银行存款", "借方": 1, "贷方": 0},
            {"科目": "现金", "借方": 2, "贷方": 0},
            {"科目": "银行存款", "借方": 3, "贷方": 0},
        ]

        table = aggregate_rows(rows)

        assert [r["account"] for r in table.rows] == ["银行存款", "现金"]
        assert table.rows[0]["debit"] == 4.0

    def test_account_names_trimmed_and_case_sensitive(self):
        rows = [
            {"account": " Cash ", "debit": 1, "credit": 0},
            {"account": "Cash", "debit": 1, "credit": 0},
            {"account": "cash", "debit": 1, "credit": 0},
        ]

        table = aggregate_rows(rows)

        assert [(r["account"], r["debit"]) for r in table.rows] == [("Cash", 2.0), ("cash", 1.0)]

    def test_breakdown_sums(self):
        rows = [
            {"科目": "应收账款", "期初借方": "1,000.00", "本期借方": "500", "本期贷方": "200.5"},
        ]

        table = aggregate_rows(rows)

        assert table.rows == [
            {"account": "应收账款", "debit": 1500.0, "credit": 200.5, "balance": 1299.5}
        ]

    def test_summary_sums_rounded_values(self):
        rows = [
            {"科目": "A", "借方": "0.005", "贷方": "0"},
            {"科目": "B", "借方": "0.005", "贷方": "0"},
        ]

        table = aggregate_rows(rows)

        assert [r["debit"] for r in table.rows] == [0.01, 0.01]
        assert table.summary["debit"] == 0.02

    def test_blank_rows_and_accounts_skipped(self):
        rows = [
            {"科目": "", "借方": "", "贷方": " "},
            {"科目": "现金", "借方": "10", "贷方": "abc"},
            {"科目": "  ", "借方": "99", "贷方": "0"},
        ]

        table = aggregate_rows(rows)

        assert table.rows == [{"account": "现金", "debit": 10.0, "credit": 0.0, "balance": 10.0}]

    def test_raw_fallback_preserves_columns_and_order(self):
        rows = [
            {"名称": "螺丝", "数量": 3},
            {"名称": "", "数量": ""},
            {"名称": "螺母", "数量": 5, "备注": "新"},
        ]

        table = aggregate_rows(rows)

        assert table.mode == MODE_RAW
        assert table.columns == ["名称", "数量", "备注"]
        assert table.rows == [rows[0], rows[2]]
        assert table.summary is None
        assert table.to_dict()["summary"] is None

    def test_account_without_amount_columns_is_raw(self):
        table = aggregate_rows([{"科目": "现金", "金额": 5}])

        assert table.mode == MODE_RAW
