"""Tests for performance/core/schema.py — Money, ranges, valuation invariant."""
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from performance.core.errors import CurrencyMismatchError, InvalidInputError
from performance.core.schema import (
    BenchmarkComponent,
    BenchmarkDefinition,
    DailyReturn,
    DateRange,
    EntityKind,
    EntityRef,
    Money,
    Portfolio,
    RiskCard,
    TransactionCostSummary,
    TransactionType,
    ValuationPoint,
    to_decimal,
)

ACCT = EntityRef(EntityKind.ACCOUNT, "A1")


class TestToDecimal:
    def test_float_goes_through_str(self):
        assert to_decimal(0.1) == Decimal("0.1")

    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-inf", float("nan"), Decimal("sNaN")])
    def test_non_finite_raises(self, value):
        with pytest.raises(InvalidInputError, match="Not a finite amount"):
            to_decimal(value)

    def test_garbage_raises(self):
        with pytest.raises(InvalidInputError, match="Not a decimal amount"):
            to_decimal("abc")


class TestMoney:
    def test_currency_is_upper_cased(self):
        assert Money(Decimal("1"), "cad").currency == "CAD"

    @pytest.mark.parametrize("code", ["CA", "CADD", "C1D", ""])
    def test_invalid_currency_code_raises(self, code):
        with pytest.raises(InvalidInputError, match="Invalid currency code"):
            Money(Decimal("1"), code)

    def test_add_same_currency(self):
        assert Money("10.50", "CAD") + Money("0.50", "CAD") == Money("11.00", "CAD")

    def test_add_across_currencies_raises(self):
        with pytest.raises(CurrencyMismatchError, match="CAD vs USD"):
            Money("1", "CAD") + Money("1", "USD")

    def test_compare_across_currencies_raises(self):
        with pytest.raises(CurrencyMismatchError):
            Money("1", "CAD") < Money("2", "USD")

    def test_float_goes_through_str(self):
        assert Money(0.1, "CAD").amount == Decimal("0.1")

    def test_convert(self):
        converted = Money("100", "USD").convert("1.35", "CAD")
        assert converted == Money("135.00", "CAD")

    def test_total_and_zero(self):
        values = [Money("1", "CAD"), Money("2", "CAD")]
        assert Money.total(values, "CAD") == Money("3", "CAD")
        assert Money.zero("CAD").is_zero

    def test_bad_amount_raises(self):
        with pytest.raises(InvalidInputError, match="Not a decimal amount"):
            Money("abc", "CAD")

    def test_dict_roundtrip(self):
        m = Money("12.34", "USD")
        assert Money.from_dict(m.to_dict()) == m


class TestDateRange:
    def test_end_before_start_raises(self):
        with pytest.raises(InvalidInputError, match="before start"):
            DateRange(date(2025, 1, 5), date(2025, 1, 1))

    def test_accepts_iso_strings(self):
        r = DateRange("2025-01-01", "2025-01-03")
        assert list(r.days()) == [date(2025, 1, 1), date(2025, 1, 2), date(2025, 1, 3)]
        assert r.length == 2
        assert date(2025, 1, 2) in r
        assert date(2025, 1, 4) not in r


class TestEntityRef:
    def test_key_and_slice(self):
        p = EntityRef(EntityKind.PORTFOLIO, "P1")
        assert p.key == "Portfolio:P1"
        slice_ = p.slice("Equity")
        assert slice_.kind == EntityKind.ASSET_CLASS
        assert slice_.key == "AssetClass:Portfolio:P1:Equity"

    def test_portfolio_refers_to_accounts_by_id(self):
        p = Portfolio("P1", "owner", ("A1", "A2"))
        assert [r.key for r in p.account_refs()] == ["Account:A1", "Account:A2"]


class TestValuationPoint:
    def test_validate_passes_within_tolerance(self):
        point = ValuationPoint(
            date=date(2025, 1, 1),
            total_value=Money("100.00", "CAD"),
            securities_value=Money("60.00", "CAD"),
            cash_value=Money("39.995", "CAD"),
            income_for_day=Money("0", "CAD"),
            entity=ACCT,
            reporting_currency="CAD",
        )
        assert point.validate(0.01) is point

    def test_validate_rejects_broken_invariant(self):
        point = ValuationPoint(
            date=date(2025, 1, 1),
            total_value=Money("100", "CAD"),
            securities_value=Money("60", "CAD"),
            cash_value=Money("30", "CAD"),
            income_for_day=Money("0", "CAD"),
            entity=ACCT,
            reporting_currency="CAD",
        )
        with pytest.raises(InvalidInputError, match="securities"):
            point.validate()

    def test_validate_rejects_wrong_currency(self):
        point = ValuationPoint.of_total(ACCT, "2025-01-01", 100, "USD")
        bad = ValuationPoint(
            point.date, point.total_value, point.securities_value, point.cash_value,
            point.income_for_day, ACCT, "CAD",
        )
        with pytest.raises(CurrencyMismatchError):
            bad.validate()

    def test_of_total(self):
        point = ValuationPoint.of_total(ACCT, "2025-01-01", 1000, "CAD", cash=250)
        assert point.securities_value == Money("750", "CAD")
        assert point.validate() is point


class TestRecords:
    def test_daily_return_dict_roundtrip(self):
        r = DailyReturn(date(2025, 1, 2), ACCT, "CAD", Decimal("0.0042"))
        assert DailyReturn.from_dict(r.to_dict()) == r

    def test_risk_card_to_dict_dates(self):
        card = RiskCard(0.1, -0.05, date(2025, 1, 1), date(2025, 1, 3), 1.2, 0.5)
        data = card.to_dict()
        assert data["peak_date"] == "2025-01-01"
        assert data["correlation_to_benchmark"] is None

    def test_benchmark_cash_weight(self):
        bm = BenchmarkDefinition("60/30", "CAD", (
            BenchmarkComponent("XIC", "0.6"), BenchmarkComponent("XBB", "0.3"),
        ))
        assert bm.total_weight == Decimal("0.9")
        assert bm.cash_weight == Decimal("0.1")

    def test_cost_rate_zero_gross(self):
        s = TransactionCostSummary("CAD", Decimal("0"))
        assert s.rate(TransactionType.BUY) == Decimal("0")
        assert s.buy_cost_rate == Decimal("0")

    def test_cost_rate(self):
        s = TransactionCostSummary(
            "CAD", Decimal("10"),
            costs_by_type={TransactionType.BUY: Decimal("10")},
            gross_by_type={TransactionType.BUY: Decimal("10000")},
        )
        assert s.buy_cost_rate == Decimal("0.001")
