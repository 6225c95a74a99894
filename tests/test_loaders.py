"""Tests for performance/loaders.py — CSV → in-memory sources."""
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pandas as pd
import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from performance.core.errors import InvalidInputError
from performance.core.schema import (
    CashFlowKind,
    ContributionLevel,
    DateRange,
    EntityKind,
    EntityRef,
    TransactionType,
)
from performance.loaders import (
    load_asset_classes,
    load_flows,
    load_portfolios,
    load_price_returns,
    load_transactions,
    load_valuations,
)

ACCT = EntityRef(EntityKind.ACCOUNT, "A1")


def _write(path: Path, rows):
    pd.DataFrame(rows).to_csv(path, index=False)
    return path


class TestLoadValuations:
    def test_points_and_components(self, tmp_path):
        path = _write(tmp_path / "valuations.csv", [
            {"entity_kind": "Account", "entity_id": "A1", "date": "2025-01-01", "currency": "cad",
             "total_value": "1000", "cash_value": "100", "level": "", "key": ""},
            {"entity_kind": "Account", "entity_id": "A1", "date": "2025-01-01", "currency": "CAD",
             "total_value": "900", "cash_value": "0", "level": "Security", "key": "AAA"},
        ])
        source = load_valuations(path)
        point = source.get_valuation(ACCT, date(2025, 1, 1), "CAD")
        assert point.total_value.amount == Decimal("1000")
        assert point.securities_value.amount == Decimal("900")
        components = source.get_components(ACCT, date(2025, 1, 1), "CAD", ContributionLevel.SECURITY)
        assert list(components) == ["AAA"]

    def test_broken_invariant_raises(self, tmp_path):
        path = _write(tmp_path / "valuations.csv", [
            {"entity_kind": "Account", "entity_id": "A1", "date": "2025-01-01", "currency": "CAD",
             "total_value": "1000", "cash_value": "100", "securities_value": "800"},
        ])
        with pytest.raises(InvalidInputError):
            load_valuations(path)

    def test_nan_cell_raises(self, tmp_path):
        path = _write(tmp_path / "valuations.csv", [
            {"entity_kind": "Account", "entity_id": "A1", "date": "2025-01-01", "currency": "CAD",
             "total_value": "NaN", "cash_value": "0"},
        ])
        with pytest.raises(InvalidInputError, match="finite"):
            load_valuations(path)

    def test_missing_column_raises(self, tmp_path):
        path = _write(tmp_path / "valuations.csv", [{"entity_kind": "Account", "date": "2025-01-01"}])
        with pytest.raises(InvalidInputError, match="missing column"):
            load_valuations(path)

    def test_missing_file_is_empty(self, tmp_path):
        assert load_valuations(tmp_path / "nope.csv").entities() == []


class TestLoadLedger:
    def test_flows_with_portfolio_rollup(self, tmp_path):
        _write(tmp_path / "portfolios.csv", [{"id": "P1", "owner": "me", "account_ids": "A1;A2"}])
        _write(tmp_path / "flows.csv", [
            {"entity_kind": "Account", "entity_id": "A1", "date": "2025-01-02", "kind": "Deposit",
             "amount": "500", "currency": "CAD", "symbol": "", "note": ""},
            {"entity_kind": "Account", "entity_id": "A2", "date": "2025-01-03", "kind": "Buy",
             "amount": "200", "currency": "CAD", "symbol": "AAA", "note": ""},
        ])
        portfolios = load_portfolios(tmp_path / "portfolios.csv")
        assert portfolios[0].account_ids == ("A1", "A2")

        source = load_flows(tmp_path / "flows.csv", portfolios=portfolios)
        flows = source.get_external_flows(EntityRef(EntityKind.PORTFOLIO, "P1"), DateRange("2025-01-01", "2025-01-31"))
        assert [f.kind for f in flows] == [CashFlowKind.DEPOSIT]

    def test_transactions(self, tmp_path):
        path = _write(tmp_path / "transactions.csv", [
            {"account_id": "A1", "date": "2025-01-02", "kind": "Buy", "symbol": "AAA", "quantity": "10",
             "amount": "1000", "currency": "CAD", "costs": "4.95", "costs_currency": ""},
            {"account_id": "A1", "date": "2025-01-03", "kind": "Dividend", "symbol": "AAA", "quantity": "0",
             "amount": "12", "currency": "USD", "costs": "", "costs_currency": ""},
        ])
        txs = load_transactions(path)
        assert txs[0].kind == TransactionType.BUY
        assert txs[0].costs.amount == Decimal("4.95")
        assert txs[0].costs.currency == "CAD"
        assert txs[1].costs is None

    def test_asset_classes(self, tmp_path):
        path = _write(tmp_path / "asset_classes.csv", [
            {"symbol": "XIC", "asset_class": "Equity"},
            {"symbol": " XBB ", "asset_class": "FixedIncome"},
        ])
        assert load_asset_classes(path) == {"XIC": "Equity", "XBB": "FixedIncome"}

    def test_missing_asset_class_file_is_empty(self, tmp_path):
        assert load_asset_classes(tmp_path / "asset_classes.csv") == {}


class TestLoadPrices:
    def test_price_returns(self, tmp_path):
        _write(tmp_path / "XIC.csv", [
            {"date": "2025-01-01", "close": 100.0},
            {"date": "2025-01-02", "close": 102.0},
        ])
        source = load_price_returns(["XIC", "MISSING"], price_dir=tmp_path)
        assert float(source.get_daily_return("XIC", date(2025, 1, 2))) == pytest.approx(0.02)
        assert source.get_daily_return("MISSING", date(2025, 1, 2)) is None
