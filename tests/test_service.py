"""Tests for performance/service.py — facade operations and batch runs."""
import sys
import threading
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from performance.benchmark.attribution import AttributionEngine
from performance.core.errors import InvalidInputError
from performance.core.schema import (
    BenchmarkComponent,
    BenchmarkDefinition,
    CashFlowEvent,
    CashFlowKind,
    ContributionLevel,
    DateRange,
    EntityKind,
    EntityRef,
    Money,
    Portfolio,
    ReturnMethod,
    Transaction,
    TransactionType,
    ValuationPoint,
)
from performance.core.sources import (
    InMemoryCashFlowSource,
    InMemoryPriceReturnSource,
    InMemoryValuationSource,
)
from performance.results.store import ResultStore
from performance.service import PerformanceService

D0 = date(2025, 1, 1)
A1 = EntityRef(EntityKind.ACCOUNT, "A1")
A2 = EntityRef(EntityKind.ACCOUNT, "A2")
P1 = EntityRef(EntityKind.PORTFOLIO, "P1")
RANGE = DateRange(D0, D0 + timedelta(days=2))


def _day(n: int) -> date:
    return D0 + timedelta(days=n)


def _make_sources():
    """A1: 1000 -> 1010 -> 1221 with a 200 deposit on day 2; A2 flat; P1 = A1 + A2."""
    valuations = InMemoryValuationSource()
    for n, v in {0: 1000, 1: 1010, 2: 1221}.items():
        valuations.add(ValuationPoint.of_total(A1, _day(n), v, "CAD"))
    for n in range(3):
        valuations.add(ValuationPoint.of_total(A2, _day(n), 500, "CAD"))
    for n, v in {0: 1500, 1: 1510, 2: 1721}.items():
        valuations.add(ValuationPoint.of_total(P1, _day(n), v, "CAD"))

    # security components of P1
    for n, (aaa, xbb) in {0: (1000, 500), 1: (1010, 500), 2: (1221, 500)}.items():
        valuations.add_component(P1, ContributionLevel.SECURITY, "AAA", ValuationPoint.of_total(P1, _day(n), aaa, "CAD"))
        valuations.add_component(P1, ContributionLevel.SECURITY, "XBB", ValuationPoint.of_total(P1, _day(n), xbb, "CAD"))

    flows = InMemoryCashFlowSource(portfolios=[Portfolio("P1", account_ids=("A1", "A2"))])
    flows.add(A1, CashFlowEvent(_day(2), Money("200", "CAD"), CashFlowKind.DEPOSIT, symbol="AAA"))
    flows.add(A1, CashFlowEvent(_day(1), Money("999", "CAD"), CashFlowKind.BUY, symbol="AAA"))
    return valuations, flows


@pytest.fixture
def service():
    valuations, flows = _make_sources()
    prices = InMemoryPriceReturnSource()
    prices.set_return("XIC", _day(1), "0.01")
    prices.set_return("XIC", _day(2), "0.01")
    return PerformanceService(
        valuations, flows, prices=prices,
        attribution=AttributionEngine(asset_class_map={"AAA": "Equity", "XBB": "FixedIncome"}),
    )


class TestOperations:
    def test_compute_daily_returns(self, service):
        returns = service.compute_daily_returns(A1, RANGE, "CAD")
        assert returns[0].value == Decimal("0.01")
        assert float(returns[1].value) == pytest.approx(0.010891, abs=1e-6)

    def test_portfolio_uses_account_flows(self, service):
        returns = service.compute_daily_returns(P1, RANGE, "CAD")
        # (1721 - 200 - 1510) / 1510
        assert float(returns[1].value) == pytest.approx(11 / 1510)

    def test_period_performance_methods(self, service):
        twr = service.compute_period_performance(A1, _day(0), _day(2), "CAD", ReturnMethod.TWR)
        md = service.compute_period_performance(A1, _day(0), _day(2), "CAD", ReturnMethod.MODIFIED_DIETZ)
        assert float(twr.value) == pytest.approx(0.0210, abs=1e-4)
        assert md.net_flows == Money("200", "CAD")
        assert md.method == ReturnMethod.MODIFIED_DIETZ

    def test_rolling(self, service):
        returns = service.compute_daily_returns(A1, RANGE, "CAD")
        rolling = service.compute_rolling(returns, _day(2), _day(0))
        assert rolling.r_si == service.calculator.link(returns)

    def test_contribution_by_security(self, service):
        records = service.compute_contribution(P1, _day(0), _day(2), "CAD", ContributionLevel.SECURITY)
        by_key = {r.key: r for r in records}
        assert set(by_key) == {"AAA", "XBB"}
        assert by_key["XBB"].contribution == Decimal("0")
        assert by_key["AAA"].start_weight == Decimal(1000) / Decimal(1500)

    def test_contribution_by_asset_class_falls_back_to_mapping(self, service):
        records = service.compute_contribution(P1, _day(0), _day(2), "CAD", ContributionLevel.ASSET_CLASS)
        assert {r.key for r in records} == {"Equity", "FixedIncome"}
        assert all(r.level == ContributionLevel.ASSET_CLASS for r in records)

    def test_allocation_from_security_components(self, service):
        records = service.compute_allocation(P1, _day(2), "CAD")
        by_class = {r.asset_class: r for r in records}
        assert by_class["Equity"].value == Money("1221", "CAD")
        assert by_class["FixedIncome"].weight == Decimal(500) / Decimal(1721)

    def test_allocation_prefers_asset_class_slices(self, service):
        service.valuations.add_component(
            P1, ContributionLevel.ASSET_CLASS, "Balanced", ValuationPoint.of_total(P1, _day(0), 1500, "CAD"),
        )
        records = service.compute_allocation(P1, _day(0), "CAD")
        assert [(r.asset_class, r.weight) for r in records] == [("Balanced", Decimal("1"))]

    def test_allocation_without_components_is_empty(self, service):
        assert service.compute_allocation(A1, _day(0), "CAD") == []

    def test_benchmark_returns(self, service):
        bm = BenchmarkDefinition("XIC", "CAD", (BenchmarkComponent("XIC", "1"),))
        returns = service.compute_benchmark_returns(bm, RANGE)
        assert [r.value for r in returns] == [Decimal("0.01"), Decimal("0.01")]

    def test_benchmark_without_prices_raises(self):
        valuations, flows = _make_sources()
        bm = BenchmarkDefinition("XIC", "CAD", (BenchmarkComponent("XIC", "1"),))
        with pytest.raises(InvalidInputError, match="price-return source"):
            PerformanceService(valuations, flows).compute_benchmark_returns(bm, RANGE)

    def test_risk_card_with_benchmark(self, service):
        returns = service.compute_daily_returns(A1, RANGE, "CAD")
        bm = BenchmarkDefinition("XIC", "CAD", (BenchmarkComponent("XIC", "1"),))
        card = service.compute_risk_card(returns, service.compute_benchmark_returns(bm, RANGE))
        assert card.hit_rate_daily == 1.0
        # flat benchmark returns -> zero variance
        assert card.correlation_to_benchmark == 0.0

    def test_summarize_costs(self, service):
        tx = Transaction(_day(1), TransactionType.BUY, "AAA", Decimal("1"), Money("1000", "CAD"), Money("1", "CAD"))
        summaries = service.summarize_costs([tx], RANGE)
        assert summaries[0].buy_cost_rate == Decimal("0.001")


class TestBatch:
    def test_run_batch_persists_results(self, tmp_path):
        valuations, flows = _make_sources()
        store = ResultStore(results_dir=tmp_path)
        service = PerformanceService(valuations, flows, store=store)

        results = service.run_batch([A1, A2, P1], RANGE, "CAD", max_workers=2)
        assert {k: r.status for k, r in results.items()} == {A1.key: "ok", A2.key: "ok", P1.key: "ok"}
        assert len(store.load_daily_returns(A1, "CAD")) == 2
        assert store.get("risk", A1, "2025-01-01..2025-01-03", "CAD") is not None

    def test_cancelled_batch_persists_nothing(self, tmp_path):
        valuations, flows = _make_sources()
        store = ResultStore(results_dir=tmp_path)
        service = PerformanceService(valuations, flows, store=store)

        cancel = threading.Event()
        cancel.set()
        results = service.run_batch([A1, A2], RANGE, "CAD", cancel_event=cancel)
        assert all(r.status == "cancelled" for r in results.values())
        assert all(r.daily_returns == [] for r in results.values())
        assert store.all("daily_returns") == {}

    def test_failing_entity_does_not_stop_others(self, tmp_path):
        valuations, flows = _make_sources()
        bad = EntityRef(EntityKind.ACCOUNT, "BAD")
        service = PerformanceService(valuations, flows)

        def _explode(entity, date_range, reporting_currency, cancel_event=None):
            if entity == bad:
                raise RuntimeError("boom")
            return original(entity, date_range, reporting_currency, cancel_event)

        original = service.compute_daily_returns
        service.compute_daily_returns = _explode

        results = service.run_batch([A1, bad], RANGE, "CAD")
        assert results[A1.key].status == "ok"
        assert results[bad.key].status == "error"
        assert "boom" in results[bad.key].error
        assert results[bad.key].to_dict()["days"] == 0
