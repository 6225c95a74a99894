"""
Performance service — the operations callers use, wired to the data sources.

Pulls materialised valuations / flows / component returns from the sources
once, hands them to the engines, and optionally persists results. Also runs
nightly batches: independent entities in a thread pool, each entity's days
in date order, with a cancellation signal checked between days.
"""
import logging
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from config.settings import BATCH_MAX_WORKERS
from performance.benchmark.attribution import AttributionEngine
from performance.benchmark.engine import BenchmarkEngine
from performance.core.errors import CalculationCancelled, InvalidInputError
from performance.core.schema import (
    AllocationRecord,
    BenchmarkDefinition,
    CashFlowEvent,
    ContributionLevel,
    ContributionRecord,
    DailyReturn,
    DateRange,
    EntityRef,
    PeriodPerformance,
    ReturnMethod,
    RiskCard,
    RollingReturnSet,
    Transaction,
    TransactionCostSummary,
    ValuationPoint,
    to_date,
)
from performance.core.sources import CashFlowSource, PriceReturnSource, ValuationSource
from performance.costs.summary import CostSummaryEngine
from performance.results.store import ResultStore
from performance.returns.calculator import ReturnCalculator
from performance.returns.rolling import RollingWindowEngine
from performance.risk.engine import RiskEngine

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Outcome of one entity in a batch run."""

    entity: EntityRef
    status: str = "ok"  # ok | cancelled | error
    daily_returns: List[DailyReturn] = field(default_factory=list)
    rolling: Optional[RollingReturnSet] = None
    risk: Optional[RiskCard] = None
    error: str = ""

    def to_dict(self) -> dict:
        return {
            "entity": self.entity.to_dict(),
            "status": self.status,
            "days": len(self.daily_returns),
            "rolling": self.rolling.to_dict() if self.rolling else None,
            "risk": self.risk.to_dict() if self.risk else None,
            "error": self.error,
        }


class PerformanceService:
    """Facade over the return, rolling, attribution, benchmark, risk and cost engines."""

    def __init__(
        self,
        valuations: ValuationSource,
        flows: CashFlowSource,
        prices: Optional[PriceReturnSource] = None,
        calculator: Optional[ReturnCalculator] = None,
        attribution: Optional[AttributionEngine] = None,
        benchmark: Optional[BenchmarkEngine] = None,
        risk: Optional[RiskEngine] = None,
        costs: Optional[CostSummaryEngine] = None,
        store: Optional[ResultStore] = None,
    ):
        self.valuations = valuations
        self.flows = flows
        self.prices = prices
        self.calculator = calculator or ReturnCalculator()
        self.rolling = RollingWindowEngine(self.calculator)
        self.attribution = attribution or AttributionEngine(self.calculator)
        self.benchmark = benchmark or BenchmarkEngine()
        self.risk = risk or RiskEngine(calculator=self.calculator)
        self.costs = costs or CostSummaryEngine()
        self.store = store

    # -----------------------------------------------------------------------
    # Returns
    # -----------------------------------------------------------------------

    def compute_daily_returns(
        self,
        entity: EntityRef,
        date_range: DateRange,
        reporting_currency: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[DailyReturn]:
        points = self._valuation_series(entity, date_range, reporting_currency)
        flows = self.flows.get_external_flows(entity, date_range)
        return self.calculator.daily_returns(
            entity, points, flows, date_range, reporting_currency, cancel_event=cancel_event,
        )

    def compute_period_performance(
        self,
        entity: EntityRef,
        start,
        end,
        reporting_currency: str,
        method: ReturnMethod = ReturnMethod.TWR,
    ) -> PeriodPerformance:
        date_range = DateRange(start, end)
        points = self._valuation_series(entity, date_range, reporting_currency)
        flows = self.flows.get_external_flows(entity, date_range)
        return self.calculator.period_performance(
            entity, points, flows, date_range.start, date_range.end, reporting_currency, method,
        )

    def compute_rolling(self, daily_series: Iterable[DailyReturn], as_of, inception) -> RollingReturnSet:
        return self.rolling.compute(daily_series, as_of, inception)

    # -----------------------------------------------------------------------
    # Attribution
    # -----------------------------------------------------------------------

    def compute_contribution(
        self,
        entity: EntityRef,
        start,
        end,
        reporting_currency: str,
        level: ContributionLevel = ContributionLevel.SECURITY,
    ) -> List[ContributionRecord]:
        """
        Contribution by security or asset class.

        Asset-class slices are used when the valuation source has them;
        otherwise security components are rolled up through the
        attribution engine's symbol -> asset class mapping.
        """
        date_range = DateRange(start, end)
        total = self._valuation_series(entity, date_range, reporting_currency)
        key_series = self._component_series(entity, date_range, reporting_currency, level)

        if level == ContributionLevel.ASSET_CLASS and not key_series:
            securities = self._component_series(entity, date_range, reporting_currency, ContributionLevel.SECURITY)
            key_series = self.attribution.aggregate_series(entity, securities, reporting_currency)
            security_flows = self._key_flows(entity, securities, date_range)
            key_flows = self.attribution.aggregate_flows(security_flows)
        else:
            key_flows = self._key_flows(entity, key_series, date_range)

        return self.attribution.contributions(
            entity, total, key_series, date_range.start, date_range.end,
            reporting_currency, level, key_flows,
        )

    def compute_allocation(self, entity: EntityRef, on, reporting_currency: str) -> List[AllocationRecord]:
        """
        Asset-class allocation on a date: asset-class slices when the source
        has them, otherwise security components grouped by the mapping.
        """
        on = to_date(on)
        components = self.valuations.get_components(entity, on, reporting_currency, ContributionLevel.ASSET_CLASS)
        level = ContributionLevel.ASSET_CLASS
        if not components:
            components = self.valuations.get_components(entity, on, reporting_currency, ContributionLevel.SECURITY)
            level = ContributionLevel.SECURITY
        if not components:
            logger.debug(f"{entity}: no components on {on}, empty allocation")
        return self.attribution.allocation(entity, components, on, reporting_currency, level)

    # -----------------------------------------------------------------------
    # Benchmark / risk / costs
    # -----------------------------------------------------------------------

    def compute_benchmark_returns(self, definition: BenchmarkDefinition, date_range: DateRange) -> List[DailyReturn]:
        if self.prices is None:
            raise InvalidInputError("No price-return source configured for benchmark returns")
        return self.benchmark.daily_returns(definition, date_range, self.prices)

    def compute_relative_performance(self, portfolio: Iterable[DailyReturn], benchmark: Iterable[DailyReturn]) -> dict:
        return self.benchmark.relative_performance(portfolio, benchmark)

    def compute_risk_card(
        self,
        daily_series: Iterable[DailyReturn],
        benchmark_series: Optional[Iterable[DailyReturn]] = None,
    ) -> RiskCard:
        return self.risk.compute(daily_series, benchmark_series)

    def summarize_costs(self, transactions: Iterable[Transaction], date_range: DateRange) -> List[TransactionCostSummary]:
        return self.costs.summarize(transactions, date_range)

    # -----------------------------------------------------------------------
    # Batch
    # -----------------------------------------------------------------------

    def run_entity(
        self,
        entity: EntityRef,
        date_range: DateRange,
        reporting_currency: str,
        cancel_event: Optional[threading.Event] = None,
        benchmark_series: Optional[List[DailyReturn]] = None,
    ) -> BatchResult:
        """Daily returns, rolling set and risk card for one entity, persisted if a store is set."""
        daily = self.compute_daily_returns(entity, date_range, reporting_currency, cancel_event)
        rolling = self.compute_rolling(daily, date_range.end, date_range.start)
        risk = self.compute_risk_card(daily, benchmark_series)

        if cancel_event is not None and cancel_event.is_set():
            raise CalculationCancelled(f"{entity} cancelled before persisting")

        if self.store is not None:
            period = f"{date_range.start.isoformat()}..{date_range.end.isoformat()}"
            self.store.save_daily_returns(daily)
            self.store.save_rolling(entity, reporting_currency, rolling)
            self.store.save_risk(entity, period, reporting_currency, risk)

        return BatchResult(entity=entity, daily_returns=daily, rolling=rolling, risk=risk)

    def run_batch(
        self,
        entities: Iterable[EntityRef],
        date_range: DateRange,
        reporting_currency: str,
        max_workers: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
        benchmark_series: Optional[List[DailyReturn]] = None,
    ) -> Dict[str, BatchResult]:
        """
        Run independent entities in parallel.

        A cancelled entity keeps no results; an entity that fails is reported
        with status "error" and does not stop the others.

        Returns:
            {entity key: BatchResult}
        """
        entities = list(entities)
        results: Dict[str, BatchResult] = {}
        max_workers = max_workers or BATCH_MAX_WORKERS

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                executor.submit(
                    self.run_entity, e, date_range, reporting_currency, cancel_event, benchmark_series,
                ): e
                for e in entities
            }
            for future in as_completed(futures):
                entity = futures[future]
                try:
                    results[entity.key] = future.result()
                except CalculationCancelled as e:
                    logger.warning(f"{entity}: {e}, partial results discarded")
                    results[entity.key] = BatchResult(entity=entity, status="cancelled", error=str(e))
                except Exception as e:
                    logger.error(f"{entity}: batch run failed: {e}")
                    results[entity.key] = BatchResult(entity=entity, status="error", error=str(e))

        done = sum(1 for r in results.values() if r.status == "ok")
        logger.info(f"Batch {date_range.start}..{date_range.end}: {done}/{len(entities)} entities completed")
        return results

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _valuation_series(self, entity: EntityRef, date_range: DateRange, reporting_currency: str) -> List[ValuationPoint]:
        points = []
        for d in date_range.days():
            point = self.valuations.get_valuation(entity, d, reporting_currency)
            if point is not None:
                points.append(point)
        return points

    def _component_series(
        self,
        entity: EntityRef,
        date_range: DateRange,
        reporting_currency: str,
        level: ContributionLevel,
    ) -> Dict[str, List[ValuationPoint]]:
        series: Dict[str, List[ValuationPoint]] = defaultdict(list)
        for d in date_range.days():
            for key, point in self.valuations.get_components(entity, d, reporting_currency, level).items():
                series[key].append(point)
        return dict(series)

    def _key_flows(self, entity: EntityRef, keys: Iterable[str], date_range: DateRange) -> Dict[str, List[CashFlowEvent]]:
        return {key: self.flows.get_key_flows(entity, key, date_range) for key in keys}
