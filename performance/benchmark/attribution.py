"""
Contribution attribution — split a period return across securities or asset classes.

Single-period, first-order:

    weight_k       = V_k(start) / V_total(start)
    return_k       = linked daily TWR of key k's own sub-series over (start, end]
    contribution_k = weight_k * return_k

The sum of contributions approximates the total return; the gap
(`attribution_residual`) comes from weight drift inside the period and is
not corrected.

The same symbol -> asset class mapping gives point-in-time allocation
(`allocation`): value and weight per asset class on one date.
"""
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from config.settings import ATTRIBUTION_TOLERANCE, UNCLASSIFIED_ASSET_CLASS
from performance.core.errors import CurrencyMismatchError
from performance.core.schema import (
    AllocationRecord,
    CashFlowEvent,
    ContributionLevel,
    ContributionRecord,
    DateRange,
    EntityKind,
    EntityRef,
    Money,
    ValuationPoint,
    to_date,
)
from performance.returns.calculator import ReturnCalculator

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


class AttributionEngine:
    """
    Per-key contribution to a period return.

    Args:
        calculator: ReturnCalculator used for every key's sub-series.
        asset_class_map: {symbol: asset class}, used to roll security series
            up to asset classes when no asset-class slices are supplied.
        unclassified: Asset class for symbols missing from the map.
    """

    def __init__(
        self,
        calculator: Optional[ReturnCalculator] = None,
        asset_class_map: Optional[Mapping[str, str]] = None,
        unclassified: Optional[str] = None,
    ):
        self.calculator = calculator or ReturnCalculator()
        self.asset_class_map = dict(asset_class_map or {})
        self.unclassified = unclassified or UNCLASSIFIED_ASSET_CLASS

    def contributions(
        self,
        entity: EntityRef,
        total_series: Iterable[ValuationPoint],
        key_series: Mapping[str, Iterable[ValuationPoint]],
        start,
        end,
        reporting_currency: str,
        level: ContributionLevel = ContributionLevel.SECURITY,
        key_flows: Optional[Mapping[str, Iterable[CashFlowEvent]]] = None,
    ) -> List[ContributionRecord]:
        """
        Contribution records for every key valued at `start`.

        Args:
            entity: The account or portfolio being attributed.
            total_series: Valuations of the whole entity.
            key_series: {key: valuations of that key's slice}.
            start, end: Period bounds (inclusive dates).
            reporting_currency: Currency of every valuation.
            level: Security or AssetClass, copied onto each record.
            key_flows: {key: capital moved into / out of that key}, as
                Deposit / Withdrawal events so the classifier signs them.

        Returns:
            Records sorted by absolute contribution, largest first. Keys that
            were not valued at `start` are excluded.
        """
        date_range = DateRange(to_date(start), to_date(end))
        key_flows = key_flows or {}

        start_total = self._value_on(total_series, date_range.start, reporting_currency)
        if start_total is None:
            logger.warning(f"{entity}: no total valuation on {date_range.start}, no contributions")
            return []

        records: List[ContributionRecord] = []
        excluded: List[str] = []

        for key, series in key_series.items():
            series = list(series)
            start_value = self._value_on(series, date_range.start, reporting_currency)
            if start_value is None:
                excluded.append(key)
                continue

            weight = _ZERO if start_total == 0 else start_value / start_total
            key_ref = self._key_ref(entity, key, level)
            daily = self.calculator.daily_returns(
                key_ref, series, key_flows.get(key, []), date_range, reporting_currency,
            )
            value = self.calculator.link(daily)

            records.append(ContributionRecord(
                start=date_range.start,
                end=date_range.end,
                reporting_currency=reporting_currency,
                level=level,
                key=key,
                start_weight=weight,
                value=value,
                contribution=weight * value,
            ))

        if excluded:
            logger.info(
                f"{entity}: {len(excluded)} key(s) not held on {date_range.start} excluded "
                f"from attribution: {', '.join(sorted(excluded))}"
            )
        return sorted(records, key=lambda r: -abs(r.contribution))

    # -----------------------------------------------------------------------
    # Asset-class roll-up
    # -----------------------------------------------------------------------

    def asset_class_of(self, symbol: str) -> str:
        return self.asset_class_map.get(symbol, self.unclassified)

    def aggregate_series(
        self,
        entity: EntityRef,
        security_series: Mapping[str, Iterable[ValuationPoint]],
        reporting_currency: str,
    ) -> Dict[str, List[ValuationPoint]]:
        """Sum security valuations into one series per asset class."""
        totals: Dict[str, Dict] = defaultdict(lambda: defaultdict(lambda: [_ZERO, _ZERO]))
        for symbol, series in security_series.items():
            asset_class = self.asset_class_of(symbol)
            for p in series:
                bucket = totals[asset_class][p.date]
                bucket[0] += p.total_value.amount
                bucket[1] += p.cash_value.amount

        unmapped = [s for s in security_series if s not in self.asset_class_map]
        if unmapped:
            logger.debug(f"{entity}: {len(unmapped)} symbol(s) mapped to '{self.unclassified}'")

        aggregated: Dict[str, List[ValuationPoint]] = {}
        for asset_class, by_day in totals.items():
            ref = entity.slice(asset_class)
            aggregated[asset_class] = [
                ValuationPoint.of_total(ref, d, total, reporting_currency, cash=cash)
                for d, (total, cash) in sorted(by_day.items())
            ]
        return aggregated

    def allocation(
        self,
        entity: EntityRef,
        components: Mapping[str, ValuationPoint],
        on,
        reporting_currency: str,
        level: ContributionLevel = ContributionLevel.SECURITY,
    ) -> List[AllocationRecord]:
        """
        Value and weight per asset class on one date, largest first.

        Security components are rolled up through the mapping; asset-class
        components are taken as they are. Weights are shares of the summed
        component values and are all 0 when that sum is not positive.
        """
        on = to_date(on)
        values: Dict[str, Decimal] = defaultdict(Decimal)
        for key, point in components.items():
            if point.reporting_currency != reporting_currency:
                raise CurrencyMismatchError(point.reporting_currency, reporting_currency, f"component {key} {on}")
            asset_class = key if level == ContributionLevel.ASSET_CLASS else self.asset_class_of(key)
            values[asset_class] += point.total_value.amount

        grand = sum(values.values(), _ZERO)
        if values and grand <= 0:
            logger.warning(f"{entity}: holdings sum to {grand} on {on}, allocation weights set to 0")

        records = [
            AllocationRecord(
                date=on,
                reporting_currency=reporting_currency,
                asset_class=asset_class,
                value=Money(value, reporting_currency),
                weight=value / grand if grand > 0 else _ZERO,
            )
            for asset_class, value in values.items()
        ]
        return sorted(records, key=lambda r: (-r.value.amount, r.asset_class))

    def aggregate_flows(
        self,
        security_flows: Mapping[str, Iterable[CashFlowEvent]],
    ) -> Dict[str, List[CashFlowEvent]]:
        flows: Dict[str, List[CashFlowEvent]] = defaultdict(list)
        for symbol, events in security_flows.items():
            flows[self.asset_class_of(symbol)].extend(events)
        return dict(flows)

    # -----------------------------------------------------------------------
    # Additivity
    # -----------------------------------------------------------------------

    @staticmethod
    def sum_contributions(records: Iterable[ContributionRecord]) -> Decimal:
        return sum((r.contribution for r in records), _ZERO)

    @classmethod
    def attribution_residual(cls, records: Iterable[ContributionRecord], total_return: Decimal) -> Decimal:
        """total_return - sum(contributions). Not corrected, only reported."""
        return total_return - cls.sum_contributions(records)

    @classmethod
    def is_additive(
        cls,
        records: Iterable[ContributionRecord],
        total_return: Decimal,
        tolerance: Optional[float] = None,
    ) -> bool:
        tolerance = ATTRIBUTION_TOLERANCE if tolerance is None else tolerance
        return abs(cls.attribution_residual(records, total_return)) <= Decimal(str(tolerance))

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    @staticmethod
    def _key_ref(entity: EntityRef, key: str, level: ContributionLevel) -> EntityRef:
        if level == ContributionLevel.ASSET_CLASS:
            return entity.slice(key)
        return EntityRef(EntityKind.SECURITY, key)

    @staticmethod
    def _value_on(series: Iterable[ValuationPoint], on, reporting_currency: str) -> Optional[Decimal]:
        for p in series:
            if p.date == on:
                if p.reporting_currency != reporting_currency:
                    raise CurrencyMismatchError(p.reporting_currency, reporting_currency, f"valuation {p.entity} {on}")
                return p.total_value.amount
        return None
