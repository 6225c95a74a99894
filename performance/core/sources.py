"""
Collaborator protocols — where valuations, flows, component returns and FX come from.

The engine never fetches anything itself: callers hand in a source that has
already materialised its data. In-memory implementations are provided for
batch jobs (built by performance.loaders) and tests.
"""
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Tuple

import pandas as pd

from performance.core.cashflows import CashFlowClassifier
from performance.core.errors import CurrencyMismatchError
from performance.core.schema import (
    CashFlowEvent,
    ContributionLevel,
    DateRange,
    EntityKind,
    EntityRef,
    Money,
    Portfolio,
    ValuationPoint,
    to_decimal,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

class ValuationSource(ABC):
    """Close-of-day valuations, already converted into the reporting currency."""

    @abstractmethod
    def get_valuation(self, entity: EntityRef, on: date, reporting_currency: str) -> Optional[ValuationPoint]:
        """Return the valuation, or None when the entity cannot be valued on that date."""
        pass

    def get_components(
        self,
        entity: EntityRef,
        on: date,
        reporting_currency: str,
        level: ContributionLevel,
    ) -> Dict[str, ValuationPoint]:
        """Per-key (security or asset class) valuations of `entity` on a date."""
        return {}


class CashFlowSource(ABC):

    @abstractmethod
    def get_external_flows(self, entity: EntityRef, date_range: DateRange) -> List[CashFlowEvent]:
        """External flows (deposit / withdrawal / fee / optionally interest) in range."""
        pass

    def get_key_flows(self, entity: EntityRef, key: str, date_range: DateRange) -> List[CashFlowEvent]:
        """External flows attributed to one security / asset class. Default: none."""
        return []


class PriceReturnSource(ABC):

    @abstractmethod
    def get_daily_return(self, instrument: str, on: date) -> Optional[Decimal]:
        """Close-to-close price return for the day, or None when absent."""
        pass


class FxConverter(ABC):

    @abstractmethod
    def convert(self, money: Money, on: date, target_currency: str) -> Money:
        pass


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------

class InMemoryValuationSource(ValuationSource):

    def __init__(self):
        self._points: Dict[Tuple[str, date, str], ValuationPoint] = {}
        self._components: Dict[Tuple[str, str, date, str], Dict[str, ValuationPoint]] = defaultdict(dict)

    def add(self, point: ValuationPoint) -> None:
        self._points[(point.entity.key, point.date, point.reporting_currency)] = point

    def add_component(self, entity: EntityRef, level: ContributionLevel, key: str,
                      point: ValuationPoint) -> None:
        self._components[(entity.key, level.value, point.date, point.reporting_currency)][key] = point

    def get_valuation(self, entity, on, reporting_currency):
        return self._points.get((entity.key, on, reporting_currency))

    def get_components(self, entity, on, reporting_currency, level):
        return dict(self._components.get((entity.key, level.value, on, reporting_currency), {}))

    def entities(self) -> List[EntityRef]:
        seen = {}
        for point in self._points.values():
            seen.setdefault(point.entity.key, point.entity)
        return list(seen.values())

    def dates(self, entity: EntityRef, reporting_currency: str) -> List[date]:
        return sorted(
            d for (key, d, ccy) in self._points
            if key == entity.key and ccy == reporting_currency
        )


class InMemoryCashFlowSource(CashFlowSource):
    """
    Flows stored per account or portfolio. A portfolio's flows are the union of
    its own flows and those of its accounts, looked up by id.
    """

    def __init__(self, classifier: Optional[CashFlowClassifier] = None,
                 portfolios: Optional[List[Portfolio]] = None):
        self.classifier = classifier or CashFlowClassifier()
        self._events: Dict[str, List[CashFlowEvent]] = defaultdict(list)
        self._portfolios: Dict[str, Portfolio] = {p.id: p for p in (portfolios or [])}

    def add(self, entity: EntityRef, event: CashFlowEvent) -> None:
        self._events[entity.key].append(event)

    def add_portfolio(self, portfolio: Portfolio) -> None:
        self._portfolios[portfolio.id] = portfolio

    def _events_for(self, entity: EntityRef) -> List[CashFlowEvent]:
        events = list(self._events.get(entity.key, []))
        if entity.kind == EntityKind.PORTFOLIO and entity.id in self._portfolios:
            for ref in self._portfolios[entity.id].account_refs():
                events.extend(self._events.get(ref.key, []))
        return events

    def get_external_flows(self, entity, date_range):
        return sorted(
            (e for e in self.classifier.external_flows(self._events_for(entity)) if e.date in date_range),
            key=lambda e: e.date,
        )

    def get_key_flows(self, entity, key, date_range):
        return [e for e in self.get_external_flows(entity, date_range) if e.symbol == key]


class InMemoryPriceReturnSource(PriceReturnSource):

    def __init__(self, returns: Optional[Mapping[Tuple[str, date], Decimal]] = None):
        self._returns: Dict[Tuple[str, date], Decimal] = dict(returns or {})

    def set_return(self, instrument: str, on: date, value) -> None:
        self._returns[(instrument, on)] = to_decimal(value)

    def add_prices(self, instrument: str, closes: Mapping[date, float]) -> None:
        """Derive close-to-close returns from a {date: close} mapping."""
        prices = pd.Series(dict(closes), dtype=float).sort_index()
        daily_ret = prices.pct_change().dropna()
        for d, r in daily_ret.items():
            self._returns[(instrument, d)] = to_decimal(float(r))
        logger.debug(f"Loaded {len(daily_ret)} daily returns for {instrument}")

    def get_daily_return(self, instrument, on):
        return self._returns.get((instrument, on))


class StaticFxConverter(FxConverter):
    """Fixed rates keyed by (from, to). Reverse pairs are inverted."""

    def __init__(self, rates: Mapping[Tuple[str, str], object]):
        self._rates = {(a.upper(), b.upper()): to_decimal(r) for (a, b), r in rates.items()}

    def rate(self, source: str, target: str) -> Decimal:
        if source == target:
            return Decimal("1")
        if (source, target) in self._rates:
            return self._rates[(source, target)]
        if (target, source) in self._rates:
            return Decimal("1") / self._rates[(target, source)]
        raise CurrencyMismatchError(source, target, "no FX rate available")

    def convert(self, money, on, target_currency):
        target = target_currency.upper()
        return money.convert(self.rate(money.currency, target), target)
