"""
Transaction cost summaries — trading costs and withholding per currency.

Buy / Sell costs are commissions; Dividend / Interest costs are tax withheld.
Each summary reports counts, gross and cost totals per type so callers can
read effective rates (cost / gross).
"""
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from performance.core.errors import CurrencyMismatchError
from performance.core.schema import (
    COST_TYPES,
    DateRange,
    SecurityCostRecord,
    Transaction,
    TransactionCostSummary,
    TransactionType,
)

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


class CostSummaryEngine:
    """
    Aggregate transaction costs by currency (and optionally by security).

    Args:
        cost_model: Optional TradeCostModel used to estimate costs for
            transactions that carry none.
    """

    def __init__(self, cost_model=None):
        self.cost_model = cost_model

    def summarize(self, transactions: Iterable[Transaction], date_range: DateRange) -> List[TransactionCostSummary]:
        """
        One summary per currency, ordered by total costs descending.

        Raises:
            CurrencyMismatchError: a transaction's costs are not in its gross currency.
        """
        counts: Dict[str, Dict[TransactionType, int]] = defaultdict(lambda: defaultdict(int))
        costs: Dict[str, Dict[TransactionType, Decimal]] = defaultdict(lambda: defaultdict(Decimal))
        gross: Dict[str, Dict[TransactionType, Decimal]] = defaultdict(lambda: defaultdict(Decimal))

        for t, cost in self._relevant(transactions, date_range):
            ccy = t.amount.currency
            counts[ccy][t.kind] += 1
            costs[ccy][t.kind] += cost
            gross[ccy][t.kind] += abs(t.amount.amount)

        summaries = []
        for ccy in counts:
            summaries.append(TransactionCostSummary(
                currency=ccy,
                total_costs=sum(costs[ccy].values(), _ZERO),
                counts_by_type={k: counts[ccy].get(k, 0) for k in COST_TYPES},
                costs_by_type={k: costs[ccy].get(k, _ZERO) for k in COST_TYPES},
                gross_by_type={k: gross[ccy].get(k, _ZERO) for k in COST_TYPES},
            ))

        summaries.sort(key=lambda s: s.total_costs, reverse=True)
        logger.debug(f"Cost summary {date_range.start}..{date_range.end}: {len(summaries)} currency(ies)")
        return summaries

    def by_security(self, transactions: Iterable[Transaction], date_range: DateRange) -> List[SecurityCostRecord]:
        """Same aggregation keyed by (symbol, currency, type), costliest first."""
        buckets: Dict[Tuple[str, str, TransactionType], list] = defaultdict(lambda: [0, _ZERO, _ZERO])
        for t, cost in self._relevant(transactions, date_range):
            bucket = buckets[(t.symbol, t.amount.currency, t.kind)]
            bucket[0] += 1
            bucket[1] += cost
            bucket[2] += abs(t.amount.amount)

        records = [
            SecurityCostRecord(symbol, ccy, kind, count, total, gross_total)
            for (symbol, ccy, kind), (count, total, gross_total) in buckets.items()
        ]
        records.sort(key=lambda r: (-r.total_costs, r.symbol, r.kind.value))
        return records

    def merge(self, *groups: Iterable[TransactionCostSummary]) -> List[TransactionCostSummary]:
        """Combine per-account summaries into portfolio summaries, by currency."""
        merged: Dict[str, TransactionCostSummary] = {}
        for group in groups:
            for s in group:
                prev = merged.get(s.currency)
                if prev is None:
                    merged[s.currency] = s
                    continue
                merged[s.currency] = TransactionCostSummary(
                    currency=s.currency,
                    total_costs=prev.total_costs + s.total_costs,
                    counts_by_type={k: prev.counts_by_type.get(k, 0) + s.counts_by_type.get(k, 0) for k in COST_TYPES},
                    costs_by_type={k: prev.costs_by_type.get(k, _ZERO) + s.costs_by_type.get(k, _ZERO) for k in COST_TYPES},
                    gross_by_type={k: prev.gross_by_type.get(k, _ZERO) + s.gross_by_type.get(k, _ZERO) for k in COST_TYPES},
                )
        return sorted(merged.values(), key=lambda s: s.total_costs, reverse=True)

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _relevant(self, transactions: Iterable[Transaction], date_range: DateRange):
        """Yield (transaction, cost amount) for cost-bearing types in range."""
        for t in transactions:
            if t.kind not in COST_TYPES or t.date not in date_range:
                continue
            cost = self._cost_of(t)
            yield t, cost

    def _cost_of(self, t: Transaction) -> Decimal:
        costs = t.costs
        if costs is None and self.cost_model is not None:
            costs = self.cost_model.estimate(t)
        if costs is None:
            return _ZERO
        if costs.currency != t.amount.currency:
            raise CurrencyMismatchError(
                costs.currency, t.amount.currency, f"costs of {t.kind.value} {t.symbol} on {t.date}"
            )
        return abs(costs.amount)
