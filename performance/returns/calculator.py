"""
Return calculator — daily TWR, geometric linking, Modified Dietz.

Daily return for valued day t:

    r_t = (EMV - CF - BMV) / BMV        (0 when BMV == 0)

BMV is the previous valued day's close, CF the signed external flows dated
after that close up to and including t. Buys, sells and dividends are not
in CF: they move the valuation and so flow through return naturally.
"""
import logging
import threading
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from config.settings import MISSING_VALUATION_POLICY, MISSING_VALUATION_POLICIES
from performance.core.cashflows import CashFlowClassifier
from performance.core.errors import CalculationCancelled, CurrencyMismatchError, InvalidInputError
from performance.core.schema import (
    CashFlowEvent,
    DailyReturn,
    DateRange,
    EntityRef,
    Money,
    PeriodPerformance,
    ReturnMethod,
    ValuationPoint,
    to_date,
)

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")
_ONE = Decimal("1")


class ReturnCalculator:
    """Compute and link returns for one entity's valuation series."""

    def __init__(
        self,
        classifier: Optional[CashFlowClassifier] = None,
        missing_policy: Optional[str] = None,
        fx=None,
    ):
        self.classifier = classifier or CashFlowClassifier()
        self.missing_policy = (missing_policy or MISSING_VALUATION_POLICY).lower()
        if self.missing_policy not in MISSING_VALUATION_POLICIES:
            raise InvalidInputError(
                f"Unknown missing-valuation policy '{self.missing_policy}'. "
                f"Expected one of {MISSING_VALUATION_POLICIES}"
            )
        self.fx = fx

    # -----------------------------------------------------------------------
    # Linking
    # -----------------------------------------------------------------------

    @staticmethod
    def link(returns: Iterable) -> Decimal:
        """Geometric link: prod(1 + r) - 1. Empty input links to 0."""
        growth = _ONE
        for r in returns:
            value = r.value if isinstance(r, DailyReturn) else r
            growth *= _ONE + value
        return growth - _ONE

    @classmethod
    def link_between(cls, series: Iterable[DailyReturn], start: date, end: date) -> Decimal:
        """Link the returns dated in [start, end]."""
        start, end = to_date(start), to_date(end)
        return cls.link(r.value for r in series if start <= r.date <= end)

    @staticmethod
    def daily_return(bmv: Decimal, emv: Decimal, cf: Decimal) -> Decimal:
        if bmv == 0:
            return _ZERO
        return (emv - cf - bmv) / bmv

    # -----------------------------------------------------------------------
    # Daily TWR
    # -----------------------------------------------------------------------

    def daily_returns(
        self,
        entity: EntityRef,
        valuations: Iterable[ValuationPoint],
        flows: Iterable[CashFlowEvent],
        date_range: DateRange,
        reporting_currency: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[DailyReturn]:
        """
        Daily returns for every valued day in (start, end], ascending.

        The valuation on `start` (or the first valued day after it) is the
        opening value. A missing valuation day is excluded, or emitted as a 0
        return under the forward_fill policy; either way its flows carry into
        the next valued day.

        Raises:
            CalculationCancelled: cancel_event was set between days.
            CurrencyMismatchError: a valuation is not in the reporting currency.
        """
        points = self._index_points(valuations, date_range, reporting_currency)
        flows_by_day = self.classifier.flows_by_date(
            (f for f in flows if date_range.start < f.date <= date_range.end),
            reporting_currency,
            self.fx,
        )

        results: List[DailyReturn] = []
        prev_value: Optional[Decimal] = None
        pending_flow = _ZERO
        gaps = 0

        for d in date_range.days():
            if cancel_event is not None and cancel_event.is_set():
                raise CalculationCancelled(f"{entity} cancelled at {d}")

            point = points.get(d)
            if d == date_range.start:
                if point is not None:
                    prev_value = point.total_value.amount
                continue

            pending_flow += flows_by_day.get(d, _ZERO)

            if point is None:
                if prev_value is not None and self.missing_policy == "forward_fill":
                    results.append(DailyReturn(d, entity, reporting_currency, _ZERO))
                else:
                    gaps += 1
                continue

            emv = point.total_value.amount
            if prev_value is None:
                # first valued day opens the series; its flows are opening capital
                prev_value = emv
                pending_flow = _ZERO
                continue

            r = self.daily_return(prev_value, emv, pending_flow)
            results.append(DailyReturn(d, entity, reporting_currency, r))
            prev_value = emv
            pending_flow = _ZERO

        if gaps:
            logger.debug(f"{entity}: {gaps} day(s) without valuation excluded in {date_range.start}..{date_range.end}")
        return results

    # -----------------------------------------------------------------------
    # Modified Dietz
    # -----------------------------------------------------------------------

    @staticmethod
    def modified_dietz(
        bmv: Decimal,
        emv: Decimal,
        flows_by_day: Mapping[date, Decimal],
        start: date,
        end: date,
    ) -> Decimal:
        """
        R = (EMV - BMV - sum CF) / (BMV + sum w_i * CF_i)
        w_i = (total_days - days_elapsed_i) / total_days

        Flows dated `start` are opening capital and are not counted.
        Zero denominator returns 0.
        """
        net, weighted = ReturnCalculator._dietz_flows(flows_by_day, start, end)
        denominator = bmv + weighted
        if denominator == 0:
            return _ZERO
        return (emv - bmv - net) / denominator

    @staticmethod
    def _dietz_flows(flows_by_day: Mapping[date, Decimal], start: date, end: date) -> Tuple[Decimal, Decimal]:
        total_days = max(1, (end - start).days)
        net = _ZERO
        weighted = _ZERO
        for d in sorted(flows_by_day):
            if not (start < d <= end):
                continue
            cf = flows_by_day[d]
            weight = Decimal(total_days - (d - start).days) / Decimal(total_days)
            net += cf
            weighted += weight * cf
        return net, weighted

    # -----------------------------------------------------------------------
    # Period performance
    # -----------------------------------------------------------------------

    def period_performance(
        self,
        entity: EntityRef,
        valuations: Iterable[ValuationPoint],
        flows: Iterable[CashFlowEvent],
        start: date,
        end: date,
        reporting_currency: str,
        method: ReturnMethod = ReturnMethod.TWR,
    ) -> PeriodPerformance:
        """
        Period return by TWR (linked daily) or Modified Dietz.

        Beginning/ending values are the valuations on start/end, or the
        nearest valued days inside the period.
        """
        date_range = DateRange(start, end)
        valuations = list(valuations)
        flows = list(flows)
        points = self._index_points(valuations, date_range, reporting_currency)
        zero = Money.zero(reporting_currency)

        if not points:
            logger.warning(f"{entity}: no valuations in {date_range.start}..{date_range.end}, return is 0")
            return PeriodPerformance(date_range.start, date_range.end, reporting_currency,
                                     method, _ZERO, zero, zero, zero)

        first_day, last_day = min(points), max(points)
        begin, finish = points[first_day], points[last_day]
        flows_by_day = self.classifier.flows_by_date(
            (f for f in flows if first_day < f.date <= last_day),
            reporting_currency,
            self.fx,
        )
        net_flows = Money(sum(flows_by_day.values(), _ZERO), reporting_currency)

        if method == ReturnMethod.TWR:
            value = self.link(self.daily_returns(entity, valuations, flows, date_range, reporting_currency))
        elif method == ReturnMethod.MODIFIED_DIETZ:
            value = self.modified_dietz(
                begin.total_value.amount, finish.total_value.amount,
                flows_by_day, first_day, last_day,
            )
        else:
            raise InvalidInputError(f"Unknown return method: {method}")

        return PeriodPerformance(
            start=date_range.start,
            end=date_range.end,
            reporting_currency=reporting_currency,
            method=method,
            value=value,
            beginning_value=begin.total_value,
            ending_value=finish.total_value,
            net_flows=net_flows,
        )

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    @staticmethod
    def _index_points(
        valuations: Iterable[ValuationPoint],
        date_range: DateRange,
        reporting_currency: str,
    ) -> Dict[date, ValuationPoint]:
        points = {}
        for p in valuations:
            if p.date not in date_range:
                continue
            if p.reporting_currency != reporting_currency:
                raise CurrencyMismatchError(p.reporting_currency, reporting_currency, f"valuation {p.entity} {p.date}")
            points[p.date] = p
        return points
