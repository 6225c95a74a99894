"""
Cash-flow classification — external flows vs internal events.

External flows (deposit / withdrawal / fee, optionally interest) enter or
leave the portfolio from outside and must be neutralised from return.
Internal events (buy / sell / dividend) already live inside the valuation.
"""
import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from config.settings import INTEREST_IS_EXTERNAL
from performance.core.errors import CurrencyMismatchError
from performance.core.schema import CashFlowEvent, CashFlowKind, Money

logger = logging.getLogger(__name__)

# +1 adds capital, -1 removes it, 0 internal
_DIRECTION = {
    CashFlowKind.DEPOSIT: 1,
    CashFlowKind.WITHDRAWAL: -1,
    CashFlowKind.FEE: -1,
    CashFlowKind.INTEREST: 1,
    CashFlowKind.DIVIDEND: 0,
    CashFlowKind.BUY: 0,
    CashFlowKind.SELL: 0,
    CashFlowKind.OTHER: 0,
}

_ALWAYS_EXTERNAL = frozenset({CashFlowKind.DEPOSIT, CashFlowKind.WITHDRAWAL, CashFlowKind.FEE})


class CashFlowClassifier:
    """Separate external flows from internal events and sign them."""

    def __init__(self, interest_is_external: Optional[bool] = None):
        if interest_is_external is None:
            interest_is_external = INTEREST_IS_EXTERNAL
        self.interest_is_external = interest_is_external

    def is_external(self, kind: CashFlowKind) -> bool:
        if kind in _ALWAYS_EXTERNAL:
            return True
        if kind == CashFlowKind.INTEREST:
            return self.interest_is_external
        return False

    def signed_amount(self, event: CashFlowEvent) -> Money:
        """Deposits/interest positive, withdrawals/fees negative, regardless of stored sign."""
        direction = _DIRECTION[event.kind]
        magnitude = abs(event.amount.amount)
        return Money(magnitude * direction, event.amount.currency)

    def external_flows(self, events: Iterable[CashFlowEvent]) -> List[CashFlowEvent]:
        return [e for e in events if self.is_external(e.kind)]

    def flows_by_date(
        self,
        events: Iterable[CashFlowEvent],
        reporting_currency: str,
        fx=None,
    ) -> Dict[date, Decimal]:
        """
        Sum signed external flows per date, in the reporting currency.

        Args:
            events: Any flows; internal kinds are dropped.
            reporting_currency: Target currency.
            fx: Optional FxConverter for flows in other currencies.

        Raises:
            CurrencyMismatchError: a flow is in another currency and no fx was supplied.
        """
        by_day: Dict[date, Decimal] = defaultdict(Decimal)
        for e in self.external_flows(events):
            signed = self.signed_amount(e)
            if signed.currency != reporting_currency:
                if fx is None:
                    raise CurrencyMismatchError(
                        signed.currency, reporting_currency,
                        f"{e.kind.value} flow on {e.date} needs FX conversion",
                    )
                signed = fx.convert(signed, e.date, reporting_currency)
            by_day[e.date] += signed.amount
        return dict(by_day)
