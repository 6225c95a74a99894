"""
Trade cost model — estimate commissions and withholding from a fee schedule.

    Buy / Sell:         cost = fixed + pct * gross, floored at `min`
    Dividend/Interest:  cost = withholding_pct * gross

Rules are keyed by currency code. A currency without a rule costs nothing.
Results are rounded to cents.
"""
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Mapping, Optional

from performance.core.schema import Money, Transaction, TransactionType, to_decimal

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class BuySellRule:
    fixed: Decimal
    pct: Decimal
    min: Optional[Decimal] = None

    def __post_init__(self):
        object.__setattr__(self, "fixed", to_decimal(self.fixed))
        object.__setattr__(self, "pct", to_decimal(self.pct))
        if self.min is not None:
            object.__setattr__(self, "min", to_decimal(self.min))


class TradeCostModel:

    def __init__(
        self,
        buy_sell_rules: Optional[Mapping[str, BuySellRule]] = None,
        dividend_withholding_pct: Optional[Mapping[str, object]] = None,
        interest_withholding_pct: Optional[Mapping[str, object]] = None,
    ):
        self.buy_sell_rules = {k.upper(): v for k, v in (buy_sell_rules or {}).items()}
        self.dividend_withholding_pct = {
            k.upper(): to_decimal(v) for k, v in (dividend_withholding_pct or {}).items()
        }
        self.interest_withholding_pct = {
            k.upper(): to_decimal(v) for k, v in (interest_withholding_pct or {}).items()
        }

    def buy_sell_cost(self, gross: Money) -> Money:
        rule = self.buy_sell_rules.get(gross.currency)
        if rule is None:
            return Money.zero(gross.currency)
        raw = rule.fixed + rule.pct * abs(gross.amount)
        if rule.min is not None and raw < rule.min:
            raw = rule.min
        return Money(raw.quantize(_CENT, rounding=ROUND_HALF_EVEN), gross.currency)

    def dividend_withholding(self, gross: Money) -> Money:
        return self._withholding(gross, self.dividend_withholding_pct)

    def interest_withholding(self, gross: Money) -> Money:
        return self._withholding(gross, self.interest_withholding_pct)

    def estimate(self, transaction: Transaction) -> Optional[Money]:
        """Estimated costs for a transaction, or None for types without costs."""
        if transaction.kind in (TransactionType.BUY, TransactionType.SELL):
            return self.buy_sell_cost(transaction.amount)
        if transaction.kind == TransactionType.DIVIDEND:
            return self.dividend_withholding(transaction.amount)
        if transaction.kind == TransactionType.INTEREST:
            return self.interest_withholding(transaction.amount)
        return None

    @staticmethod
    def _withholding(gross: Money, table: Mapping[str, Decimal]) -> Money:
        pct = table.get(gross.currency)
        if pct is None:
            return Money.zero(gross.currency)
        return Money((abs(gross.amount) * pct).quantize(_CENT, rounding=ROUND_HALF_EVEN), gross.currency)
