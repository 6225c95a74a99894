"""
Performance data models — Money, valuation points, cash flows, return records.

Uses frozen dataclasses: every record is computed, never mutated in place.
Money amounts and returns are Decimal; statistics downstream convert to float.
"""
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, Iterable, Iterator, Optional, Tuple

from performance.core.errors import CurrencyMismatchError, InvalidInputError


def to_decimal(value) -> Decimal:
    """Coerce int / str / float / Decimal to a finite Decimal (floats go through str)."""
    if isinstance(value, Decimal):
        d = value
    else:
        try:
            d = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
        except (InvalidOperation, TypeError, ValueError) as e:
            raise InvalidInputError(f"Not a decimal amount: {value!r}") from e
    if not d.is_finite():
        raise InvalidInputError(f"Not a finite amount: {value!r}")
    return d


def to_date(value) -> date:
    """Accept date or YYYY-MM-DD string."""
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise InvalidInputError(f"Not a calendar date: {value!r}") from e


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class EntityKind(str, Enum):
    ACCOUNT = "Account"
    PORTFOLIO = "Portfolio"
    ASSET_CLASS = "AssetClass"
    SECURITY = "Security"
    BENCHMARK = "Benchmark"


class CashFlowKind(str, Enum):
    """Closed set of cash-flow kinds. External vs internal lives in CashFlowClassifier."""
    DEPOSIT = "Deposit"
    WITHDRAWAL = "Withdrawal"
    FEE = "Fee"
    INTEREST = "Interest"
    DIVIDEND = "Dividend"
    BUY = "Buy"
    SELL = "Sell"
    OTHER = "Other"


class TransactionType(str, Enum):
    DEPOSIT = "Deposit"
    WITHDRAWAL = "Withdrawal"
    BUY = "Buy"
    SELL = "Sell"
    DIVIDEND = "Dividend"
    INTEREST = "Interest"
    FEE = "Fee"
    OTHER = "Other"

    @property
    def is_income(self) -> bool:
        return self in (TransactionType.DIVIDEND, TransactionType.INTEREST)


class ReturnMethod(str, Enum):
    TWR = "TWR"
    MODIFIED_DIETZ = "ModifiedDietz"


class ContributionLevel(str, Enum):
    SECURITY = "Security"
    ASSET_CLASS = "AssetClass"


# ---------------------------------------------------------------------------
# Money
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Money:
    """An amount in one currency. Arithmetic across currencies fails fast."""

    amount: Decimal
    currency: str

    def __post_init__(self):
        code = str(self.currency).strip().upper()
        if len(code) != 3 or not (code.isascii() and code.isalpha()):
            raise InvalidInputError(f"Invalid currency code: {self.currency!r}")
        object.__setattr__(self, "currency", code)
        object.__setattr__(self, "amount", to_decimal(self.amount))

    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(Decimal("0"), currency)

    @classmethod
    def total(cls, values: Iterable["Money"], currency: str) -> "Money":
        """Sum Money values; every value must already be in `currency`."""
        result = cls.zero(currency)
        for v in values:
            result = result + v
        return result

    def _check(self, other: "Money", op: str) -> None:
        if not isinstance(other, Money):
            raise InvalidInputError(f"Cannot {op} Money and {type(other).__name__}")
        if other.currency != self.currency:
            raise CurrencyMismatchError(self.currency, other.currency, op)

    def __add__(self, other: "Money") -> "Money":
        self._check(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check(other, "subtract")
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> "Money":
        return Money(-self.amount, self.currency)

    def __mul__(self, factor) -> "Money":
        if isinstance(factor, Money):
            raise InvalidInputError("Cannot multiply Money by Money")
        return Money(self.amount * to_decimal(factor), self.currency)

    __rmul__ = __mul__

    def __lt__(self, other: "Money") -> bool:
        self._check(other, "compare")
        return self.amount < other.amount

    def __le__(self, other: "Money") -> bool:
        self._check(other, "compare")
        return self.amount <= other.amount

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    def convert(self, rate, target_currency: str) -> "Money":
        """Convert with an explicit rate (units of target per unit of self)."""
        return Money(self.amount * to_decimal(rate), target_currency)

    def to_dict(self) -> dict:
        return {"amount": str(self.amount), "currency": self.currency}

    @classmethod
    def from_dict(cls, data: dict) -> "Money":
        return cls(to_decimal(data["amount"]), data["currency"])

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"


# ---------------------------------------------------------------------------
# Entities & ranges
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EntityRef:
    """What is being measured: account, portfolio, or an asset-class slice of one."""

    kind: EntityKind
    id: str
    asset_class: Optional[str] = None

    @property
    def key(self) -> str:
        base = f"{self.kind.value}:{self.id}"
        return f"{base}:{self.asset_class}" if self.asset_class else base

    def slice(self, asset_class: str) -> "EntityRef":
        return EntityRef(EntityKind.ASSET_CLASS, self.key, asset_class)

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "id": self.id, "asset_class": self.asset_class}

    @classmethod
    def from_dict(cls, data: dict) -> "EntityRef":
        return cls(EntityKind(data["kind"]), str(data["id"]), data.get("asset_class"))

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class Portfolio:
    """A portfolio refers to its accounts by id only."""

    id: str
    owner: str = ""
    account_ids: Tuple[str, ...] = ()

    @property
    def ref(self) -> EntityRef:
        return EntityRef(EntityKind.PORTFOLIO, self.id)

    def account_refs(self) -> Tuple[EntityRef, ...]:
        return tuple(EntityRef(EntityKind.ACCOUNT, a) for a in self.account_ids)


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar date range."""

    start: date
    end: date

    def __post_init__(self):
        object.__setattr__(self, "start", to_date(self.start))
        object.__setattr__(self, "end", to_date(self.end))
        if self.end < self.start:
            raise InvalidInputError(f"End date {self.end} is before start date {self.start}")

    def __contains__(self, d: date) -> bool:
        return self.start <= d <= self.end

    def days(self) -> Iterator[date]:
        d = self.start
        while d <= self.end:
            yield d
            d += timedelta(days=1)

    @property
    def length(self) -> int:
        return (self.end - self.start).days


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValuationPoint:
    """Close-of-day valuation of one entity in one reporting currency."""

    date: date
    total_value: Money
    securities_value: Money
    cash_value: Money
    income_for_day: Money
    entity: EntityRef
    reporting_currency: str

    def validate(self, tolerance: float = 0.01) -> "ValuationPoint":
        """Check currencies and total == securities + cash within tolerance."""
        for name in ("total_value", "securities_value", "cash_value", "income_for_day"):
            m = getattr(self, name)
            if m.currency != self.reporting_currency:
                raise CurrencyMismatchError(m.currency, self.reporting_currency, name)
        gap = abs(self.total_value.amount - (self.securities_value + self.cash_value).amount)
        if gap > to_decimal(tolerance):
            raise InvalidInputError(
                f"Valuation {self.entity} {self.date}: total {self.total_value} != "
                f"securities {self.securities_value} + cash {self.cash_value}"
            )
        return self

    @classmethod
    def of_total(cls, entity: EntityRef, on: date, total, currency: str,
                 cash=0) -> "ValuationPoint":
        """Build a point from a total and optional cash (securities = total - cash)."""
        total_m = Money(to_decimal(total), currency)
        cash_m = Money(to_decimal(cash), currency)
        return cls(
            date=to_date(on),
            total_value=total_m,
            securities_value=total_m - cash_m,
            cash_value=cash_m,
            income_for_day=Money.zero(currency),
            entity=entity,
            reporting_currency=currency,
        )


@dataclass(frozen=True)
class CashFlowEvent:
    """A dated cash movement. Sign convention is resolved by CashFlowClassifier."""

    date: date
    amount: Money
    kind: CashFlowKind
    entity: Optional[EntityRef] = None
    symbol: Optional[str] = None
    note: str = ""


@dataclass(frozen=True)
class Transaction:
    """A ledger transaction; amount is the gross value, costs are fees or withholding."""

    date: date
    kind: TransactionType
    symbol: str
    quantity: Decimal
    amount: Money
    costs: Optional[Money] = None
    account_id: str = ""

    def with_costs(self, costs: Money) -> "Transaction":
        return Transaction(self.date, self.kind, self.symbol, self.quantity,
                           self.amount, costs, self.account_id)


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DailyReturn:
    date: date
    entity: EntityRef
    reporting_currency: str
    value: Decimal

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "entity": self.entity.to_dict(),
            "reporting_currency": self.reporting_currency,
            "value": str(self.value),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DailyReturn":
        return cls(
            date=to_date(data["date"]),
            entity=EntityRef.from_dict(data["entity"]),
            reporting_currency=data["reporting_currency"],
            value=to_decimal(data["value"]),
        )


@dataclass(frozen=True)
class PeriodPerformance:
    start: date
    end: date
    reporting_currency: str
    method: ReturnMethod
    value: Decimal
    beginning_value: Money
    ending_value: Money
    net_flows: Money

    def to_dict(self) -> dict:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "reporting_currency": self.reporting_currency,
            "method": self.method.value,
            "value": str(self.value),
            "beginning_value": self.beginning_value.to_dict(),
            "ending_value": self.ending_value.to_dict(),
            "net_flows": self.net_flows.to_dict(),
        }


@dataclass(frozen=True)
class ContributionRecord:
    """First-order contribution: start_weight * value (no cross-term correction)."""

    start: date
    end: date
    reporting_currency: str
    level: ContributionLevel
    key: str
    start_weight: Decimal
    value: Decimal
    contribution: Decimal

    def to_dict(self) -> dict:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "reporting_currency": self.reporting_currency,
            "level": self.level.value,
            "key": self.key,
            "start_weight": str(self.start_weight),
            "value": str(self.value),
            "contribution": str(self.contribution),
        }


@dataclass(frozen=True)
class AllocationRecord:
    """Value of one asset class on a date and its share of the summed holdings."""

    date: date
    reporting_currency: str
    asset_class: str
    value: Money
    weight: Decimal

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "reporting_currency": self.reporting_currency,
            "asset_class": self.asset_class,
            "value": self.value.to_dict(),
            "weight": str(self.weight),
        }


@dataclass(frozen=True)
class RollingReturnSet:
    as_of: date
    r_1m: Decimal
    r_3m: Decimal
    r_6m: Decimal
    r_ytd: Decimal
    r_1y: Decimal
    r_3y: Decimal
    r_si: Decimal

    def as_rows(self) -> Dict[str, Decimal]:
        return {
            "1M": self.r_1m, "3M": self.r_3m, "6M": self.r_6m, "YTD": self.r_ytd,
            "1Y": self.r_1y, "3Y": self.r_3y, "SI": self.r_si,
        }

    def to_dict(self) -> dict:
        data = {k: str(v) for k, v in self.as_rows().items()}
        data["as_of"] = self.as_of.isoformat()
        return data


@dataclass(frozen=True)
class RiskCard:
    vol_annual: float
    max_drawdown: float
    peak_date: Optional[date]
    trough_date: Optional[date]
    sharpe: float
    hit_rate_daily: float
    correlation_to_benchmark: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "vol_annual": self.vol_annual,
            "max_drawdown": self.max_drawdown,
            "peak_date": self.peak_date.isoformat() if self.peak_date else None,
            "trough_date": self.trough_date.isoformat() if self.trough_date else None,
            "sharpe": self.sharpe,
            "hit_rate_daily": self.hit_rate_daily,
            "correlation_to_benchmark": self.correlation_to_benchmark,
        }


@dataclass(frozen=True)
class BenchmarkComponent:
    instrument: str
    weight: Decimal

    def __post_init__(self):
        object.__setattr__(self, "weight", to_decimal(self.weight))


@dataclass(frozen=True)
class BenchmarkDefinition:
    """Fixed target weights. Weights need not sum to 1; the residual is implied cash."""

    name: str
    reporting_currency: str
    components: Tuple[BenchmarkComponent, ...] = ()
    rebalance_policy: str = "Daily"

    def __post_init__(self):
        object.__setattr__(self, "components", tuple(self.components))

    @property
    def ref(self) -> EntityRef:
        return EntityRef(EntityKind.BENCHMARK, self.name)

    @property
    def total_weight(self) -> Decimal:
        return sum((c.weight for c in self.components), Decimal("0"))

    @property
    def cash_weight(self) -> Decimal:
        return Decimal("1") - self.total_weight


# Cost summary keys, in report order
COST_TYPES = (
    TransactionType.BUY,
    TransactionType.SELL,
    TransactionType.DIVIDEND,
    TransactionType.INTEREST,
)


@dataclass(frozen=True)
class TransactionCostSummary:
    """Trading costs and withholding per currency. Rates are fractions (0.001 = 0.10%)."""

    currency: str
    total_costs: Decimal
    counts_by_type: Dict[TransactionType, int] = field(default_factory=dict)
    costs_by_type: Dict[TransactionType, Decimal] = field(default_factory=dict)
    gross_by_type: Dict[TransactionType, Decimal] = field(default_factory=dict)

    def rate(self, kind: TransactionType) -> Decimal:
        gross = self.gross_by_type.get(kind, Decimal("0"))
        if gross == 0:
            return Decimal("0")
        return self.costs_by_type.get(kind, Decimal("0")) / gross

    @property
    def buy_cost_rate(self) -> Decimal:
        return self.rate(TransactionType.BUY)

    @property
    def sell_cost_rate(self) -> Decimal:
        return self.rate(TransactionType.SELL)

    @property
    def dividend_withholding_rate(self) -> Decimal:
        return self.rate(TransactionType.DIVIDEND)

    @property
    def interest_withholding_rate(self) -> Decimal:
        return self.rate(TransactionType.INTEREST)

    def to_dict(self) -> dict:
        return {
            "currency": self.currency,
            "total_costs": str(self.total_costs),
            "counts_by_type": {k.value: v for k, v in self.counts_by_type.items()},
            "costs_by_type": {k.value: str(v) for k, v in self.costs_by_type.items()},
            "gross_by_type": {k.value: str(v) for k, v in self.gross_by_type.items()},
        }


@dataclass(frozen=True)
class SecurityCostRecord:
    symbol: str
    currency: str
    kind: TransactionType
    count: int
    total_costs: Decimal
    gross: Decimal

    @property
    def rate(self) -> Decimal:
        if self.gross == 0:
            return Decimal("0")
        return self.total_costs / self.gross
