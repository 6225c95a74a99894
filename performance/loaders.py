"""
CSV loaders — materialise valuation series, flows, transactions and prices.

File layout under DATA_DIR:

    valuations/valuations.csv   entity_kind, entity_id, date, currency, total_value,
                                cash_value[, securities_value, income_for_day, level, key]
    ledger/flows.csv            entity_kind, entity_id, date, kind, amount, currency[, symbol, note]
    ledger/transactions.csv     account_id, date, kind, symbol, quantity, amount, currency
                                [, costs, costs_currency]
    ledger/portfolios.csv       id, owner, account_ids (";"-separated)
    ledger/asset_classes.csv    symbol, asset_class
    price/{SYMBOL}.csv          date, close

Valuation rows with a `key` are per-security / per-asset-class components of
the entity and feed attribution.
"""
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pandas as pd

from config.settings import DATA_DIR, LEDGER_DIR, VALUATION_DIR, VALUATION_TOLERANCE
from performance.core.cashflows import CashFlowClassifier
from performance.core.errors import InvalidInputError
from performance.core.schema import (
    CashFlowEvent,
    CashFlowKind,
    ContributionLevel,
    EntityKind,
    EntityRef,
    Money,
    Portfolio,
    Transaction,
    TransactionType,
    ValuationPoint,
    to_date,
    to_decimal,
)
from performance.core.sources import (
    InMemoryCashFlowSource,
    InMemoryPriceReturnSource,
    InMemoryValuationSource,
)

logger = logging.getLogger(__name__)

PRICE_DIR = DATA_DIR / "price"


def _read(path: Path, required: Iterable[str]) -> pd.DataFrame:
    """Read a CSV as strings; empty cells become ''."""
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    df.columns = [c.strip() for c in df.columns]
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise InvalidInputError(f"{path.name}: missing column(s) {', '.join(missing)}")
    return df


def _opt(row, column: str, default=""):
    value = row.get(column, default)
    return value if value != "" else default


def load_valuations(path: Optional[Path] = None, validate: bool = True) -> InMemoryValuationSource:
    """
    Load valuation points (and components) into an in-memory source.

    Args:
        path: CSV path, default VALUATION_DIR / "valuations.csv".
        validate: Check total == securities + cash on every row.
    """
    path = Path(path or VALUATION_DIR / "valuations.csv")
    source = InMemoryValuationSource()
    if not path.exists():
        logger.warning(f"No valuation file at {path}")
        return source

    df = _read(path, ("entity_kind", "entity_id", "date", "currency", "total_value"))
    components = 0
    for row in df.to_dict("records"):
        ccy = row["currency"].upper()
        entity = EntityRef(EntityKind(row["entity_kind"]), row["entity_id"])
        total = to_decimal(row["total_value"])
        cash = to_decimal(_opt(row, "cash_value", "0"))
        securities = to_decimal(_opt(row, "securities_value", str(total - cash)))
        point = ValuationPoint(
            date=to_date(row["date"]),
            total_value=Money(total, ccy),
            securities_value=Money(securities, ccy),
            cash_value=Money(cash, ccy),
            income_for_day=Money(to_decimal(_opt(row, "income_for_day", "0")), ccy),
            entity=entity,
            reporting_currency=ccy,
        )
        if validate:
            point.validate(VALUATION_TOLERANCE)

        key = _opt(row, "key")
        if key:
            level = ContributionLevel(_opt(row, "level", ContributionLevel.SECURITY.value))
            source.add_component(entity, level, key, point)
            components += 1
        else:
            source.add(point)

    logger.info(f"Loaded {len(df) - components} valuations and {components} components from {path}")
    return source


def load_portfolios(path: Optional[Path] = None) -> List[Portfolio]:
    path = Path(path or LEDGER_DIR / "portfolios.csv")
    if not path.exists():
        return []
    df = _read(path, ("id",))
    portfolios = []
    for row in df.to_dict("records"):
        accounts = tuple(a.strip() for a in _opt(row, "account_ids").split(";") if a.strip())
        portfolios.append(Portfolio(row["id"], _opt(row, "owner"), accounts))
    return portfolios


def load_asset_classes(path: Optional[Path] = None) -> Dict[str, str]:
    """{symbol: asset class} for allocation and asset-class attribution."""
    path = Path(path or LEDGER_DIR / "asset_classes.csv")
    if not path.exists():
        logger.info(f"No asset-class mapping at {path}, every symbol is unclassified")
        return {}
    df = _read(path, ("symbol", "asset_class"))
    return {row["symbol"].strip(): row["asset_class"].strip() for row in df.to_dict("records") if row["symbol"].strip()}


def load_flows(
    path: Optional[Path] = None,
    classifier: Optional[CashFlowClassifier] = None,
    portfolios: Optional[List[Portfolio]] = None,
) -> InMemoryCashFlowSource:
    """Load cash-flow events (any kind; the classifier filters external ones)."""
    path = Path(path or LEDGER_DIR / "flows.csv")
    source = InMemoryCashFlowSource(classifier, portfolios)
    if not path.exists():
        logger.warning(f"No flow file at {path}")
        return source

    df = _read(path, ("entity_kind", "entity_id", "date", "kind", "amount", "currency"))
    for row in df.to_dict("records"):
        entity = EntityRef(EntityKind(row["entity_kind"]), row["entity_id"])
        source.add(entity, CashFlowEvent(
            date=to_date(row["date"]),
            amount=Money(to_decimal(row["amount"]), row["currency"]),
            kind=CashFlowKind(row["kind"]),
            entity=entity,
            symbol=_opt(row, "symbol", None),
            note=_opt(row, "note"),
        ))
    logger.info(f"Loaded {len(df)} cash flows from {path}")
    return source


def load_transactions(path: Optional[Path] = None) -> List[Transaction]:
    path = Path(path or LEDGER_DIR / "transactions.csv")
    if not path.exists():
        logger.warning(f"No transaction file at {path}")
        return []

    df = _read(path, ("date", "kind", "symbol", "amount", "currency"))
    transactions = []
    for row in df.to_dict("records"):
        costs = None
        if _opt(row, "costs"):
            costs = Money(to_decimal(row["costs"]), _opt(row, "costs_currency", row["currency"]))
        transactions.append(Transaction(
            date=to_date(row["date"]),
            kind=TransactionType(row["kind"]),
            symbol=row["symbol"],
            quantity=to_decimal(_opt(row, "quantity", "0")),
            amount=Money(to_decimal(row["amount"]), row["currency"]),
            costs=costs,
            account_id=_opt(row, "account_id"),
        ))
    logger.info(f"Loaded {len(transactions)} transactions from {path}")
    return transactions


def load_price_returns(symbols: Iterable[str], price_dir: Optional[Path] = None) -> InMemoryPriceReturnSource:
    """Close-to-close daily returns per instrument from price/{SYMBOL}.csv."""
    price_dir = Path(price_dir or PRICE_DIR)
    source = InMemoryPriceReturnSource()
    for symbol in symbols:
        csv_path = price_dir / f"{symbol}.csv"
        if not csv_path.exists():
            logger.warning(f"No price data for {symbol}")
            continue
        df = pd.read_csv(csv_path, parse_dates=["date"])
        df = df.sort_values("date", ascending=True).reset_index(drop=True)
        closes = {ts.date(): float(close) for ts, close in zip(df["date"], df["close"])}
        source.add_prices(symbol, closes)
    return source
