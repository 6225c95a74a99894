"""
Performance report — markdown summary of one entity's results.

Sections:
- Trailing returns (1M .. SI)
- Calendar-month table with YTD
- Risk card (and relative performance when a benchmark is given)
- Contribution by security / asset class
- Asset-class allocation on the end date
- Transaction costs by currency
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional

import pandas as pd

from performance.core.schema import (
    COST_TYPES,
    AllocationRecord,
    ContributionRecord,
    EntityRef,
    RiskCard,
    RollingReturnSet,
    TransactionCostSummary,
)

logger = logging.getLogger(__name__)

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def _pct(value, digits: int = 2) -> str:
    if value is None:
        return "n/a"
    return f"{float(value) * 100:+.{digits}f}%"


def _date(value) -> str:
    return value.isoformat() if value else "-"


def rolling_section(rolling: RollingReturnSet) -> List[str]:
    rows = rolling.as_rows()
    lines = [f"## Trailing Returns (as of {rolling.as_of.isoformat()})", ""]
    lines.append("| " + " | ".join(rows) + " |")
    lines.append("|" + "|".join("-----:" for _ in rows) + "|")
    lines.append("| " + " | ".join(_pct(v) for v in rows.values()) + " |")
    lines.append("")
    return lines


def monthly_section(table: pd.DataFrame) -> List[str]:
    lines = ["## Monthly Returns", ""]
    if table.empty:
        lines.append("No return history.")
        lines.append("")
        return lines

    lines.append("| Year | " + " | ".join(_MONTHS) + " | YTD |")
    lines.append("|------|" + "|".join("----:" for _ in range(13)) + "|")
    for year, row in table.iterrows():
        cells = []
        for month in range(1, 13):
            value = row.get(month)
            cells.append("" if pd.isna(value) else _pct(value, 1))
        cells.append(_pct(row["YTD"], 1))
        lines.append(f"| {year} | " + " | ".join(cells) + " |")
    lines.append("")
    return lines


def risk_section(card: RiskCard, relative: Optional[dict] = None) -> List[str]:
    lines = ["## Risk", ""]
    lines.append(f"- **Volatility (ann.)**: {_pct(card.vol_annual)}")
    lines.append(
        f"- **Max Drawdown**: {_pct(card.max_drawdown)} "
        f"(peak {_date(card.peak_date)}, trough {_date(card.trough_date)})"
    )
    lines.append(f"- **Sharpe (rf=0)**: {card.sharpe:.2f}")
    lines.append(f"- **Hit Rate**: {card.hit_rate_daily * 100:.1f}%")
    if card.correlation_to_benchmark is not None:
        lines.append(f"- **Correlation to Benchmark**: {card.correlation_to_benchmark:.2f}")
    lines.append("")

    if relative and "error" not in relative:
        lines.append("### vs Benchmark")
        lines.append("")
        lines.append("| Metric | Value |")
        lines.append("|--------|------:|")
        lines.append(f"| Portfolio | {_pct(relative['cumulative_portfolio'])} |")
        lines.append(f"| Benchmark | {_pct(relative['cumulative_benchmark'])} |")
        lines.append(f"| Active Return | {_pct(relative['active_return'])} |")
        lines.append(f"| Tracking Error | {_pct(relative['tracking_error'])} |")
        lines.append(f"| Information Ratio | {relative['information_ratio']:.2f} |")
        lines.append(f"| Win Rate | {relative['win_rate'] * 100:.1f}% |")
        lines.append(f"| Days | {relative['trading_days']} |")
        lines.append("")
    return lines


def contribution_section(records: List[ContributionRecord], total_return: Optional[Decimal] = None) -> List[str]:
    lines = ["## Contribution", ""]
    if not records:
        lines.append("No contribution data.")
        lines.append("")
        return lines

    lines.append("| Key | Weight | Return | Contribution |")
    lines.append("|-----|-------:|-------:|-------------:|")
    for r in records:
        lines.append(
            f"| {r.key} | {float(r.start_weight) * 100:.1f}% | "
            f"{_pct(r.value)} | {_pct(r.contribution)} |"
        )
    total = sum((r.contribution for r in records), Decimal("0"))
    lines.append(f"| **Sum** | | | **{_pct(total)}** |")
    lines.append("")
    if total_return is not None:
        lines.append(f"Residual vs total return: {_pct(total_return - total, 3)} (weight drift, not corrected)")
        lines.append("")
    return lines


def allocation_section(records: List[AllocationRecord]) -> List[str]:
    lines = ["## Asset Allocation", ""]
    if not records:
        lines.append("No holdings data.")
        lines.append("")
        return lines

    lines.append(f"*As of {_date(records[0].date)}*")
    lines.append("")
    lines.append("| Asset Class | Value | Weight |")
    lines.append("|-------------|------:|-------:|")
    for r in records:
        lines.append(f"| {r.asset_class} | {r.value.amount:,.2f} | {float(r.weight) * 100:.1f}% |")
    lines.append("")
    return lines


def costs_section(summaries: List[TransactionCostSummary]) -> List[str]:
    lines = ["## Transaction Costs", ""]
    if not summaries:
        lines.append("No cost-bearing transactions.")
        lines.append("")
        return lines

    lines.append("| Currency | Type | Count | Gross | Costs | Rate |")
    lines.append("|----------|------|------:|------:|------:|-----:|")
    for s in summaries:
        for kind in COST_TYPES:
            count = s.counts_by_type.get(kind, 0)
            if not count:
                continue
            lines.append(
                f"| {s.currency} | {kind.value} | {count} | "
                f"{s.gross_by_type.get(kind, 0):,.2f} | {s.costs_by_type.get(kind, 0):,.2f} | "
                f"{float(s.rate(kind)) * 100:.2f}% |"
            )
    lines.append("")
    return lines


def generate_report(
    entity: EntityRef,
    reporting_currency: str,
    rolling: Optional[RollingReturnSet] = None,
    monthly: Optional[pd.DataFrame] = None,
    risk: Optional[RiskCard] = None,
    relative: Optional[dict] = None,
    contributions: Optional[Iterable[ContributionRecord]] = None,
    total_return: Optional[Decimal] = None,
    costs: Optional[Iterable[TransactionCostSummary]] = None,
    allocation: Optional[Iterable[AllocationRecord]] = None,
) -> str:
    """Assemble the sections that have data into one markdown document."""
    today = datetime.now().strftime("%Y-%m-%d")
    lines = [f"# Performance Report: {entity} ({reporting_currency})", "", f"*Generated {today}*", ""]

    if rolling is not None:
        lines.extend(rolling_section(rolling))
    if monthly is not None:
        lines.extend(monthly_section(monthly))
    if risk is not None:
        lines.extend(risk_section(risk, relative))
    if contributions is not None:
        lines.extend(contribution_section(list(contributions), total_return))
    if allocation is not None:
        lines.extend(allocation_section(list(allocation)))
    if costs is not None:
        lines.extend(costs_section(list(costs)))

    return "\n".join(lines)
