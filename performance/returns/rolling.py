"""
Rolling windows and calendar buckets over a daily return series.

Windows end "as of" a date. A window whose nominal start predates the
series inception is clamped to inception rather than reported as undefined.
"""
import logging
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from performance.core.schema import DailyReturn, RollingReturnSet, to_date
from performance.returns.calculator import ReturnCalculator

logger = logging.getLogger(__name__)

# Trailing windows as calendar intervals (month-end clamped by DateOffset)
WINDOWS = {
    "1M": pd.DateOffset(months=1),
    "3M": pd.DateOffset(months=3),
    "6M": pd.DateOffset(months=6),
    "1Y": pd.DateOffset(years=1),
    "3Y": pd.DateOffset(years=3),
}


class RollingWindowEngine:
    """Trailing 1M/3M/6M/YTD/1Y/3Y/SI returns and month/year buckets."""

    def __init__(self, calculator: Optional[ReturnCalculator] = None):
        self.calculator = calculator or ReturnCalculator()

    @staticmethod
    def nominal_start(as_of: date, label: str) -> date:
        """as_of minus the window's calendar interval."""
        return (pd.Timestamp(as_of) - WINDOWS[label]).date()

    def first_day(self, as_of: date, label: str, inception: date) -> date:
        """
        First return date included in a window.

        Fixed windows cover (nominal_start, as_of]; if the nominal start is on
        or before inception the window is clamped to [inception, as_of].
        """
        if label == "SI":
            return inception
        if label == "YTD":
            return max(date(as_of.year, 1, 1), inception)
        nominal = self.nominal_start(as_of, label)
        if nominal <= inception:
            logger.debug(f"{label} window as of {as_of} clamped to inception {inception}")
            return inception
        return nominal + timedelta(days=1)

    def window_return(self, series: Iterable[DailyReturn], first_day: date, as_of: date) -> Decimal:
        if first_day > as_of:
            return Decimal("0")
        return self.calculator.link_between(series, first_day, as_of)

    def compute(self, series: Iterable[DailyReturn], as_of, inception) -> RollingReturnSet:
        """
        Standard trailing windows as of a date.

        Args:
            series: Daily returns of one entity (any order).
            as_of: Window end date.
            inception: First date of available history.
        """
        as_of, inception = to_date(as_of), to_date(inception)
        ordered = sorted(series, key=lambda r: r.date)

        def window(label: str) -> Decimal:
            return self.window_return(ordered, self.first_day(as_of, label, inception), as_of)

        return RollingReturnSet(
            as_of=as_of,
            r_1m=window("1M"),
            r_3m=window("3M"),
            r_6m=window("6M"),
            r_ytd=window("YTD"),
            r_1y=window("1Y"),
            r_3y=window("3Y"),
            r_si=window("SI"),
        )

    # -----------------------------------------------------------------------
    # Calendar buckets
    # -----------------------------------------------------------------------

    def calendar_months(self, series: Iterable[DailyReturn]) -> Dict[Tuple[int, int], Decimal]:
        """One linked return per (year, month), non-overlapping, in calendar order."""
        buckets: Dict[Tuple[int, int], List[Decimal]] = defaultdict(list)
        for r in sorted(series, key=lambda r: r.date):
            buckets[(r.date.year, r.date.month)].append(r.value)
        return {key: self.calculator.link(buckets[key]) for key in sorted(buckets)}

    def ytd_from_months(self, monthly: Dict[Tuple[int, int], Decimal], year: int, month: int) -> Decimal:
        """Link one year's monthly returns up to and including `month`."""
        return self.calculator.link(
            v for (y, m), v in sorted(monthly.items()) if y == year and m <= month
        )

    def calendar_years(self, series: Iterable[DailyReturn]) -> Dict[int, Decimal]:
        buckets: Dict[int, List[Decimal]] = defaultdict(list)
        for r in sorted(series, key=lambda r: r.date):
            buckets[r.date.year].append(r.value)
        return {year: self.calculator.link(buckets[year]) for year in sorted(buckets)}

    def monthly_table(self, series: Iterable[DailyReturn]) -> pd.DataFrame:
        """
        Year x month grid of linked returns (floats) with a YTD column.

        Months without data are NaN.
        """
        monthly = self.calendar_months(series)
        if not monthly:
            return pd.DataFrame(columns=list(range(1, 13)) + ["YTD"])

        rows = {}
        for (year, month), value in monthly.items():
            rows.setdefault(year, {})[month] = float(value)
        table = pd.DataFrame.from_dict(rows, orient="index").reindex(columns=range(1, 13))
        table["YTD"] = [
            float(self.ytd_from_months(monthly, year, 12)) for year in table.index
        ]
        table.index.name = "year"
        return table.sort_index()
