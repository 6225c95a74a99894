"""Tests for performance/returns/rolling.py — trailing windows and calendar buckets."""
import sys
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path

import pandas as pd
import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from performance.core.schema import DailyReturn, EntityKind, EntityRef
from performance.returns.rolling import RollingWindowEngine

ACCT = EntityRef(EntityKind.ACCOUNT, "A1")


def _series(start: date, end: date, value="0.001"):
    """Constant daily return for every calendar day in [start, end]."""
    out = []
    d = start
    while d <= end:
        out.append(DailyReturn(d, ACCT, "CAD", Decimal(value)))
        d += timedelta(days=1)
    return out


def _growth(days: int, r: float = 0.001) -> float:
    return (1 + r) ** days - 1


@pytest.fixture
def engine():
    return RollingWindowEngine()


class TestWindowBounds:
    def test_month_end_is_clamped(self, engine):
        assert engine.nominal_start(date(2025, 3, 31), "1M") == date(2025, 2, 28)

    def test_fixed_window_excludes_nominal_start(self, engine):
        assert engine.first_day(date(2025, 3, 31), "1M", date(2020, 1, 1)) == date(2025, 3, 1)

    def test_short_history_is_clamped_to_inception(self, engine):
        assert engine.first_day(date(2025, 3, 31), "3M", date(2025, 3, 15)) == date(2025, 3, 15)

    def test_nominal_start_on_inception_keeps_inception_day(self, engine):
        assert engine.first_day(date(2025, 3, 31), "1M", date(2025, 2, 28)) == date(2025, 2, 28)

    def test_ytd_starts_january_first(self, engine):
        assert engine.first_day(date(2025, 3, 31), "YTD", date(2024, 6, 1)) == date(2025, 1, 1)

    def test_ytd_clamped_to_inception(self, engine):
        assert engine.first_day(date(2025, 3, 31), "YTD", date(2025, 2, 10)) == date(2025, 2, 10)


class TestCompute:
    def test_trailing_windows(self, engine):
        series = _series(date(2025, 1, 2), date(2025, 3, 31))
        result = engine.compute(series, "2025-03-31", "2025-01-01")

        assert result.as_of == date(2025, 3, 31)
        assert float(result.r_1m) == pytest.approx(_growth(31))
        assert float(result.r_3m) == pytest.approx(_growth(89))
        assert float(result.r_si) == pytest.approx(_growth(89))
        assert result.r_1y == result.r_si
        assert result.r_3y == result.r_si
        assert result.r_ytd == result.r_si

    def test_window_starting_on_inception_covers_full_history(self, engine):
        series = _series(date(2025, 2, 28), date(2025, 3, 31))
        result = engine.compute(series, date(2025, 3, 31), date(2025, 2, 28))
        assert result.r_1m == result.r_si
        assert float(result.r_1m) == pytest.approx(_growth(32))

    def test_series_order_does_not_matter(self, engine):
        series = _series(date(2025, 1, 2), date(2025, 2, 28))
        forward = engine.compute(series, date(2025, 2, 28), date(2025, 1, 1))
        backward = engine.compute(list(reversed(series)), date(2025, 2, 28), date(2025, 1, 1))
        assert forward == backward

    def test_empty_series_gives_zero(self, engine):
        result = engine.compute([], date(2025, 3, 31), date(2025, 1, 1))
        assert all(v == Decimal("0") for v in result.as_rows().values())

    def test_as_rows_order(self, engine):
        result = engine.compute([], date(2025, 3, 31), date(2025, 1, 1))
        assert list(result.as_rows()) == ["1M", "3M", "6M", "YTD", "1Y", "3Y", "SI"]


class TestCalendarBuckets:
    def test_calendar_months(self, engine):
        monthly = engine.calendar_months(_series(date(2025, 1, 2), date(2025, 3, 31)))
        assert list(monthly) == [(2025, 1), (2025, 2), (2025, 3)]
        assert float(monthly[(2025, 1)]) == pytest.approx(_growth(30))
        assert float(monthly[(2025, 2)]) == pytest.approx(_growth(28))

    def test_ytd_from_months_links_buckets(self, engine):
        monthly = engine.calendar_months(_series(date(2025, 1, 2), date(2025, 3, 31)))
        assert float(engine.ytd_from_months(monthly, 2025, 2)) == pytest.approx(_growth(58))

    def test_calendar_years(self, engine):
        years = engine.calendar_years(_series(date(2024, 12, 30), date(2025, 1, 2)))
        assert list(years) == [2024, 2025]
        assert float(years[2024]) == pytest.approx(_growth(2))

    def test_monthly_table(self, engine):
        table = engine.monthly_table(_series(date(2025, 1, 2), date(2025, 3, 31)))
        assert list(table.index) == [2025]
        assert list(table.columns) == list(range(1, 13)) + ["YTD"]
        assert table.loc[2025, 1] == pytest.approx(_growth(30))
        assert pd.isna(table.loc[2025, 4])
        assert table.loc[2025, "YTD"] == pytest.approx(_growth(89))

    def test_monthly_table_empty(self, engine):
        assert engine.monthly_table([]).empty
