"""
Risk engine — volatility, max drawdown, approximate Sharpe, hit rate, correlation.

Works on a daily return series. Statistics run in pandas on float copies of
the Decimal returns; the linked return used for Sharpe stays Decimal until
the final division.
"""
import logging
import math
from datetime import date
from typing import Iterable, Optional, Tuple

import numpy as np
import pandas as pd

from config.settings import ANNUALIZATION_FACTOR
from performance.core.schema import DailyReturn, RiskCard
from performance.returns.calculator import ReturnCalculator

logger = logging.getLogger(__name__)

# sample std below this is float rounding noise of a constant series
FLAT_STD_TOLERANCE = 1e-12


class RiskEngine:
    """Summarise the risk of a daily return series into a RiskCard."""

    def __init__(self, annualization_factor: Optional[int] = None,
                 calculator: Optional[ReturnCalculator] = None):
        self.annualization_factor = annualization_factor or ANNUALIZATION_FACTOR
        self.calculator = calculator or ReturnCalculator()

    def compute(
        self,
        series: Iterable[DailyReturn],
        benchmark: Optional[Iterable[DailyReturn]] = None,
    ) -> RiskCard:
        """
        Build the risk card.

        Args:
            series: Portfolio daily returns.
            benchmark: Optional benchmark daily returns, joined by date.

        Returns:
            RiskCard; an empty series gives all-zero metrics and no dates.
        """
        series = sorted(series, key=lambda r: r.date)
        if not series:
            return RiskCard(0.0, 0.0, None, None, 0.0, 0.0, None)

        returns = self.to_series(series)
        vol = self.volatility(returns)
        linked = float(self.calculator.link(r.value for r in series))
        mdd, peak, trough = self.max_drawdown(returns)

        corr = None
        if benchmark is not None:
            corr = self.correlation(returns, self.to_series(benchmark))

        return RiskCard(
            vol_annual=vol,
            max_drawdown=mdd,
            peak_date=peak,
            trough_date=trough,
            sharpe=self.sharpe(linked, vol),
            hit_rate_daily=self.hit_rate(returns),
            correlation_to_benchmark=corr,
        )

    # -----------------------------------------------------------------------
    # Metrics
    # -----------------------------------------------------------------------

    @staticmethod
    def to_series(series: Iterable[DailyReturn]) -> pd.Series:
        """Float return series indexed by date, ascending."""
        data = {r.date: float(r.value) for r in series}
        return pd.Series(data, dtype=float).sort_index()

    @staticmethod
    def sample_std(returns: pd.Series) -> float:
        """
        Sample standard deviation (ddof=1).

        0 for fewer than 2 points, and for a constant series whose float std
        is only rounding noise.
        """
        if len(returns) < 2:
            return 0.0
        std = returns.std(ddof=1)
        if pd.isna(std) or np.isclose(std, 0.0, rtol=0.0, atol=FLAT_STD_TOLERANCE):
            return 0.0
        return float(std)

    def volatility(self, returns: pd.Series) -> float:
        """Annualised sample standard deviation. Fewer than 2 points gives 0."""
        return self.sample_std(returns) * math.sqrt(self.annualization_factor)

    @staticmethod
    def max_drawdown(returns: pd.Series) -> Tuple[float, Optional[date], Optional[date]]:
        """
        Worst peak-to-trough decline of the wealth index W_0 = 1, W_t = W_{t-1} (1 + r_t).

        Returns:
            (max_drawdown <= 0, peak_date, trough_date). peak_date is the running
            maximum just before the trough, None when that maximum is W_0.
        """
        if returns.empty:
            return 0.0, None, None

        wealth = (1 + returns).cumprod()
        running_max = wealth.cummax().clip(lower=1.0)
        drawdown = wealth / running_max - 1
        mdd = float(drawdown.min())
        if mdd >= 0:
            return 0.0, None, None

        pos = int(np.argmin(drawdown.values))
        trough = wealth.index[pos]
        prior = wealth.iloc[: pos + 1]
        peak_value = prior.max()
        peak = None
        if peak_value > 1.0:
            peak = prior[prior == peak_value].index[-1]
        return max(mdd, -1.0), peak, trough

    @staticmethod
    def sharpe(linked_return: float, vol_annual: float) -> float:
        """Risk-free assumed 0. Zero volatility gives 0."""
        if vol_annual == 0:
            return 0.0
        return linked_return / vol_annual

    @staticmethod
    def hit_rate(returns: pd.Series) -> float:
        if returns.empty:
            return 0.0
        return float((returns > 0).sum()) / len(returns)

    @staticmethod
    def correlation(portfolio: pd.Series, benchmark: pd.Series) -> Optional[float]:
        """
        Pearson correlation over dates present in both series.

        None with fewer than 2 overlapping points; 0 when either side is flat.
        """
        aligned = pd.concat(
            [portfolio.rename("portfolio"), benchmark.rename("benchmark")],
            axis=1,
            join="inner",
        ).dropna()
        if len(aligned) < 2:
            return None
        if RiskEngine.sample_std(aligned["portfolio"]) == 0 \
                or RiskEngine.sample_std(aligned["benchmark"]) == 0:
            return 0.0
        return float(aligned["portfolio"].corr(aligned["benchmark"]))
