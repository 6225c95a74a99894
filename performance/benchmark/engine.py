"""
Benchmark engine — synthetic daily-rebalanced benchmark and relative performance.

A benchmark is a set of fixed target weights over instruments. Each day the
weights are restored, so the benchmark's daily return is the weighted sum of
the component returns. Weights need not sum to 1; the residual is implied
cash earning 0.

Days on which any component return is missing are dropped rather than
partially computed.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd

from config.settings import ANNUALIZATION_FACTOR, SUPPORTED_REBALANCE_POLICIES
from performance.core.errors import InvalidInputError, UnsupportedRebalancePolicyError
from performance.core.schema import BenchmarkDefinition, DailyReturn, DateRange
from performance.core.sources import PriceReturnSource
from performance.risk.engine import RiskEngine

logger = logging.getLogger(__name__)


class BenchmarkEngine:
    """Build benchmark daily returns and compare them with a portfolio."""

    def __init__(self, annualization_factor: Optional[int] = None):
        self.annualization_factor = annualization_factor or ANNUALIZATION_FACTOR

    @staticmethod
    def validate(definition: BenchmarkDefinition) -> None:
        """
        Raises:
            UnsupportedRebalancePolicyError: policy other than Daily.
            InvalidInputError: a component has a negative weight.
        """
        if definition.rebalance_policy not in SUPPORTED_REBALANCE_POLICIES:
            raise UnsupportedRebalancePolicyError(definition.rebalance_policy, SUPPORTED_REBALANCE_POLICIES)
        for c in definition.components:
            if c.weight < 0:
                raise InvalidInputError(
                    f"Benchmark {definition.name}: negative weight {c.weight} for {c.instrument}"
                )
        if definition.total_weight > 1:
            logger.warning(
                f"Benchmark {definition.name}: weights sum to {definition.total_weight}, implies leverage"
            )

    def daily_returns(
        self,
        definition: BenchmarkDefinition,
        date_range: DateRange,
        source: PriceReturnSource,
    ) -> List[DailyReturn]:
        """
        Daily benchmark returns for days in (start, end], ascending.

        r_t = sum(w_i * r_i,t); a day with any absent component return is excluded.
        """
        self.validate(definition)
        ref = definition.ref
        results: List[DailyReturn] = []
        skipped: List[date] = []

        for d in date_range.days():
            if d == date_range.start:
                continue
            total = Decimal("0")
            complete = True
            for c in definition.components:
                r = source.get_daily_return(c.instrument, d)
                if r is None:
                    complete = False
                    break
                total += c.weight * r
            if not complete:
                skipped.append(d)
                continue
            results.append(DailyReturn(d, ref, definition.reporting_currency, total))

        if skipped:
            logger.debug(f"Benchmark {definition.name}: {len(skipped)} day(s) skipped for missing component returns")
        return results

    def relative_performance(
        self,
        portfolio: Iterable[DailyReturn],
        benchmark: Iterable[DailyReturn],
    ) -> dict:
        """
        Relative performance over the dates both series share.

        Returns:
            {
                "cumulative_portfolio": float,
                "cumulative_benchmark": float,
                "active_return": float,
                "tracking_error": float,
                "information_ratio": float,
                "max_drawdown_portfolio": float,
                "max_drawdown_benchmark": float,
                "win_rate": float,
                "trading_days": int,
            }
            or {"error": ...} when the series do not overlap.
        """
        aligned = pd.DataFrame({
            "portfolio": RiskEngine.to_series(portfolio),
            "benchmark": RiskEngine.to_series(benchmark),
        }).dropna()

        if aligned.empty:
            return {"error": "No overlapping dates between portfolio and benchmark"}

        port = aligned["portfolio"]
        bench = aligned["benchmark"]
        active = port - bench

        cum_port = (1 + port).cumprod().iloc[-1] - 1
        cum_bench = (1 + bench).cumprod().iloc[-1] - 1

        # Tracking error (annualized std of active returns)
        te = RiskEngine.sample_std(active) * np.sqrt(self.annualization_factor)

        ir = (active.mean() * self.annualization_factor) / te if te > 0 else 0.0

        return {
            "cumulative_portfolio": round(float(cum_port), 6),
            "cumulative_benchmark": round(float(cum_bench), 6),
            "active_return": round(float(cum_port - cum_bench), 6),
            "tracking_error": round(float(te), 6),
            "information_ratio": round(float(ir), 4),
            "max_drawdown_portfolio": round(RiskEngine.max_drawdown(port)[0], 6),
            "max_drawdown_benchmark": round(RiskEngine.max_drawdown(bench)[0], 6),
            "win_rate": round(float((active > 0).mean()), 4),
            "trading_days": len(aligned),
        }
