"""
Costs — transaction cost summaries and fee-schedule estimates.
"""
from performance.costs.summary import CostSummaryEngine
from performance.costs.model import BuySellRule, TradeCostModel

__all__ = ["CostSummaryEngine", "BuySellRule", "TradeCostModel"]
