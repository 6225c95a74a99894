"""
Risk — volatility, drawdown, Sharpe, hit rate, benchmark correlation.
"""
from performance.risk.engine import RiskEngine

__all__ = ["RiskEngine"]
