"""
Performance Desk — portfolio performance & risk analytics.

Modules:
- core: data model, errors, cash-flow classification, data-source protocols
- returns: daily TWR, linking, Modified Dietz, rolling windows
- benchmark: synthetic benchmark, relative performance, contribution attribution
- risk: volatility, drawdown, Sharpe, hit rate, correlation
- costs: transaction cost summaries and fee-schedule estimates
- results: idempotent JSON result store
- service: PerformanceService facade and batch runner
"""
from performance.service import BatchResult, PerformanceService

__all__ = ["BatchResult", "PerformanceService"]
