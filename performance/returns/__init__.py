"""
Returns — daily TWR, linking, Modified Dietz, rolling windows.

- ReturnCalculator: daily returns from valuations + external flows, linking, Modified Dietz
- RollingWindowEngine: 1M/3M/6M/YTD/1Y/3Y/SI windows and calendar-month buckets
"""
from performance.returns.calculator import ReturnCalculator
from performance.returns.rolling import RollingWindowEngine, WINDOWS

__all__ = ["ReturnCalculator", "RollingWindowEngine", "WINDOWS"]
