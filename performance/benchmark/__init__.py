"""
Benchmark — synthetic benchmark returns, relative performance, contribution attribution.
"""
from performance.benchmark.engine import BenchmarkEngine
from performance.benchmark.attribution import AttributionEngine

__all__ = ["BenchmarkEngine", "AttributionEngine"]
