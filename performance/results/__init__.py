"""
Results — idempotent persistence of computed performance records.
"""
from performance.results.store import KINDS, ResultStore, result_key

__all__ = ["KINDS", "ResultStore", "result_key"]
