"""
Error taxonomy for the performance engine.

Only malformed input raises. "No data" conditions (missing valuation,
zero denominators, short history) resolve to documented fallbacks.
"""


class PerformanceError(Exception):
    """Base class for all performance engine errors."""
    pass


class InvalidInputError(PerformanceError, ValueError):
    """Raised for malformed input: bad dates, negative weights, bad currency codes."""
    pass


class CurrencyMismatchError(InvalidInputError):
    """Raised when Money values of different currencies meet without FX conversion."""

    def __init__(self, left: str, right: str, context: str = ""):
        self.left = left
        self.right = right
        msg = f"Currency mismatch: {left} vs {right}"
        if context:
            msg = f"{msg} ({context})"
        super().__init__(msg)


class UnsupportedRebalancePolicyError(InvalidInputError):
    """Raised when a benchmark asks for a rebalance policy the engine does not model."""

    def __init__(self, policy: str, supported: tuple):
        self.policy = policy
        super().__init__(
            f"Unsupported rebalance policy '{policy}'. Supported: {', '.join(supported)}"
        )


class CalculationCancelled(PerformanceError):
    """Raised inside a batch when the cancellation signal is set."""
    pass
