"""
Core — data model, error taxonomy, cash-flow classification, collaborator protocols.
"""
from performance.core.errors import (
    PerformanceError,
    InvalidInputError,
    CurrencyMismatchError,
    UnsupportedRebalancePolicyError,
    CalculationCancelled,
)
from performance.core.schema import (
    Money,
    EntityKind,
    EntityRef,
    Portfolio,
    DateRange,
    CashFlowKind,
    CashFlowEvent,
    TransactionType,
    Transaction,
    ValuationPoint,
    DailyReturn,
    ReturnMethod,
    PeriodPerformance,
    ContributionLevel,
    ContributionRecord,
    AllocationRecord,
    RollingReturnSet,
    RiskCard,
    BenchmarkComponent,
    BenchmarkDefinition,
    TransactionCostSummary,
    SecurityCostRecord,
)
from performance.core.cashflows import CashFlowClassifier

__all__ = [
    "PerformanceError",
    "InvalidInputError",
    "CurrencyMismatchError",
    "UnsupportedRebalancePolicyError",
    "CalculationCancelled",
    "Money",
    "EntityKind",
    "EntityRef",
    "Portfolio",
    "DateRange",
    "CashFlowKind",
    "CashFlowEvent",
    "TransactionType",
    "Transaction",
    "ValuationPoint",
    "DailyReturn",
    "ReturnMethod",
    "PeriodPerformance",
    "ContributionLevel",
    "ContributionRecord",
    "AllocationRecord",
    "RollingReturnSet",
    "RiskCard",
    "BenchmarkComponent",
    "BenchmarkDefinition",
    "TransactionCostSummary",
    "SecurityCostRecord",
    "CashFlowClassifier",
]
