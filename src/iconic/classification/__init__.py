"""Rule memory, oracle adapters and the batched analysis orchestrator."""

from .cancellation import CancellationToken
from .errors import (
    AnalysisError,
    AnalysisInProgressError,
    MissingCredentialError,
    OracleError,
    OracleRateLimitError,
    OracleResponseError,
)
from .memory import CONFIDENCE_THRESHOLD, RuleMemory
from .oracle import (
    CategorySuggester,
    ClassificationOracle,
    RetryPolicy,
    call_with_retry,
    clean_json,
    validate_assignments,
)
from .orchestrator import AnalysisOrchestrator, AnalysisReport, AnalysisState

__all__ = [
    "AnalysisError",
    "AnalysisInProgressError",
    "AnalysisOrchestrator",
    "AnalysisReport",
    "AnalysisState",
    "CONFIDENCE_THRESHOLD",
    "CancellationToken",
    "CategorySuggester",
    "ClassificationOracle",
    "MissingCredentialError",
    "OracleError",
    "OracleRateLimitError",
    "OracleResponseError",
    "RetryPolicy",
    "RuleMemory",
    "call_with_retry",
    "clean_json",
    "validate_assignments",
]
