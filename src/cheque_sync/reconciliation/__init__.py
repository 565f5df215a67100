"""Cross-source cheque reconciliation."""

from .engine import (
    MatchedPair,
    ReconciliationResult,
    SourceSummary,
    cheques_match,
    reconcile_cheques,
)
from .service import ReconciliationService

__all__ = [
    "cheques_match",
    "reconcile_cheques",
    "ReconciliationResult",
    "SourceSummary",
    "MatchedPair",
    "ReconciliationService",
]
