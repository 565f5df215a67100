"""Reconciliation engine for comparing cheques collected from two sources.

Two cheques describe the same sale when they come from different sources
and agree on date, amount (numerically), shift, sign and payment type. The
sale number is not compared: sources number sales differently.

Matching is greedy and single-pass: each left cheque takes the first
remaining right cheque it matches, and that right cheque is consumed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from ..schemas.amounts import ZERO, parse_amount
from ..schemas.cheque import Cheque

if TYPE_CHECKING:
    from ..config import ReconciliationConfig

logger = logging.getLogger(__name__)


def cheques_match(a: Cheque, b: Cheque) -> bool:
    """Check whether two cheques from different sources describe the same sale."""
    return (
        a.source != b.source
        and a.date == b.date
        and parse_amount(a.amount) == parse_amount(b.amount)
        and a.shift == b.shift
        and a.sign == b.sign
        and a.payment_type == b.payment_type
    )


@dataclass
class SourceSummary:
    """Aggregates over one side of a reconciliation."""

    source: str
    card: Decimal = ZERO
    cash: Decimal = ZERO
    total: Decimal = ZERO
    count: int = 0

    @classmethod
    def build(
        cls,
        source: str,
        cheques: Iterable[Cheque],
        card_labels: Iterable[str],
        cash_labels: Iterable[str],
    ) -> SourceSummary:
        """Sum amounts by payment channel."""
        card_set = set(card_labels)
        cash_set = set(cash_labels)
        summary = cls(source=source)
        for cheque in cheques:
            amount = parse_amount(cheque.amount)
            summary.total += amount
            summary.count += 1
            if cheque.payment_type in card_set:
                summary.card += amount
            elif cheque.payment_type in cash_set:
                summary.cash += amount
        return summary

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization (amounts as strings)."""
        return {
            "source": self.source,
            "card": str(self.card),
            "cash": str(self.cash),
            "total": str(self.total),
            "count": self.count,
        }


@dataclass
class MatchedPair:
    """A left cheque and the right cheque it was matched with."""

    left: Cheque
    right: Cheque


@dataclass
class ReconciliationResult:
    """Outcome of reconciling two cheque lists."""

    left_source: str
    right_source: str
    matched: list[MatchedPair] = field(default_factory=list)
    unmatched_left: list[Cheque] = field(default_factory=list)
    unmatched_right: list[Cheque] = field(default_factory=list)
    left_summary: SourceSummary | None = None
    right_summary: SourceSummary | None = None

    @property
    def diff(self) -> list[Cheque]:
        """Cheques without a counterpart: left ones first, then right ones."""
        return [*self.unmatched_left, *self.unmatched_right]

    @property
    def is_balanced(self) -> bool:
        """Return True if every cheque found a counterpart."""
        return not self.unmatched_left and not self.unmatched_right

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "left_source": self.left_source,
            "right_source": self.right_source,
            "matched": [
                {"left": pair.left.to_dict(), "right": pair.right.to_dict()}
                for pair in self.matched
            ],
            "diff": [cheque.to_dict() for cheque in self.diff],
            "unmatched_left": len(self.unmatched_left),
            "unmatched_right": len(self.unmatched_right),
            "left_summary": self.left_summary.to_dict() if self.left_summary else None,
            "right_summary": self.right_summary.to_dict() if self.right_summary else None,
        }


def reconcile_cheques(
    left: Iterable[Cheque],
    right: Iterable[Cheque],
    config: ReconciliationConfig | None = None,
    left_source: str | None = None,
    right_source: str | None = None,
) -> ReconciliationResult:
    """Reconcile two cheque lists.

    Args:
        left: Cheques of the first source (scanned in order).
        right: Cheques of the second source (matched greedily).
        config: Payment-type labels for the summaries (defaults when None).
        left_source: Label for the left side (first cheque's source if omitted).
        right_source: Label for the right side (first cheque's source if omitted).

    Returns:
        ReconciliationResult with matches, diff and per-source summaries.
    """
    if config is None:
        from ..config import ReconciliationConfig

        config = ReconciliationConfig()

    left = list(left)
    right = list(right)
    left_source = left_source or (left[0].source if left else "")
    right_source = right_source or (right[0].source if right else "")

    result = ReconciliationResult(left_source=left_source, right_source=right_source)
    remaining = list(right)

    for cheque in left:
        for index, candidate in enumerate(remaining):
            if cheques_match(cheque, candidate):
                result.matched.append(MatchedPair(left=cheque, right=candidate))
                del remaining[index]
                break
        else:
            result.unmatched_left.append(cheque)

    result.unmatched_right = remaining
    result.left_summary = SourceSummary.build(
        left_source, left, config.card_labels, config.cash_labels
    )
    result.right_summary = SourceSummary.build(
        right_source, right, config.card_labels, config.cash_labels
    )

    logger.info(
        f"Reconciled {left_source or '?'} ({len(left)}) vs {right_source or '?'} "
        f"({len(right)}): {len(result.matched)} matched, {len(result.diff)} in diff"
    )
    return result
