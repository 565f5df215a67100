"""
Schemas shared across the pipeline.

Provides:
- Cheque: canonical cheque record
- parse_amount / format_amount_ru: ru-RU amount handling
- natural_key / dedupe_batch: batch-level deduplication
"""

from .amounts import format_amount_ru, parse_amount
from .cheque import Cheque, ChequeSource
from .dedupe import dedupe_batch, natural_key

__all__ = [
    "Cheque",
    "ChequeSource",
    "parse_amount",
    "format_amount_ru",
    "natural_key",
    "dedupe_batch",
]
