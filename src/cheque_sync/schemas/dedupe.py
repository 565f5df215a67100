"""
Natural key derivation and batch-level deduplication.

The natural key is the business identifier of a record (never the storage
row id). Deduplication only happens inside a single ingest batch; rows from
separate batches are never compared here.
"""

from collections.abc import Iterable, Mapping
from typing import Any

# Keys consulted (in order) to find the natural key of a row
NATURAL_KEY_FIELDS = ("key", "id")


def natural_key(data: Mapping[str, Any]) -> str | None:
    """
    Derive the natural key of a row.

    Uses data["key"], falling back to data["id"]. Only non-empty strings
    count: a cheque whose identifier could not be extracted has no key.
    """
    for name in NATURAL_KEY_FIELDS:
        value = data.get(name)
        if isinstance(value, str) and value.strip():
            return value
    return None


def dedupe_batch(rows: Iterable[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    """
    Deduplicate one batch by natural key.

    The last row for a key wins and takes the position of the first
    occurrence. Rows without a key are always kept.
    """
    deduped: dict[tuple[str, Any], Mapping[str, Any]] = {}
    for index, row in enumerate(rows):
        key = natural_key(row)
        slot = ("key", key) if key is not None else ("row", index)
        deduped[slot] = row
    return list(deduped.values())
