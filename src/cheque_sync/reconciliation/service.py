"""Collection reconciliation service.

Loads one collection, splits its rows by provenance and reconciles the two
requested sources against each other.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .engine import ReconciliationResult, reconcile_cheques

if TYPE_CHECKING:
    from ..config import Config
    from ..schemas.cheque import Cheque
    from ..state_store import CollectionRepository

logger = logging.getLogger(__name__)


class ReconciliationService:
    """Reconciles two sources stored in one collection."""

    def __init__(self, repository: CollectionRepository, config: Config) -> None:
        """Initialize the service.

        Args:
            repository: Collection repository to read rows from.
            config: Application configuration.
        """
        self.repository = repository
        self.config = config

    def _resolve_collection_id(self, collection_id: str | None) -> str:
        """Use the given collection, or the active one.

        Raises:
            NoActiveCollectionError: If no collection is given and none is active.
            CollectionNotFoundError: If the given collection does not exist.
        """
        from ..state_store import CollectionNotFoundError

        if collection_id is None:
            return self.repository.require_active().id
        if self.repository.get(collection_id) is None:
            raise CollectionNotFoundError(collection_id)
        return collection_id

    def load_by_source(self, collection_id: str | None = None) -> dict[str, list[Cheque]]:
        """Group a collection's cheques by provenance (row source, else cheque source)."""
        resolved = self._resolve_collection_id(collection_id)
        grouped: dict[str, list[Cheque]] = {}
        for row in self.repository.iter_rows(resolved):
            cheque = row.cheque
            grouped.setdefault(row.source or cheque.source, []).append(cheque)
        return grouped

    def sources(self, collection_id: str | None = None) -> list[str]:
        """List the provenance tags present in a collection."""
        return self.repository.sources(self._resolve_collection_id(collection_id))

    def reconcile(
        self,
        left_source: str | None = None,
        right_source: str | None = None,
        collection_id: str | None = None,
    ) -> ReconciliationResult:
        """Reconcile two sources of one collection.

        Args:
            left_source: Provenance of the left side (config default if None).
            right_source: Provenance of the right side (config default if None).
            collection_id: Collection to read (active collection if None).

        Returns:
            ReconciliationResult for the two sources.
        """
        recon = self.config.reconciliation
        left_source = left_source or recon.default_left_source
        right_source = right_source or recon.default_right_source

        grouped = self.load_by_source(collection_id)
        left = grouped.get(left_source, [])
        right = grouped.get(right_source, [])
        if not left and not right:
            logger.warning(f"No cheques from {left_source} or {right_source} in collection")

        return reconcile_cheques(
            left,
            right,
            recon,
            left_source=left_source,
            right_source=right_source,
        )
