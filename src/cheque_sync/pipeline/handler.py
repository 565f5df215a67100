"""
Persistence side of the pipeline.

Receives save-cheques messages and appends their rows to the scoped active
collection, creating that collection on first use.
"""

import logging
from collections.abc import Mapping
from typing import Any

from ..state_store import CollectionRepository
from .messages import SAVE_CHEQUES, SaveChequesMessage

logger = logging.getLogger(__name__)


class ChequePersistenceHandler:
    """Stores the rows of save-cheques messages."""

    def __init__(self, repository: CollectionRepository, name_base: str = "Receipts"):
        self.repository = repository
        self.name_base = name_base

    def handle(self, message: SaveChequesMessage | Mapping[str, Any]) -> int | None:
        """
        Handle one message.

        Returns:
            Number of rows inserted, or None for messages of another type

        Raises:
            MessageError: If a save-cheques message is malformed
        """
        if not isinstance(message, SaveChequesMessage):
            if not isinstance(message, Mapping) or message.get("type") != SAVE_CHEQUES:
                return None
            message = SaveChequesMessage.from_dict(message)

        collection = self.repository.ensure_scoped(self.name_base)
        if not message.rows:
            return 0

        inserted = self.repository.add_rows(collection.id, message.rows, source=message.source)
        logger.info(f"Saved {inserted} cheques from {message.source or 'unknown'} to {collection.name}")
        return inserted
