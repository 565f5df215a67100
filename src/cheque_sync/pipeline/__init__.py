"""
Ingestion pipeline.

observed response -> SourceListener (extract) -> save-cheques message
-> ChequePersistenceHandler (scoped active collection)
"""

from .handler import ChequePersistenceHandler
from .listener import ListenerStats, SourceListener
from .messages import SAVE_CHEQUES, MessageError, SaveChequesMessage
from .watcher import ChequeWatcher

__all__ = [
    "SAVE_CHEQUES",
    "SaveChequesMessage",
    "MessageError",
    "ChequePersistenceHandler",
    "SourceListener",
    "ListenerStats",
    "ChequeWatcher",
]
