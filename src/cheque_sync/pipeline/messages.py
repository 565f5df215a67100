"""
Messages passed from extraction to persistence.

The wire shape is a plain dict so it can cross process or thread
boundaries unchanged:

    {"type": "save-cheques", "rows": [...], "meta": {"source": "PlatformaOFD"}}
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..schemas.cheque import Cheque

SAVE_CHEQUES = "save-cheques"


class MessageError(ValueError):
    """Raised when a message does not have the expected shape."""

    pass


@dataclass
class SaveChequesMessage:
    """Request to append extracted cheques to the active collection."""

    rows: list[dict[str, Any]] = field(default_factory=list)
    source: str | None = None
    type: str = SAVE_CHEQUES

    @classmethod
    def from_cheques(cls, cheques: list[Cheque], source: str) -> "SaveChequesMessage":
        return cls(rows=[cheque.to_dict() for cheque in cheques], source=source)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire shape."""
        return {
            "type": self.type,
            "rows": [dict(row) for row in self.rows],
            "meta": {"source": self.source},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SaveChequesMessage":
        """
        Parse the wire shape.

        Raises:
            MessageError: If type, rows or meta are malformed
        """
        if not isinstance(data, Mapping):
            raise MessageError("Message must be an object")
        if data.get("type") != SAVE_CHEQUES:
            raise MessageError(f"Unexpected message type: {data.get('type')!r}")

        rows = data.get("rows", [])
        if not isinstance(rows, list):
            raise MessageError("rows must be a list")
        for index, row in enumerate(rows):
            if not isinstance(row, Mapping):
                raise MessageError(f"rows[{index}] must be an object")

        meta = data.get("meta")
        if meta is None:
            meta = {}
        if not isinstance(meta, Mapping):
            raise MessageError("meta must be an object")
        source = meta.get("source")
        if source is not None and not isinstance(source, str):
            raise MessageError("meta.source must be a string")

        return cls(rows=[dict(row) for row in rows], source=source or None)
