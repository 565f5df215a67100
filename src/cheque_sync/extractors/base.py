"""
Base extractor interface and common types.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from ..schemas.cheque import Cheque


@dataclass
class ExtractionResult:
    """Result from an extraction attempt."""

    cheques: list[Cheque] = field(default_factory=list)

    # False when the payload did not have the expected shape at all
    recognized: bool = True

    # Metadata
    extraction_strategy: str = ""
    errors: list[str] = field(default_factory=list)  # Validation paths, debug info

    @property
    def count(self) -> int:
        return len(self.cheques)

    def rows(self) -> list[dict[str, str]]:
        """Cheques as plain dictionaries (the persisted row shape)."""
        return [cheque.to_dict() for cheque in self.cheques]


class BaseExtractor(ABC):
    """
    Base class for all extractors.

    Each extractor understands one source format:
    - HTML cheque tables (PlatformaOFD)
    - Typed JSON check listings (Costviser)
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Extractor name, used as the provenance of extracted cheques."""
        pass

    @abstractmethod
    def can_extract(self, payload: Any) -> bool:
        """
        Check if this extractor can handle the given payload.

        Args:
            payload: Response body (text) or an already parsed value

        Returns:
            True if this extractor should be attempted
        """
        pass

    @abstractmethod
    def extract(self, payload: Any) -> ExtractionResult:
        """
        Extract cheques from a payload.

        Never raises for malformed input; the result is empty (and
        recognized=False where the format is checked up front).
        """
        pass
