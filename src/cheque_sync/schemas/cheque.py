"""
Canonical cheque record (SSOT).

This is THE single source of truth for an extracted cheque.
Every extractor maps into this shape; the repository stores it and the
reconciler compares it. All fields are presentation strings: the amount keeps
its locale formatting and is only interpreted by consumers (parse_amount).
"""

from dataclasses import asdict, dataclass, fields
from typing import Any

# Field names used by older camelCase exports
_LEGACY_FIELD_NAMES = {
    "detailsUrl": "details_url",
    "fnsStatus": "fns_status",
    "paymentType": "payment_type",
    "deviceName": "device_name",
    "crptStatus": "crpt_status",
}


class ChequeSource:
    """Known provenance labels."""

    PLATFORMA_OFD = "PlatformaOFD"
    COSTVISER = "Costviser"


@dataclass
class Cheque:
    """One business transaction (a fiscal cheque)."""

    id: str = ""  # Natural identifier, e.g. "150331958551"
    details_url: str = ""  # Link to the details page, possibly empty
    fns_status: str = ""  # FNS channel status, e.g. "Принят"
    payment_type: str = ""  # e.g. "Оплата картой", "Наличными"
    sign: str = ""  # e.g. "Приход", "Возврат прихода"
    date: str = ""  # "DD.MM.YYYY HH:MM"
    device_name: str = ""  # Cash register / terminal label
    sale: str = ""  # Sale sequence label
    shift: str = ""  # Shift label
    amount: str = ""  # Locale-formatted, e.g. "1 234,56 ₽"
    crpt_status: str = ""  # CRPT channel status
    source: str = ""  # Provenance (extractor/source name)

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Cheque":
        """Create from a dictionary; unknown keys are ignored, values become strings."""
        known = {f.name for f in fields(cls)}
        values: dict[str, str] = {}
        for key, value in data.items():
            name = _LEGACY_FIELD_NAMES.get(key, key)
            if name not in known or value is None:
                continue
            values[name] = value if isinstance(value, str) else str(value)
        return cls(**values)
