"""
Costviser JSON extractor.

Validates the /checks payload against the Costviser schema and maps every
item into a Cheque. The mapping is a set of named transforms that can be
replaced one by one (ChequeMapping.with_overrides).
"""

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, fields, replace
from typing import Any

from ..schemas.amounts import format_amount_ru
from ..schemas.cheque import Cheque, ChequeSource
from .base import BaseExtractor, ExtractionResult
from .costviser_schema import CheckItem, SchemaMismatch, validate_checks_response

logger = logging.getLogger(__name__)

# Leading date and time of an ISO timestamp; the offset is not applied
_ISO_PREFIX_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2})")

SIGN_LABELS = {
    "sale": "Приход",
    "sale_return": "Возврат прихода",
    "buy": "Расход",
    "return_buy": "Возврат расхода",
}

PAYMENT_TYPE_LABELS = {
    "electron": "Оплата картой",
    "cash": "Наличными",
    "combined": "Смешанный",
    "cashback": "Наличными",
}


def number_text(value: int | float) -> str:
    """Render a JSON number the way it is displayed: 206.0 -> "206"."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_iso_date(iso: str) -> str:
    """
    Format "2025-10-27T16:30:00.000+10:00" as "27.10.2025 16:30".

    Wall-clock time is kept as written (no timezone conversion). Input that
    does not start with an ISO date-time is returned unchanged.
    """
    match = _ISO_PREFIX_RE.match(iso)
    if not match:
        return iso
    year, month, day, hour, minute = match.groups()
    return f"{day}.{month}.{year} {hour}:{minute}"


def default_sign(check_type: str) -> str:
    return SIGN_LABELS.get(check_type, check_type)


def default_payment_type(payment_source: str) -> str:
    return PAYMENT_TYPE_LABELS.get(payment_source, payment_source)


def default_row_id(item: CheckItem) -> str:
    return f"terminal_cheque_{number_text(item.num)}_id"


def default_device_name(item: CheckItem) -> str:
    return item.kkt.kkt_rn or number_text(item.device_id)


def default_sale(item: CheckItem) -> str:
    return number_text(item.quantity)


def _empty(item: CheckItem) -> str:
    return ""


@dataclass(frozen=True)
class ChequeMapping:
    """Transforms applied to each check item."""

    build_row_id: Callable[[CheckItem], str] = default_row_id
    build_details_url: Callable[[CheckItem], str] = _empty
    get_fns_status: Callable[[CheckItem], str] = _empty
    get_crpt_status: Callable[[CheckItem], str] = _empty
    get_device_name: Callable[[CheckItem], str] = default_device_name
    format_amount: Callable[[float], str] = format_amount_ru
    format_date: Callable[[str], str] = format_iso_date
    map_sign: Callable[[str], str] = default_sign
    map_payment_type: Callable[[str], str] = default_payment_type
    map_sale: Callable[[CheckItem], str] = default_sale

    def with_overrides(self, **overrides: Callable) -> "ChequeMapping":
        """
        Get a copy with some transforms replaced.

        Raises:
            ValueError: For an unknown transform name
            TypeError: For a value that is not callable
        """
        known = {f.name for f in fields(self)}
        for name, value in overrides.items():
            if name not in known:
                raise ValueError(f"Unknown mapping transform: {name}")
            if not callable(value):
                raise TypeError(f"Mapping transform {name} must be callable")
        return replace(self, **overrides)

    def to_cheque(self, item: CheckItem) -> Cheque:
        return Cheque(
            id=self.build_row_id(item),
            details_url=self.build_details_url(item),
            fns_status=self.get_fns_status(item),
            payment_type=self.map_payment_type(item.payment_source),
            sign=self.map_sign(item.check_type),
            date=self.format_date(item.kkt.date),
            device_name=self.get_device_name(item),
            sale=self.map_sale(item),
            shift=number_text(item.shift),
            amount=self.format_amount(item.total),
            crpt_status=self.get_crpt_status(item),
            source=ChequeSource.COSTVISER,
        )


DEFAULT_MAPPING = ChequeMapping()


def _load(payload: Any) -> Any:
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        return json.loads(payload)
    return payload


def extract_costviser(payload: Any, mapping: ChequeMapping | None = None) -> ExtractionResult:
    """
    Validate and map a Costviser /checks payload.

    Args:
        payload: JSON text or an already parsed value
        mapping: Transforms to use (defaults to DEFAULT_MAPPING)

    Returns:
        ExtractionResult; recognized=False (and no cheques) when the payload
        is not valid JSON or does not match the schema
    """
    mapping = mapping or DEFAULT_MAPPING

    try:
        data = _load(payload)
    except (ValueError, RecursionError) as e:
        logger.warning(f"Costviser payload is not valid JSON: {e}")
        return ExtractionResult(
            recognized=False, extraction_strategy="costviser_json", errors=[f"$: {e}"]
        )

    outcome = validate_checks_response(data)
    if isinstance(outcome, SchemaMismatch):
        logger.warning(f"Unexpected Costviser response shape: {outcome.summary}")
        return ExtractionResult(
            recognized=False, extraction_strategy="costviser_json", errors=outcome.errors
        )

    try:
        cheques = [mapping.to_cheque(item) for item in outcome.value.items]
    except Exception as e:
        logger.warning(f"Costviser mapping failed: {e}")
        return ExtractionResult(extraction_strategy="costviser_json", errors=[str(e)])

    logger.debug(f"Mapped {len(cheques)} Costviser checks")
    return ExtractionResult(cheques=cheques, extraction_strategy="costviser_json")


class JsonExtractor(BaseExtractor):
    """Extracts cheques from Costviser /checks responses."""

    def __init__(self, mapping: ChequeMapping | None = None):
        self.mapping = mapping or DEFAULT_MAPPING

    @property
    def name(self) -> str:
        return ChequeSource.COSTVISER

    def can_extract(self, payload: Any) -> bool:
        if isinstance(payload, (dict, list)):
            return True
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        return isinstance(payload, str) and payload.lstrip()[:1] in ("{", "[")

    def extract(self, payload: Any) -> ExtractionResult:
        return extract_costviser(payload, self.mapping)
