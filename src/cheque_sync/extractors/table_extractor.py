"""
HTML cheque table extractor (PlatformaOFD).

Parses the cheque search table of the PlatformaOFD personal account. Each
data row carries an id attribute of the form terminal_cheque_<digits>_id, a
details href and nine cells:

    0 FNS status icon    3 date        6 shift
    1 payment type icon  4 device      7 amount
    2 sign               5 sale        8 CRPT status icon

Status columns are icons whose title attribute holds the label.
"""

import logging
import re
from typing import Any

from bs4 import BeautifulSoup
from bs4.element import Tag

from ..schemas.cheque import Cheque, ChequeSource
from .base import BaseExtractor, ExtractionResult

logger = logging.getLogger(__name__)

PRIMARY_ROW_SELECTOR = "table.table-cheques_search tbody tr[href]"
FALLBACK_ROW_SELECTOR = "tr[href]"

EXPECTED_COLUMNS = 9

ROW_ID_PATTERN = re.compile(r"terminal_cheque_(\d+)_id")

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(value: str | None) -> str:
    """Collapse whitespace runs (NBSP included) into single spaces and trim."""
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", value.replace("\u00a0", " ")).strip()


def _text_of(element: Tag | None) -> str:
    if element is None:
        return ""
    return normalize_text(element.get_text())


def _icon_title(cell: Tag) -> str:
    icon = cell.select_one("i[title]")
    if icon is None:
        return ""
    return (icon.get("title") or "").strip()


def _to_root(html_or_element: Any) -> Tag | None:
    if isinstance(html_or_element, Tag):
        return html_or_element
    if isinstance(html_or_element, bytes):
        html_or_element = html_or_element.decode("utf-8", errors="replace")
    if isinstance(html_or_element, str):
        return BeautifulSoup(html_or_element, "html.parser")
    return None


def _parse_row(tr: Tag) -> Cheque | None:
    cells = tr.select("td")
    if len(cells) < EXPECTED_COLUMNS:
        return None

    match = ROW_ID_PATTERN.search(tr.get("id") or "")

    device_label = cells[4].select_one(".js__trim_long_text")
    device_name = _text_of(device_label) if device_label is not None else _text_of(cells[4])

    return Cheque(
        id=match.group(1) if match else "",
        details_url=tr.get("href") or "",
        fns_status=_icon_title(cells[0]),
        payment_type=_icon_title(cells[1]),
        sign=_text_of(cells[2]),
        date=_text_of(cells[3]),
        device_name=device_name,
        sale=_text_of(cells[5]),
        shift=_text_of(cells[6]),
        amount=_text_of(cells[7]),
        crpt_status=_icon_title(cells[8]),
        source=ChequeSource.PLATFORMA_OFD,
    )


def parse_cheques(html_or_element: str | bytes | Tag) -> list[Cheque]:
    """
    Parse cheque rows from an HTML fragment or an already parsed element.

    An element is searched within its own subtree. Rows with fewer than nine
    cells are skipped; a row whose id attribute does not match still yields
    a cheque (with an empty id). Never raises.
    """
    try:
        root = _to_root(html_or_element)
        if root is None:
            return []

        rows = root.select(PRIMARY_ROW_SELECTOR) or root.select(FALLBACK_ROW_SELECTOR)

        cheques = []
        for tr in rows:
            cheque = _parse_row(tr)
            if cheque is not None:
                cheques.append(cheque)
        return cheques
    except Exception as e:
        logger.debug(f"Cheque table parsing failed: {e}")
        return []


class TableExtractor(BaseExtractor):
    """
    Extracts cheques from PlatformaOFD search result pages.

    Any HTML payload is attempted; the result is simply empty when
    no cheque rows are present.
    """

    @property
    def name(self) -> str:
        return ChequeSource.PLATFORMA_OFD

    def can_extract(self, payload: Any) -> bool:
        if isinstance(payload, Tag):
            return True
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        return isinstance(payload, str) and "<" in payload

    def extract(self, payload: Any) -> ExtractionResult:
        if not self.can_extract(payload):
            return ExtractionResult(recognized=False, extraction_strategy="html_table")

        cheques = parse_cheques(payload)
        logger.debug(f"Parsed {len(cheques)} cheque rows")
        return ExtractionResult(cheques=cheques, extraction_strategy="html_table")
