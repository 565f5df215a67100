"""Tests for the PlatformaOFD HTML table extractor."""

from bs4 import BeautifulSoup

from cheque_sync.extractors.table_extractor import (
    TableExtractor,
    normalize_text,
    parse_cheques,
)


def _row(row_id: str = "terminal_cheque_1_id", cells: int = 9, href: str = "/d/1") -> str:
    tds = "".join(f"<td>c{i}</td>" for i in range(cells))
    return f'<tr id="{row_id}" href="{href}">{tds}</tr>'


def _table(*rows: str, css_class: str = "table-cheques_search") -> str:
    return f'<table class="{css_class}"><tbody>{"".join(rows)}</tbody></table>'


class TestNormalizeText:
    """Tests for whitespace normalization."""

    def test_collapses_whitespace(self):
        assert normalize_text("  Касса \n\t №1  ") == "Касса №1"

    def test_nbsp(self):
        assert normalize_text("1\u00a0234,56\u00a0₽") == "1 234,56 ₽"

    def test_empty(self):
        assert normalize_text(None) == ""
        assert normalize_text("") == ""


class TestParseCheques:
    """Tests for row parsing."""

    def test_sample_page(self, sample_html):
        """Both data rows of the search page are parsed in order."""
        cheques = parse_cheques(sample_html)

        assert len(cheques) == 2
        first = cheques[0]
        assert first.id == "150331958551"
        assert first.details_url == "/web/auth/cheques/details/150331958551"
        assert first.fns_status == "Принят"
        assert first.payment_type == "Оплата картой"
        assert first.sign == "Приход"
        assert first.date == "27.10.2025 16:30"
        assert first.device_name == "Касса №1"
        assert first.sale == "42"
        assert first.shift == "206"
        assert first.amount == "1 234,56 ₽"
        assert first.crpt_status == "Не передан"
        assert first.source == "PlatformaOFD"

    def test_cell_without_icon_is_empty(self, sample_html):
        second = parse_cheques(sample_html)[1]

        assert second.id == "150331958552"
        assert second.payment_type == "Наличными"
        assert second.sign == "Возврат прихода"
        assert second.device_name == "Касса №2"
        assert second.amount == "99,90 ₽"
        assert second.crpt_status == ""

    def test_short_rows_skipped(self):
        """Rows with fewer than nine cells are not cheques."""
        html = _table(_row("terminal_cheque_1_id", cells=3), _row("terminal_cheque_2_id"))

        cheques = parse_cheques(html)

        assert [c.id for c in cheques] == ["2"]

    def test_unmatched_row_id_gives_empty_id(self):
        cheques = parse_cheques(_table(_row("row-17")))

        assert len(cheques) == 1
        assert cheques[0].id == ""
        assert cheques[0].sign == "c2"

    def test_rows_without_href_ignored(self):
        html = _table('<tr id="terminal_cheque_5_id">' + "<td>x</td>" * 9 + "</tr>")
        assert parse_cheques(html) == []

    def test_fallback_selector(self):
        """Rows are still found when the table lost its class."""
        html = _table(_row("terminal_cheque_9_id"), css_class="cheques-v2")

        cheques = parse_cheques(html)

        assert [c.id for c in cheques] == ["9"]

    def test_element_input(self, sample_html):
        """A parsed element is searched within its own subtree."""
        soup = BeautifulSoup(sample_html, "html.parser")
        other = BeautifulSoup(_table(_row("terminal_cheque_3_id")), "html.parser")

        assert len(parse_cheques(soup.select_one("table"))) == 2
        assert [c.id for c in parse_cheques(other.select_one("tbody"))] == ["3"]

    def test_bytes_input(self, sample_html):
        assert len(parse_cheques(sample_html.encode("utf-8"))) == 2

    def test_no_rows(self):
        assert parse_cheques("<html><body><p>Нет чеков</p></body></html>") == []

    def test_unsupported_input_never_raises(self):
        assert parse_cheques(None) == []
        assert parse_cheques(12345) == []


class TestTableExtractor:
    """Tests for the extractor interface."""

    def test_name(self):
        assert TableExtractor().name == "PlatformaOFD"

    def test_can_extract(self, sample_html):
        extractor = TableExtractor()
        assert extractor.can_extract(sample_html)
        assert extractor.can_extract(sample_html.encode())
        assert not extractor.can_extract('{"items": []}')
        assert not extractor.can_extract(None)

    def test_extract(self, sample_html):
        result = TableExtractor().extract(sample_html)

        assert result.recognized
        assert result.count == 2
        assert result.extraction_strategy == "html_table"
        assert result.rows()[0]["id"] == "150331958551"

    def test_extract_non_html(self):
        result = TableExtractor().extract("plain text")

        assert not result.recognized
        assert result.cheques == []
