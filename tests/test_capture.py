"""Tests for content-type filtering and bounded body capture."""

import re

from cheque_sync.interceptor.capture import (
    BodyCapture,
    capture_bytes,
    charset_from_content_type,
)
from cheque_sync.interceptor.content_types import build_matcher, expand_token


class TestContentTypeMatcher:
    """Tests for the Content-Type filter vocabulary."""

    def test_any_matches_everything(self):
        matcher = build_matcher(["any"])
        assert matcher("application/octet-stream")
        assert matcher(None)

    def test_any_ignores_extras(self):
        matcher = build_matcher(["json", "any"], [r"^image/"])
        assert matcher("video/mp4")

    def test_json_token(self):
        matcher = build_matcher(["json"])
        assert matcher("application/json")
        assert matcher("application/json; charset=utf-8")
        assert matcher("application/problem+json")
        assert not matcher("application/octet-stream")
        assert not matcher("text/html")

    def test_text_wildcard(self):
        matcher = build_matcher(["text/*"])
        assert matcher("text/html; charset=windows-1251")
        assert matcher("text/plain")
        assert not matcher("application/json")

    def test_xml_token(self):
        matcher = build_matcher(["xml"])
        assert matcher("application/xml")
        assert matcher("application/atom+xml")
        assert matcher("text/xml")

    def test_exact_mime(self):
        """Unknown tokens are exact MIME types with optional parameters."""
        matcher = build_matcher(["application/pdf"])
        assert matcher("application/pdf")
        assert matcher("application/pdf;name=a.pdf")
        assert not matcher("application/pdf-x")

    def test_missing_content_type_rejected(self):
        matcher = build_matcher(["json"])
        assert not matcher(None)
        assert not matcher("")

    def test_extra_patterns(self):
        matcher = build_matcher(["json"], [r"^image/png", re.compile(r"^font/")])
        assert matcher("image/png")
        assert matcher("font/woff2")
        assert not matcher("image/jpeg")

    def test_case_insensitive(self):
        matcher = build_matcher(["html"])
        assert matcher("Text/HTML; Charset=UTF-8")

    def test_expand_token_escapes_mime(self):
        rule = expand_token("application/vnd.ms-excel")
        assert rule.search("application/vnd.ms-excel")
        assert not rule.search("application/vndxms-excel")


class TestCharset:
    """Tests for charset detection."""

    def test_declared_charset(self):
        assert charset_from_content_type("text/html; charset=windows-1251") == "cp1251"

    def test_quoted_charset(self):
        assert charset_from_content_type('text/plain; charset="UTF-8"') == "utf-8"

    def test_default_utf8(self):
        assert charset_from_content_type(None) == "utf-8"
        assert charset_from_content_type("application/json") == "utf-8"

    def test_unknown_charset_falls_back(self):
        assert charset_from_content_type("text/plain; charset=x-unknown-42") == "utf-8"


class TestBodyCapture:
    """Tests for incremental capture."""

    def test_short_body(self):
        assert capture_bytes(b"hello", 100) == "hello"

    def test_truncates_to_cap(self):
        """Bodies longer than the cap are cut, not rejected."""
        assert capture_bytes(b"x" * 200, 50) == "x" * 50

    def test_cap_counts_characters(self):
        """Multi-byte characters count once each."""
        text = "чек" * 10
        assert capture_bytes(text.encode("utf-8"), 4) == "чекч"

    def test_split_multibyte_sequence(self):
        """A character split across chunks is decoded once complete."""
        data = "₽".encode("utf-8")
        capture = BodyCapture(10)
        capture.feed(data[:1])
        capture.feed(data[1:])
        assert capture.text() == "₽"

    def test_feed_reports_full(self):
        capture = BodyCapture(3)
        assert capture.feed(b"ab") is False
        assert capture.feed(b"cd") is True
        assert capture.feed(b"ef") is True
        assert capture.text() == "abc"

    def test_zero_cap(self):
        capture = BodyCapture(0)
        assert capture.full
        assert capture.feed(b"abc") is True
        assert capture.text() == ""

    def test_other_encoding(self):
        body = "Приход".encode("cp1251")
        assert capture_bytes(body, 100, "cp1251") == "Приход"

    def test_invalid_bytes_replaced(self):
        assert capture_bytes(b"ok\xff", 100) == "ok\ufffd"

    def test_text_is_idempotent(self):
        capture = BodyCapture(10)
        capture.feed(b"abc")
        assert capture.text() == "abc"
        assert capture.text() == "abc"
