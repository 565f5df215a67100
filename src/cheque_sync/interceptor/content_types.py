"""
Content-Type filter vocabulary.

Human-readable tokens expand to matching rules; exact MIME strings are
accepted too and match with optional parameters (";charset=...").

- "any": matches everything, extra patterns are ignored
- "text/*": any text/... type
- "json": application/json and application/*+json
- "xml": application/xml, application/*+xml, text/xml
- "form": application/x-www-form-urlencoded
- "event-stream": text/event-stream
"""

import re
from collections.abc import Callable, Iterable

WILDCARD = "any"

TOKEN_RULES: dict[str, str] = {
    "text/*": r"^text/",
    "plain": r"^text/plain(?:;|$)",
    "html": r"^text/html(?:;|$)",
    "css": r"^text/css(?:;|$)",
    "csv": r"^text/csv(?:;|$)",
    "json": r"^(?:application/json|application/.+\+json)(?:;|$)",
    "ndjson": r"^application/x-ndjson(?:;|$)",
    "xml": r"^(?:application/xml|application/.+\+xml|text/xml)(?:;|$)",
    "js": r"^(?:application|text)/(?:javascript|ecmascript)(?:;|$)",
    "form": r"^application/x-www-form-urlencoded(?:;|$)",
    "event-stream": r"^text/event-stream(?:;|$)",
}

ContentTypeMatcher = Callable[[str | None], bool]


def expand_token(token: str) -> re.Pattern[str]:
    """Expand one token (shortcut or exact MIME) into a compiled rule."""
    rule = TOKEN_RULES.get(token)
    if rule is None:
        rule = f"^{re.escape(token)}(?:;|$)"
    return re.compile(rule, re.IGNORECASE)


def build_matcher(
    tokens: Iterable[str],
    extras: Iterable[str | re.Pattern[str]] = (),
) -> ContentTypeMatcher:
    """
    Build a Content-Type predicate from tokens and extra patterns.

    A response without a Content-Type never passes a non-wildcard filter.
    """
    rules: list[re.Pattern[str]] = []
    for token in tokens:
        if token == WILDCARD:
            return lambda _content_type: True
        rules.append(expand_token(token))

    for extra in extras:
        rules.append(re.compile(extra, re.IGNORECASE) if isinstance(extra, str) else extra)

    def matches(content_type: str | None) -> bool:
        if not content_type:
            return False
        return any(rule.search(content_type) for rule in rules)

    return matches
