"""
Bounded body capture.

Bytes are decoded incrementally and accumulation stops as soon as the
character cap is reached, so a large or endless stream is never buffered
beyond the cap.
"""

import codecs
import re

DEFAULT_ENCODING = "utf-8"

# Chunk size used when slicing an already-loaded body
CHUNK_SIZE = 64 * 1024

_CHARSET_RE = re.compile(r"""charset\s*=\s*["']?([^"';\s]+)""", re.IGNORECASE)


def charset_from_content_type(content_type: str | None) -> str:
    """Get the charset declared in a Content-Type header (utf-8 if absent or unknown)."""
    if content_type:
        match = _CHARSET_RE.search(content_type)
        if match:
            try:
                return codecs.lookup(match.group(1)).name
            except LookupError:
                pass
    return DEFAULT_ENCODING


class BodyCapture:
    """Accumulates decoded text up to max_chars characters."""

    def __init__(self, max_chars: int, encoding: str = DEFAULT_ENCODING):
        self.max_chars = max(0, max_chars)
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._parts: list[str] = []
        self._length = 0
        self._finished = False
        self.full = self.max_chars == 0

    def feed(self, chunk: bytes | str) -> bool:
        """
        Add a chunk.

        Returns:
            True once the cap is reached (further chunks are ignored)
        """
        if self.full or self._finished:
            return self.full
        text = chunk if isinstance(chunk, str) else self._decoder.decode(chunk)
        self._append(text)
        return self.full

    def _append(self, text: str) -> None:
        remaining = self.max_chars - self._length
        if len(text) >= remaining:
            text = text[:remaining]
            self.full = True
        self._parts.append(text)
        self._length += len(text)

    def text(self) -> str:
        """Finish decoding and return the captured text."""
        if not self._finished:
            self._finished = True
            if not self.full:
                self._append(self._decoder.decode(b"", final=True))
        return "".join(self._parts)


def capture_bytes(content: bytes, max_chars: int, encoding: str = DEFAULT_ENCODING) -> str:
    """Decode an already-loaded body chunk by chunk, stopping at the cap."""
    capture = BodyCapture(max_chars, encoding)
    for start in range(0, len(content), CHUNK_SIZE):
        if capture.feed(content[start : start + CHUNK_SIZE]):
            break
    return capture.text()
