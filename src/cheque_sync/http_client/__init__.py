"""
HTTP client for source pages.

Used by the capture command to request pages while the interceptor is
installed.
"""

from .client import PageAPIError, PageClient, PageConnectionError, PageError

__all__ = [
    "PageClient",
    "PageError",
    "PageAPIError",
    "PageConnectionError",
]
