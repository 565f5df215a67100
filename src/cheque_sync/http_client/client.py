"""
HTTP client for fetching source pages.

Requests go through requests.Session.send, so a running ChequeWatcher
observes them like any other traffic in the process.
"""

from typing import Any, Optional
import logging

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .. import __version__
from ..config import HttpConfig

logger = logging.getLogger(__name__)


class PageError(Exception):
    """Base exception for page client errors."""
    pass


class PageAPIError(PageError):
    """Server returned an error response."""
    def __init__(self, status_code: int, message: str, response_body: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.response_body = response_body
        super().__init__(f"HTTP error {status_code}: {message}")


class PageConnectionError(PageError):
    """Failed to connect to the server."""
    pass


class PageClient:
    """
    Client for source pages (PlatformaOFD, Costviser).

    Features:
    - Shared headers (e.g. an authenticated Cookie)
    - Automatic retry with backoff
    - Error mapping to PageError subclasses
    """

    DEFAULT_TIMEOUT = 30

    def __init__(
        self,
        base_headers: Optional[dict[str, str]] = None,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
    ):
        """
        Initialize page client.

        Args:
            base_headers: Headers sent with every request
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts for transient failures
            backoff_factor: Backoff factor for retries
        """
        self.timeout = timeout

        # Configure session with retry
        self.session = requests.Session()
        self.session.headers.update({
            "User-Agent": f"cheque-sync/{__version__}",
            "Accept": "text/html,application/json;q=0.9,*/*;q=0.8",
        })
        if base_headers:
            self.session.headers.update(base_headers)

        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "HEAD"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    @classmethod
    def from_config(cls, config: HttpConfig) -> "PageClient":
        return cls(
            base_headers=config.headers,
            timeout=config.timeout_seconds,
            max_retries=config.max_retries,
            backoff_factor=config.backoff_factor,
        )

    def request(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> requests.Response:
        """Make a request with error handling."""
        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.ConnectionError as e:
            raise PageConnectionError(f"Failed to connect to {url}: {e}")
        except requests.exceptions.Timeout as e:
            raise PageConnectionError(f"Request to {url} timed out: {e}")
        except requests.exceptions.RequestException as e:
            raise PageError(f"Request failed: {e}")

        if not response.ok:
            raise PageAPIError(
                status_code=response.status_code,
                message=response.reason or "",
                response_body=response.text,
            )

        logger.debug(f"{method} {url} -> {response.status_code} ({len(response.content)} bytes)")
        return response

    def get(self, url: str, params: Optional[dict[str, Any]] = None) -> requests.Response:
        return self.request("GET", url, params=params)

    def fetch_text(self, url: str, params: Optional[dict[str, Any]] = None) -> str:
        """Fetch a page and return its decoded body."""
        return self.get(url, params=params).text

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "PageClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
