"""
Extractor router - maps observed response URLs to extractors.
"""

import logging
import re
from dataclasses import dataclass

from ..config import SourceRoutes
from ..interceptor.events import NetworkEvent
from .base import BaseExtractor, ExtractionResult
from .json_extractor import ChequeMapping, JsonExtractor
from .table_extractor import TableExtractor

logger = logging.getLogger(__name__)


@dataclass
class Route:
    """One URL pattern (searched, case-insensitive) bound to an extractor."""

    source: str
    pattern: re.Pattern[str]
    extractor: BaseExtractor

    def matches(self, url: str | None) -> bool:
        return bool(url) and self.pattern.search(url) is not None


class ExtractorRouter:
    """
    Routes response bodies to the extractor for their source.

    Routes are tried in order; the first matching URL pattern wins:
    1. PlatformaOFD cheque search (HTML table)
    2. Costviser check listing (JSON)
    """

    def __init__(self, routes: list[Route] | None = None):
        self.routes: list[Route] = list(routes) if routes else []

    @classmethod
    def from_config(
        cls, routes: SourceRoutes | None = None, mapping: ChequeMapping | None = None
    ) -> "ExtractorRouter":
        """Build the default routes from configured URL patterns."""
        routes = routes or SourceRoutes()
        table = TableExtractor()
        costviser = JsonExtractor(mapping)
        router = cls()
        router.add(table.name, routes.platformaofd_url_pattern, table)
        router.add(costviser.name, routes.costviser_url_pattern, costviser)
        return router

    def add(self, source: str, pattern: str | re.Pattern[str], extractor: BaseExtractor) -> Route:
        """Append a route."""
        compiled = re.compile(pattern, re.IGNORECASE) if isinstance(pattern, str) else pattern
        route = Route(source=source, pattern=compiled, extractor=extractor)
        self.routes.append(route)
        return route

    def route(self, url: str | None) -> Route | None:
        """Get the route for a URL, or None if no pattern matches."""
        for route in self.routes:
            if route.matches(url):
                return route
        return None

    def extract_event(self, event: NetworkEvent) -> tuple[Route, ExtractionResult] | None:
        """
        Run the matching extractor on an event body.

        Returns:
            (route, result), or None when no route matches or there is no body
        """
        route = self.route(event.url)
        if route is None:
            return None
        if event.body is None:
            logger.debug(f"No body captured for {event.url}")
            return None

        result = route.extractor.extract(event.body)
        logger.debug(
            f"{route.source}: {result.count} cheques from {event.url} "
            f"(recognized={result.recognized})"
        )
        return route, result
