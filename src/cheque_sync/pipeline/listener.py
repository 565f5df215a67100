"""
Event listener that turns observed responses into save-cheques messages.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ..extractors.router import ExtractorRouter
from ..interceptor.events import NetworkEvent
from .messages import SaveChequesMessage

logger = logging.getLogger(__name__)


@dataclass
class ListenerStats:
    """Counters for one listener."""

    events_routed: int = 0
    unrecognized: int = 0
    failed: int = 0
    cheques_extracted: int = 0
    messages_sent: int = 0


class SourceListener:
    """
    Channel listener for source pages.

    For each event whose URL matches a route and that has a body, runs the
    route's extractor and sends the cheques as a save-cheques message.
    Unrecognized payloads are logged and dropped. Extraction errors never
    leave the listener.
    """

    def __init__(
        self,
        router: ExtractorRouter,
        send_message: Callable[[dict[str, Any]], Any],
    ):
        self.router = router
        self.send_message = send_message
        self.stats = ListenerStats()

    def __call__(self, event: NetworkEvent) -> None:
        self.on_event(event)

    def on_event(self, event: NetworkEvent) -> Any:
        """
        Process one event.

        Returns:
            Whatever send_message returned, or None when nothing was sent
        """
        try:
            outcome = self.router.extract_event(event)
        except Exception as e:
            self.stats.failed += 1
            logger.warning(f"Extraction failed for {event.url}: {e}")
            return None

        if outcome is None:
            return None

        route, result = outcome
        self.stats.events_routed += 1

        if not result.recognized:
            self.stats.unrecognized += 1
            logger.info(f"{route.source}: response from {event.url} not recognized, dropped")
            return None

        if not result.cheques:
            logger.debug(f"{route.source}: no cheques in {event.url}")
            return None

        self.stats.cheques_extracted += result.count
        message = SaveChequesMessage.from_cheques(result.cheques, route.source)
        reply = self.send_message(message.to_dict())
        self.stats.messages_sent += 1
        return reply
