"""
Network events and the broadcast channel that relays them.

The channel is a django.dispatch Signal owned by whoever installed the
interceptor; consumers attach and detach listeners independently of the
interceptor's lifecycle.
"""

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from enum import Enum

from django.dispatch import Signal

logger = logging.getLogger(__name__)


class TransportKind(str, Enum):
    """Patched transport surface that observed a response."""

    REQUESTS = "requests"  # requests.Session.send
    HTTPX = "httpx"  # httpx.Client.send
    HTTPX_ASYNC = "httpx_async"  # httpx.AsyncClient.send


@dataclass(frozen=True)
class NetworkEvent:
    """One observed response. Immutable, relayed but never persisted."""

    kind: TransportKind
    method: str
    url: str | None
    # None when the status is not known
    status: int | None
    # Elapsed milliseconds (one decimal), None when not measured
    time_ms: float | None
    # Captured text (truncated to the cap), None when filtered or unreadable
    body: str | None
    content_type: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


EventListener = Callable[[NetworkEvent], None]


class EventChannel:
    """
    Broadcast channel for NetworkEvents.

    Listener exceptions are logged and never stop delivery to the others.
    """

    def __init__(self) -> None:
        self._signal = Signal()

    @staticmethod
    def _uid(listener: EventListener) -> tuple[str, EventListener]:
        # Bound methods compare equal per (instance, function)
        return ("cheque_sync.listener", listener)

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """
        Attach a listener.

        Returns:
            A function that detaches the listener again
        """

        def receiver(sender, event: NetworkEvent, **kwargs) -> None:
            listener(event)

        self._signal.connect(receiver, weak=False, dispatch_uid=self._uid(listener))
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: EventListener) -> bool:
        """Detach a listener. Returns True if it was attached."""
        return self._signal.disconnect(dispatch_uid=self._uid(listener))

    @property
    def has_listeners(self) -> bool:
        return self._signal.has_listeners()

    def publish(self, event: NetworkEvent) -> int:
        """
        Deliver an event to every listener.

        Returns:
            Number of listeners that handled the event without raising
        """
        delivered = 0
        for receiver, result in self._signal.send_robust(sender=event.kind, event=event):
            if isinstance(result, Exception):
                logger.warning(f"Listener failed for {event.method} {event.url}: {result!r}")
            else:
                delivered += 1
        return delivered
