"""
Response interceptor.

Observes responses received through requests and httpx in this process and
reports each one as a NetworkEvent:

- start(config) installs the patches and returns an InterceptorHandle
- EventChannel relays events to any number of listeners
- build_matcher implements the Content-Type filter vocabulary
"""

from .capture import BodyCapture, capture_bytes, charset_from_content_type
from .content_types import WILDCARD, build_matcher, expand_token
from .events import EventChannel, EventListener, NetworkEvent, TransportKind
from .patcher import (
    InterceptorConfig,
    InterceptorHandle,
    TransportInclude,
    patched_surfaces,
    start,
)

__all__ = [
    "start",
    "InterceptorConfig",
    "InterceptorHandle",
    "TransportInclude",
    "patched_surfaces",
    "NetworkEvent",
    "TransportKind",
    "EventChannel",
    "EventListener",
    "build_matcher",
    "expand_token",
    "WILDCARD",
    "BodyCapture",
    "capture_bytes",
    "charset_from_content_type",
]
