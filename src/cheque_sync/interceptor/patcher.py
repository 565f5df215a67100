"""
Response interceptor for in-process HTTP clients.

Patches the class-level send primitives of requests and httpx so every
completed response is reported as a NetworkEvent:

- requests.Session.send       (TransportKind.REQUESTS)
- httpx.Client.send           (TransportKind.HTTPX)
- httpx.AsyncClient.send      (TransportKind.HTTPX_ASYNC)

The caller always receives the original response object with its content
untouched. Buffered bodies are decoded up to the cap; streamed bodies are
tapped while the caller reads them, and the event is emitted when the cap is
hit, the stream ends, or the response is closed.

Patching is process-wide state: a module-level guard makes each surface
patched at most once, and the InterceptorHandle returned by start() owns the
restore functions until teardown().
"""

import functools
import logging
import re
import threading
import time
from collections.abc import AsyncIterator, Callable, Iterator, Sequence
from contextvars import ContextVar
from dataclasses import dataclass, field

import httpx
import requests

from ..config import InterceptorSettings
from .capture import BodyCapture, capture_bytes, charset_from_content_type
from .content_types import build_matcher
from .events import NetworkEvent, TransportKind

logger = logging.getLogger(__name__)

DEFAULT_MAX_BODY_CHARS = 100_000


@dataclass
class TransportInclude:
    """Which transport surfaces to patch."""

    requests: bool = True
    httpx: bool = True
    httpx_async: bool = True

    def enabled(self) -> list[TransportKind]:
        """Get enabled surfaces in patch order."""
        flags = {
            TransportKind.REQUESTS: self.requests,
            TransportKind.HTTPX: self.httpx,
            TransportKind.HTTPX_ASYNC: self.httpx_async,
        }
        return [kind for kind, enabled in flags.items() if enabled]


@dataclass
class InterceptorConfig:
    """Interceptor options."""

    on_event: Callable[[NetworkEvent], None]
    # Body cap in characters; longer bodies are truncated, not rejected
    max_body_chars: int = DEFAULT_MAX_BODY_CHARS
    content_types: Sequence[str] = ("any",)
    # Ignored when content_types contains "any"
    extra_content_types: Sequence[str | re.Pattern[str]] = ()
    include: TransportInclude = field(default_factory=TransportInclude)
    # Leave the body empty for unfollowed redirects
    skip_opaque: bool = True

    @classmethod
    def from_settings(
        cls, settings: InterceptorSettings, on_event: Callable[[NetworkEvent], None]
    ) -> "InterceptorConfig":
        """Build from the application configuration."""
        return cls(
            on_event=on_event,
            max_body_chars=settings.max_body_chars,
            content_types=tuple(settings.content_types),
            extra_content_types=tuple(settings.extra_content_types),
            include=TransportInclude(
                requests=settings.include_requests,
                httpx=settings.include_httpx,
                httpx_async=settings.include_httpx_async,
            ),
            skip_opaque=settings.skip_opaque,
        )


# Process-wide patch guard
_patch_lock = threading.Lock()
_patched: set[TransportKind] = set()

# Set while an observed send is in flight; nested sends (redirect hops) pass through
_observing: ContextVar[bool] = ContextVar("cheque_sync_observing", default=False)


def patched_surfaces() -> set[TransportKind]:
    """Get the surfaces currently patched in this process."""
    with _patch_lock:
        return set(_patched)


class _PendingEvent:
    """One response whose event has not been emitted yet."""

    def __init__(
        self,
        observer: "_Observer",
        kind: TransportKind,
        method: str,
        url: str | None,
        status: int | None,
        content_type: str | None,
        started: float,
        capture: BodyCapture | None,
    ):
        self.observer = observer
        self.kind = kind
        self.method = method
        self.url = url
        self.status = status
        self.content_type = content_type
        self.started = started
        self.capture = capture
        self.emitted = False

    def feed(self, chunk: bytes | str) -> None:
        if self.emitted or self.capture is None:
            return
        try:
            if self.capture.feed(chunk):
                self.complete()
        except Exception:
            logger.debug(f"Body capture failed for {self.url}", exc_info=True)
            self.capture = None

    def complete(self) -> None:
        """Emit the event (once)."""
        if self.emitted:
            return
        self.emitted = True

        body: str | None = None
        if self.capture is not None:
            try:
                body = self.capture.text()
            except Exception:
                logger.debug(f"Body capture failed for {self.url}", exc_info=True)

        elapsed_ms = round((time.perf_counter() - self.started) * 1000, 1)
        self.observer.emit(
            NetworkEvent(
                kind=self.kind,
                method=self.method,
                url=self.url,
                status=self.status,
                time_ms=elapsed_ms,
                body=body,
                content_type=self.content_type,
            )
        )


def _tap_iterator(iterator: Iterator, pending: _PendingEvent) -> Iterator:
    for chunk in iterator:
        pending.feed(chunk)
        yield chunk
    pending.complete()


async def _atap_iterator(iterator: AsyncIterator, pending: _PendingEvent) -> AsyncIterator:
    async for chunk in iterator:
        pending.feed(chunk)
        yield chunk
    pending.complete()


class _Observer:
    """Capture and emit logic shared by every surface of one handle."""

    def __init__(self, config: InterceptorConfig):
        self.config = config
        self.allow_content_type = build_matcher(
            config.content_types, config.extra_content_types
        )

    def emit(self, event: NetworkEvent) -> None:
        try:
            self.config.on_event(event)
        except Exception:
            logger.debug(f"Event callback failed for {event.url}", exc_info=True)

    def _should_capture(self, content_type: str | None, opaque: bool) -> bool:
        if self.config.skip_opaque and opaque:
            return False
        return self.allow_content_type(content_type)

    def _new_capture(self, content_type: str | None) -> BodyCapture:
        return BodyCapture(
            self.config.max_body_chars, charset_from_content_type(content_type)
        )

    # requests

    def observe_requests(
        self,
        response: requests.Response,
        request: requests.PreparedRequest,
        started: float,
        streamed: bool,
    ) -> None:
        try:
            content_type = response.headers.get("Content-Type")
            pending = _PendingEvent(
                observer=self,
                kind=TransportKind.REQUESTS,
                method=request.method or "GET",
                url=response.url or request.url,
                status=response.status_code,
                content_type=content_type,
                started=started,
                capture=None,
            )
            if not self._should_capture(content_type, response.is_redirect):
                pending.complete()
                return

            if not streamed:
                pending.capture = self._new_capture(content_type)
                pending.feed(
                    capture_bytes(
                        response.content or b"",
                        self.config.max_body_chars,
                        charset_from_content_type(content_type),
                    )
                )
                pending.complete()
                return

            pending.capture = self._new_capture(content_type)
            self._tap_requests_stream(response, pending)
        except Exception:
            logger.debug("Failed to observe requests response", exc_info=True)

    @staticmethod
    def _tap_requests_stream(response: requests.Response, pending: _PendingEvent) -> None:
        original_iter_content = response.iter_content
        original_close = response.close

        def iter_content(chunk_size=1, decode_unicode=False):
            return _tap_iterator(original_iter_content(chunk_size, decode_unicode), pending)

        def close():
            try:
                original_close()
            finally:
                pending.complete()

        response.iter_content = iter_content
        response.close = close

    # httpx

    def observe_httpx(
        self,
        response: httpx.Response,
        kind: TransportKind,
        started: float,
        streamed: bool,
    ) -> None:
        try:
            content_type = response.headers.get("content-type")
            pending = _PendingEvent(
                observer=self,
                kind=kind,
                method=response.request.method,
                url=str(response.url),
                status=response.status_code,
                content_type=content_type,
                started=started,
                capture=None,
            )
            if not self._should_capture(content_type, response.has_redirect_location):
                pending.complete()
                return

            if not streamed:
                pending.capture = self._new_capture(content_type)
                pending.feed(
                    capture_bytes(
                        response.content,
                        self.config.max_body_chars,
                        charset_from_content_type(content_type),
                    )
                )
                pending.complete()
                return

            pending.capture = self._new_capture(content_type)
            if kind == TransportKind.HTTPX_ASYNC:
                self._tap_httpx_async_stream(response, pending)
            else:
                self._tap_httpx_stream(response, pending)
        except Exception:
            logger.debug("Failed to observe httpx response", exc_info=True)

    @staticmethod
    def _tap_httpx_stream(response: httpx.Response, pending: _PendingEvent) -> None:
        original_iter_bytes = response.iter_bytes
        original_close = response.close

        def iter_bytes(chunk_size=None):
            return _tap_iterator(original_iter_bytes(chunk_size), pending)

        def close():
            try:
                original_close()
            finally:
                pending.complete()

        response.iter_bytes = iter_bytes
        response.close = close

    @staticmethod
    def _tap_httpx_async_stream(response: httpx.Response, pending: _PendingEvent) -> None:
        original_aiter_bytes = response.aiter_bytes
        original_aclose = response.aclose

        def aiter_bytes(chunk_size=None):
            return _atap_iterator(original_aiter_bytes(chunk_size), pending)

        async def aclose():
            try:
                await original_aclose()
            finally:
                pending.complete()

        response.aiter_bytes = aiter_bytes
        response.aclose = aclose


# Surface patchers: install a wrapper, return the restore function


def _patch_requests(observer: _Observer) -> Callable[[], None]:
    original = requests.Session.send

    @functools.wraps(original)
    def send(session, request, **kwargs):
        if _observing.get():
            return original(session, request, **kwargs)
        token = _observing.set(True)
        started = time.perf_counter()
        try:
            response = original(session, request, **kwargs)
        finally:
            _observing.reset(token)
        observer.observe_requests(response, request, started, kwargs.get("stream", False))
        return response

    requests.Session.send = send

    def restore() -> None:
        requests.Session.send = original

    return restore


def _patch_httpx(observer: _Observer) -> Callable[[], None]:
    original = httpx.Client.send

    @functools.wraps(original)
    def send(client, request, **kwargs):
        if _observing.get():
            return original(client, request, **kwargs)
        token = _observing.set(True)
        started = time.perf_counter()
        try:
            response = original(client, request, **kwargs)
        finally:
            _observing.reset(token)
        observer.observe_httpx(
            response, TransportKind.HTTPX, started, kwargs.get("stream", False)
        )
        return response

    httpx.Client.send = send

    def restore() -> None:
        httpx.Client.send = original

    return restore


def _patch_httpx_async(observer: _Observer) -> Callable[[], None]:
    original = httpx.AsyncClient.send

    @functools.wraps(original)
    async def send(client, request, **kwargs):
        if _observing.get():
            return await original(client, request, **kwargs)
        token = _observing.set(True)
        started = time.perf_counter()
        try:
            response = await original(client, request, **kwargs)
        finally:
            _observing.reset(token)
        observer.observe_httpx(
            response, TransportKind.HTTPX_ASYNC, started, kwargs.get("stream", False)
        )
        return response

    httpx.AsyncClient.send = send

    def restore() -> None:
        httpx.AsyncClient.send = original

    return restore


_PATCHERS: dict[TransportKind, Callable[[_Observer], Callable[[], None]]] = {
    TransportKind.REQUESTS: _patch_requests,
    TransportKind.HTTPX: _patch_httpx,
    TransportKind.HTTPX_ASYNC: _patch_httpx_async,
}


class InterceptorHandle:
    """
    Owns the patches installed by one start() call.

    teardown() restores the unpatched send methods and releases the
    process-wide guard; it is safe to call more than once.
    """

    def __init__(self, restorers: dict[TransportKind, Callable[[], None]]):
        self._restorers = dict(restorers)

    @property
    def surfaces(self) -> list[TransportKind]:
        """Surfaces this handle patched."""
        return list(self._restorers)

    @property
    def active(self) -> bool:
        return bool(self._restorers)

    def teardown(self) -> None:
        with _patch_lock:
            restorers, self._restorers = self._restorers, {}
            for kind, restore in restorers.items():
                try:
                    restore()
                except Exception:
                    logger.debug(f"Failed to restore {kind.value}", exc_info=True)
                _patched.discard(kind)
        if restorers:
            logger.info(f"Interceptor removed from: {', '.join(k.value for k in restorers)}")

    def __enter__(self) -> "InterceptorHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.teardown()


def start(config: InterceptorConfig) -> InterceptorHandle:
    """
    Install the interceptor on every enabled surface.

    A surface that is already patched (by an earlier, not yet torn down
    handle) is skipped.

    Raises:
        ValueError: If config.on_event is not callable
    """
    if not callable(config.on_event):
        raise ValueError("InterceptorConfig.on_event callback is required")

    observer = _Observer(config)
    restorers: dict[TransportKind, Callable[[], None]] = {}

    with _patch_lock:
        for kind in config.include.enabled():
            if kind in _patched:
                logger.debug(f"{kind.value} already patched, skipping")
                continue
            restorers[kind] = _PATCHERS[kind](observer)
            _patched.add(kind)

    if restorers:
        logger.info(f"Interceptor installed on: {', '.join(k.value for k in restorers)}")
    return InterceptorHandle(restorers)
