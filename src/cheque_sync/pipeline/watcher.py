"""
Cheque watcher: wires interceptor, channel, listener and persistence.

    with ChequeWatcher(config, repository):
        session.get("https://lk.platformaofd.ru/web/auth/cheques/search?...")
"""

import logging

from ..config import Config, ConfigValidationError
from ..extractors.router import ExtractorRouter
from ..interceptor import EventChannel, InterceptorConfig, InterceptorHandle, start
from ..state_store import CollectionRepository
from .handler import ChequePersistenceHandler
from .listener import SourceListener

logger = logging.getLogger(__name__)


class ChequeWatcher:
    """
    Saves cheques from every matching response observed in this process.

    The channel outlives start()/stop(): listeners may be added to
    watcher.channel independently.
    """

    def __init__(
        self,
        config: Config,
        repository: CollectionRepository,
        router: ExtractorRouter | None = None,
    ):
        self.config = config
        self.repository = repository
        self.router = router or ExtractorRouter.from_config(config.routes)
        self.channel = EventChannel()
        self.handler = ChequePersistenceHandler(
            repository, config.storage.default_collection_name
        )
        self.listener = SourceListener(self.router, self.handler.handle)
        self._handle: InterceptorHandle | None = None
        self._unsubscribe = None

    @property
    def running(self) -> bool:
        return self._handle is not None

    def start(self) -> None:
        """
        Subscribe the listener and install the interceptor.

        Raises:
            ConfigValidationError: If the configuration does not validate
        """
        if self._handle is not None:
            return
        errors = self.config.validate()
        if errors:
            raise ConfigValidationError("; ".join(errors))
        self._unsubscribe = self.channel.subscribe(self.listener)
        self._handle = start(
            InterceptorConfig.from_settings(self.config.interceptor, self.channel.publish)
        )
        if not self._handle.surfaces:
            logger.warning("Interceptor did not patch any surface (already installed elsewhere?)")

    def stop(self) -> None:
        """Remove the interceptor and unsubscribe the listener."""
        if self._handle is not None:
            self._handle.teardown()
            self._handle = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self) -> "ChequeWatcher":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
