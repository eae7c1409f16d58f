"""Tab: wires one tab's storage area, page events, locks, broadcaster and vault."""

from __future__ import annotations

import logging

from stealthvault.config import Settings
from stealthvault.storage.backend import StorageArea, StorageBackend
from stealthvault.sync.broadcast import StateBroadcaster
from stealthvault.sync.events import PageEvents
from stealthvault.sync.locks import TabLockManager, new_tab_id
from stealthvault.util.rate_limit import RateLimiter
from stealthvault.vault.manager import SharedVault
from stealthvault.vault.session import MetaKeysSession

logger = logging.getLogger("stealthvault.tab")


class Tab:
    """Everything one application instance needs, sharing *backend* with its peers."""

    def __init__(
        self,
        backend: StorageBackend,
        settings: Settings | None = None,
        rate_limiter: RateLimiter | None = None,
    ):
        self.tab_id = new_tab_id()
        self.settings = settings or Settings()
        self.storage = StorageArea(backend)
        self.events = PageEvents()
        self.locks = TabLockManager(self.storage, self.settings)
        self.broadcaster = StateBroadcaster(self.storage, self.events, self.settings)
        self.vault = SharedVault(self.storage, self.settings, rate_limiter=rate_limiter)
        self.session = MetaKeysSession(self.vault, self.storage)
        logger.debug("Tab %s opened", self.tab_id)

    def close(self) -> None:
        """Release held locks and stop listening; stored data is left alone."""
        self.locks.close()
        self.session.close()
        self.events.clear()
        self.storage.close()
        logger.debug("Tab %s closed", self.tab_id)

    def __enter__(self) -> Tab:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
