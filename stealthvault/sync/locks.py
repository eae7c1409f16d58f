"""TabLockManager: advisory cross-tab locks over a shared key-value store.

The store has no compare-and-swap, so acquisition is optimistic: write a
record carrying a fresh random tab id, wait a short settle delay, and read
it back. Whoever's id survives owns the lock. Two tabs that both read an
empty slot before either writes will both write; the later write wins and
the earlier tab sees a foreign id on re-read and reports failure.

Locks are advisory. ``release`` deletes the shared record without checking
who wrote it, and a tab that re-reads before a slower rival writes can
still end up believing it holds a lock the rival also claims.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, Tuple

from stealthvault.config import Config, Settings
from stealthvault.crypto.formats import LockRecord
from stealthvault.errors import PayloadFormatError
from stealthvault.storage.backend import StorageArea
from stealthvault.util.clock import now_ms

logger = logging.getLogger("stealthvault.sync")


def new_tab_id() -> str:
    return secrets.token_hex(8)


class TabLockManager:
    """Per-tab lock bookkeeping; shared records live under ``<ns>-lock-<name>``."""

    def __init__(
        self,
        storage: StorageArea,
        settings: Settings | None = None,
        settle_delay: float = Config.LOCK_SETTLE_DELAY,
    ):
        self.storage = storage
        self.settings = settings or Settings()
        self.settle_delay = settle_delay
        self._held: Dict[str, Tuple[int, int]] = {}  # name -> (timestamp, duration)
        self._mutex = threading.Lock()

    def _storage_key(self, key: str) -> str:
        return f"{self.settings.lock_prefix}{key}"

    def _cleanup_expired(self) -> None:
        now = now_ms()
        with self._mutex:
            expired = [
                key
                for key, (timestamp, duration) in self._held.items()
                if now - timestamp > duration
            ]
            for key in expired:
                del self._held[key]
        for key in expired:
            self.storage.remove_item(self._storage_key(key))
            logger.debug("Lock '%s' expired", key)

    # ------------------------------------------------------------------
    def acquire(self, key: str, duration_ms: int | None = None) -> bool:
        """Try to take *key* for *duration_ms*. Blocks for the settle delay.

        Returns the outcome after the read-back, so ``True`` always agrees
        with :meth:`has_lock` at return time. A lock whose duration runs out
        before the read-back is given up and reported as not acquired.
        """
        duration = self.settings.lock_duration_ms if duration_ms is None else duration_ms
        self._cleanup_expired()

        lock_key = self._storage_key(key)
        now = now_ms()

        existing = self.storage.get_item(lock_key)
        if existing is not None:
            try:
                if LockRecord.from_json(existing).is_active(now):
                    return False
            except PayloadFormatError as exc:
                logger.warning("Overwriting malformed lock '%s': %s", key, exc)

        record = LockRecord(timestamp=now, duration=duration, tab_id=new_tab_id())
        self.storage.set_item(lock_key, record.to_json())

        time.sleep(self.settle_delay)
        return self._confirm(key, record)

    def _confirm(self, key: str, record: LockRecord) -> bool:
        current = self.storage.get_item(self._storage_key(key))
        if current is None:
            logger.debug("Lock '%s' vanished before confirmation", key)
            return False
        try:
            won = LockRecord.from_json(current).tab_id == record.tab_id
        except PayloadFormatError as exc:
            logger.warning("Lock '%s' unreadable on confirmation: %s", key, exc)
            return False

        if won and not record.is_active(now_ms()):
            logger.debug("Lock '%s' expired during the settle delay", key)
            self.storage.remove_item(self._storage_key(key))
            return False

        if won:
            with self._mutex:
                self._held[key] = (record.timestamp, record.duration)
        else:
            logger.debug("Lost race for lock '%s'", key)
        return won

    def release(self, key: str) -> None:
        with self._mutex:
            self._held.pop(key, None)
        self.storage.remove_item(self._storage_key(key))

    def has_lock(self, key: str) -> bool:
        self._cleanup_expired()
        with self._mutex:
            return key in self._held

    @contextmanager
    def holding(self, key: str, duration_ms: int | None = None) -> Iterator[bool]:
        """Acquire *key* for the block; yields whether it was obtained."""
        acquired = self.acquire(key, duration_ms)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)

    # -- lifecycle ----------------------------------------------------------
    def close(self) -> None:
        """Release every lock this manager holds."""
        with self._mutex:
            keys = list(self._held)
            self._held.clear()
        for key in keys:
            self.storage.remove_item(self._storage_key(key))

    def __enter__(self) -> TabLockManager:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
