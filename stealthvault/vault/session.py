"""MetaKeysSession: one tab's unlocked meta keys, kept in step with other tabs."""

from __future__ import annotations

import logging
from typing import Optional

from stealthvault.models import AllMetaKeys
from stealthvault.storage.backend import StorageArea, StorageEvent
from stealthvault.util.clock import now_ms
from stealthvault.vault.manager import MetaKeysInput, SharedVault

logger = logging.getLogger("stealthvault.vault")


class MetaKeysSession:
    """Holds decrypted keys for a tab and reacts to unlocks in other tabs.

    After a successful save or PIN unlock the tab writes a session marker.
    Other tabs see the marker change and, if they are still locked, try the
    shared session key so the user does not have to type the PIN again.
    """

    def __init__(self, vault: SharedVault, storage: StorageArea):
        self.vault = vault
        self.storage = storage
        self.meta_keys: Optional[AllMetaKeys] = None
        self.is_loaded = False
        self.operation_in_progress = False
        self.session_loading_complete = False
        storage.add_listener(self._on_storage_change)

    def _mark_session(self) -> None:
        try:
            self.storage.set_item(self.vault.settings.session_marker_key, str(now_ms()))
        except Exception as exc:
            logger.warning("Could not announce session to other tabs: %s", exc)

    def _set_keys(self, keys: AllMetaKeys) -> None:
        self.meta_keys = keys
        self.is_loaded = True

    # ------------------------------------------------------------------
    def save(self, keys: MetaKeysInput, pin: str) -> bool:
        if not pin:
            logger.error("PIN is required to save meta keys securely")
            return False

        self.operation_in_progress = True
        try:
            if not isinstance(keys, AllMetaKeys):
                try:
                    keys = AllMetaKeys.from_dict(
                        {chain: value for chain, value in keys.items() if value}
                    )
                except ValueError as exc:
                    logger.error("Refusing to save malformed meta keys: %s", exc)
                    return False
            if not self.vault.store_encrypted(pin, keys):
                return False
            self._set_keys(keys)
            self._mark_session()
            logger.info("Meta keys saved securely")
            return True
        finally:
            self.operation_in_progress = False

    def unlock(self, pin: str) -> bool:
        self.operation_in_progress = True
        try:
            keys = self.vault.retrieve_with_pin(pin)
            if keys is None:
                logger.info("Failed to unlock meta keys")
                return False
            self._set_keys(keys)
            self._mark_session()
            logger.info("Meta keys unlocked")
            return True
        finally:
            self.operation_in_progress = False

    def load_from_session(self) -> bool:
        try:
            if not self.vault.has_encrypted_vault():
                logger.info("No encrypted meta keys found")
                return False
            if not self.vault.has_valid_session():
                logger.info("No valid session key; PIN required")
                return False
            keys = self.vault.retrieve_with_session()
            if keys is None:
                logger.warning("Session present but meta keys could not be decrypted")
                return False
            self._set_keys(keys)
            logger.info("Meta keys loaded from session")
            return True
        finally:
            self.session_loading_complete = True

    def clear(self) -> None:
        self.vault.clear()
        self.meta_keys = None
        self.is_loaded = False
        self.session_loading_complete = False

    # ------------------------------------------------------------------
    def _on_storage_change(self, event: StorageEvent) -> None:
        if event.key != self.vault.settings.session_marker_key or self.is_loaded:
            return
        logger.info("Meta keys session changed in another tab")
        keys = self.vault.retrieve_with_session()
        if keys is not None:
            self._set_keys(keys)

    def close(self) -> None:
        self.storage.remove_listener(self._on_storage_change)
