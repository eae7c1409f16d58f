"""SharedVault: PIN-encrypted meta keys plus a time-boxed session key.

Two storage entries belong to the vault and nothing else writes them:

* ``<ns>-encrypted-meta-keys`` holds the AES-GCM ciphertext, IV and PBKDF2
  salt. It has no TTL; the next store overwrites it.
* ``<ns>-session-key`` holds the raw derived key and the time it was cached.
  It lets later unlocks skip the PIN until it is older than the session TTL.

Every public method is total: failures are logged and reported as
``False`` / ``None``, never raised. Wrong PIN and corrupted data look the
same from outside.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Union

from stealthvault.config import Settings
from stealthvault.crypto.engine import AeadCipher, DerivedKey, KeyDerivation
from stealthvault.crypto.formats import EncryptedPayload, SessionKeyData
from stealthvault.errors import PayloadFormatError
from stealthvault.models import AllMetaKeys
from stealthvault.storage.backend import StorageArea
from stealthvault.util.clock import now_ms
from stealthvault.util.rate_limit import RateLimiter, RateLimitExceeded

module_logger = logging.getLogger("stealthvault.vault")

MetaKeysInput = Union[AllMetaKeys, Dict[str, object]]


class SharedVault:
    """Vault persistence and session cache over an injected storage area."""

    def __init__(
        self,
        storage: StorageArea,
        settings: Settings | None = None,
        logger: logging.Logger | None = None,
        rate_limiter: RateLimiter | None = None,
        kdf: KeyDerivation | None = None,
        cipher: AeadCipher | None = None,
    ):
        self.storage = storage
        self.settings = settings or Settings()
        self.log = logger or module_logger
        self.rate_limiter = rate_limiter
        self.kdf = kdf or KeyDerivation()
        self.cipher = cipher or AeadCipher()

    # ------------------------------------------------------------------
    #  Store
    # ------------------------------------------------------------------
    def store_encrypted(self, pin: str, keys: MetaKeysInput) -> bool:
        """Encrypt *keys* under *pin*, replacing any previous vault, and cache the key."""
        key: Optional[DerivedKey] = None
        try:
            if not isinstance(keys, AllMetaKeys):
                keys = AllMetaKeys.from_dict(keys)
            key, salt = self.kdf.derive(pin)
            ciphertext, iv = self.cipher.encrypt(keys, key)
            payload = EncryptedPayload(
                ciphertext=ciphertext, iv=iv, salt=salt, timestamp=now_ms()
            )
            self.storage.set_item(self.settings.vault_key, payload.to_json())
            self._write_session(key)
            self.log.info("Meta keys stored (%d chain(s))", len(keys.to_dict()))
            return True
        except Exception as exc:
            self.log.error("Failed to store encrypted meta keys: %s: %s", type(exc).__name__, exc)
            return False
        finally:
            if key is not None:
                key.destroy()

    # ------------------------------------------------------------------
    #  Retrieve
    # ------------------------------------------------------------------
    def retrieve_with_pin(self, pin: str) -> Optional[AllMetaKeys]:
        """Decrypt with *pin*; on success the session key is refreshed."""
        key: Optional[DerivedKey] = None
        try:
            raw = self.storage.get_item(self.settings.vault_key)
            if raw is None:
                return None
            payload = EncryptedPayload.from_json(raw)

            if self.rate_limiter is not None:
                self.rate_limiter.check()

            key, _ = self.kdf.derive(pin, payload.salt)
            keys = self.cipher.decrypt(payload.ciphertext, key, payload.iv)

            if self.rate_limiter is not None:
                self.rate_limiter.reset()
            self._write_session(key)
            self.log.info("Meta keys unlocked with PIN")
            return keys
        except RateLimitExceeded as exc:
            self.log.warning("PIN unlock refused: %s", exc)
            return None
        except Exception as exc:
            self.log.error("Failed to decrypt meta keys with PIN: %s: %s", type(exc).__name__, exc)
            return None
        finally:
            if key is not None:
                key.destroy()

    def retrieve_with_session(self) -> Optional[AllMetaKeys]:
        """Decrypt with the cached session key, if present and fresh."""
        key: Optional[DerivedKey] = None
        try:
            raw_session = self.storage.get_item(self.settings.session_key)
            raw_payload = self.storage.get_item(self.settings.vault_key)
            if raw_session is None or raw_payload is None:
                return None

            session = SessionKeyData.from_json(raw_session)
            if session.is_expired(now_ms(), self.settings.session_ttl_ms):
                self.storage.remove_item(self.settings.session_key)
                self.log.info("Session key expired and removed")
                return None

            payload = EncryptedPayload.from_json(raw_payload)
            key = DerivedKey.import_raw(session.key)
            return self.cipher.decrypt(payload.ciphertext, key, payload.iv)
        except Exception as exc:
            self.log.error(
                "Failed to decrypt meta keys with session: %s: %s", type(exc).__name__, exc
            )
            self._drop_session()
            return None
        finally:
            if key is not None:
                key.destroy()

    # ------------------------------------------------------------------
    #  Checks
    # ------------------------------------------------------------------
    def has_encrypted_vault(self) -> bool:
        try:
            return self.storage.get_item(self.settings.vault_key) is not None
        except Exception as exc:
            self.log.error("Vault existence check failed: %s", exc)
            return False

    def has_valid_session(self) -> bool:
        """Existence and freshness only; expired or unreadable sessions are removed."""
        try:
            raw = self.storage.get_item(self.settings.session_key)
            if raw is None:
                return False
            session = SessionKeyData.from_json(raw)
            if session.is_expired(now_ms(), self.settings.session_ttl_ms):
                self.log.info("Session expired, removing")
                self.storage.remove_item(self.settings.session_key)
                return False
            return True
        except PayloadFormatError as exc:
            self.log.error("Session check error: %s", exc)
            self._drop_session()
            return False
        except Exception as exc:
            self.log.error("Session check error: %s: %s", type(exc).__name__, exc)
            return False

    # ------------------------------------------------------------------
    #  Lock / clear
    # ------------------------------------------------------------------
    def lock(self) -> None:
        """Forget the session key so the next unlock needs the PIN."""
        self._drop_session()
        self.log.info("Vault locked")

    def clear(self) -> None:
        """Remove vault and session. Safe to call on an empty store."""
        for entry in (self.settings.vault_key, self.settings.session_key):
            try:
                self.storage.remove_item(entry)
            except Exception as exc:
                self.log.error("Failed to remove %s: %s", entry, exc)
        self.log.info("Meta keys cleared")

    # ------------------------------------------------------------------
    #  Session helpers
    # ------------------------------------------------------------------
    def _write_session(self, key: DerivedKey) -> None:
        session = SessionKeyData(key=key.export_raw(), timestamp=now_ms())
        self.storage.set_item(self.settings.session_key, session.to_json())
        self.log.debug("Session key cached at %d", session.timestamp)

    def _drop_session(self) -> None:
        try:
            self.storage.remove_item(self.settings.session_key)
        except Exception as exc:
            self.log.error("Failed to remove session key: %s", exc)
