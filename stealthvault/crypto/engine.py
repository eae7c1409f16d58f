"""KeyDerivation (PBKDF2-SHA256), DerivedKey handles, and AeadCipher (AES-256-GCM)."""

from __future__ import annotations

import json
import logging
import secrets
from typing import FrozenSet, Iterable, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from stealthvault.crypto.formats import (
    IV_SIZE,
    KEY_SIZE,
    PBKDF2_ITERATIONS,
    SALT_SIZE,
)
from stealthvault.errors import (
    DecryptionError,
    DerivationError,
    KeyExportError,
    KeyUsageError,
    PayloadFormatError,
)
from stealthvault.models import AllMetaKeys
from stealthvault.util.memory import SecureMemory, wipe

logger = logging.getLogger("stealthvault.crypto")

USAGE_ENCRYPT = "encrypt"
USAGE_DECRYPT = "decrypt"


# ============================================================================
#  DerivedKey
# ============================================================================
class DerivedKey:
    """A symmetric key handle with an exportable flag and allowed usages.

    Keys derived from a PIN are exportable so the session cache can persist
    them. Keys re-imported from the session cache are decrypt-only and not
    exportable again.
    """

    def __init__(
        self,
        raw: bytes,
        *,
        exportable: bool,
        usages: Iterable[str] = (USAGE_ENCRYPT, USAGE_DECRYPT),
    ):
        if len(raw) != KEY_SIZE:
            raise ValueError(f"Key must be {KEY_SIZE} bytes, got {len(raw)}")
        self._secret = SecureMemory(raw)
        self.exportable = exportable
        self.usages: FrozenSet[str] = frozenset(usages)

    @classmethod
    def import_raw(
        cls,
        raw: bytes,
        *,
        exportable: bool = False,
        usages: Iterable[str] = (USAGE_DECRYPT,),
    ) -> DerivedKey:
        return cls(raw, exportable=exportable, usages=usages)

    def export_raw(self) -> bytes:
        if not self.exportable:
            raise KeyExportError("Key is not exportable")
        return self._secret.get_bytes()

    def _material(self, usage: str) -> bytes:
        if usage not in self.usages:
            raise KeyUsageError(f"Key does not permit '{usage}'")
        return self._secret.get_bytes()

    def destroy(self) -> None:
        self._secret.clear()

    def __repr__(self) -> str:
        return (
            f"DerivedKey(exportable={self.exportable}, "
            f"usages={sorted(self.usages)})"
        )


# ============================================================================
#  KeyDerivation
# ============================================================================
class KeyDerivation:
    """PIN + salt -> 256-bit AES key, PBKDF2-HMAC-SHA256 at a fixed iteration count."""

    iterations = PBKDF2_ITERATIONS

    def derive(self, pin: str, salt: bytes | None = None) -> Tuple[DerivedKey, bytes]:
        if salt is None:
            salt = secrets.token_bytes(SALT_SIZE)

        pin_mem: SecureMemory | None = None
        try:
            if len(salt) != SALT_SIZE:
                raise ValueError(f"salt must be {SALT_SIZE} bytes, got {len(salt)}")
            pin_mem = SecureMemory(pin)
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=KEY_SIZE,
                salt=bytes(salt),
                iterations=self.iterations,
            )
            pin_bytes = pin_mem.get_bytes() if len(pin_mem) else b""
            raw = bytearray(kdf.derive(pin_bytes))
        except (TypeError, ValueError, UnicodeEncodeError) as exc:
            raise DerivationError("Key derivation failed") from exc
        finally:
            if pin_mem is not None:
                pin_mem.clear()

        try:
            key = DerivedKey(bytes(raw), exportable=True)
        finally:
            wipe(raw)
        logger.debug("PIN key derived (PBKDF2-SHA256, %d iterations)", self.iterations)
        return key, bytes(salt)


# ============================================================================
#  AeadCipher
# ============================================================================
class AeadCipher:
    """AES-256-GCM over the JSON encoding of an ``AllMetaKeys`` record."""

    def encrypt(self, keys: AllMetaKeys, key: DerivedKey) -> Tuple[bytes, bytes]:
        plaintext = bytearray(json.dumps(keys.to_dict()).encode("utf-8"))
        try:
            # IV is always ours; callers never get to pick one
            iv = secrets.token_bytes(IV_SIZE)
            ciphertext = AESGCM(key._material(USAGE_ENCRYPT)).encrypt(iv, bytes(plaintext), None)
        finally:
            wipe(plaintext)
        return ciphertext, iv

    def decrypt(self, ciphertext: bytes, key: DerivedKey, iv: bytes) -> AllMetaKeys:
        cipher = AESGCM(key._material(USAGE_DECRYPT))
        try:
            plaintext = bytearray(cipher.decrypt(iv, ciphertext, None))
        except (InvalidTag, ValueError) as exc:
            raise DecryptionError("Decryption failed") from exc

        try:
            return AllMetaKeys.from_dict(json.loads(plaintext.decode("utf-8")))
        except (UnicodeDecodeError, json.JSONDecodeError, PayloadFormatError) as exc:
            raise DecryptionError("Decryption failed") from exc
        finally:
            wipe(plaintext)
