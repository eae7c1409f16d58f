"""StealthVault cryptographic modules."""

from stealthvault.crypto.formats import (
    IV_SIZE,
    KEY_SIZE,
    PBKDF2_ITERATIONS,
    SALT_SIZE,
    EncryptedPayload,
    SessionKeyData,
)
from stealthvault.crypto.engine import AeadCipher, DerivedKey, KeyDerivation

__all__ = [
    "IV_SIZE",
    "KEY_SIZE",
    "PBKDF2_ITERATIONS",
    "SALT_SIZE",
    "EncryptedPayload",
    "SessionKeyData",
    "AeadCipher",
    "DerivedKey",
    "KeyDerivation",
]
