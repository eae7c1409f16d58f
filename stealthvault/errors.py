"""Exception types raised below the SharedVault surface.

SharedVault converts all of these to ``False`` / ``None`` for its callers.
"""

from __future__ import annotations


class PayloadFormatError(ValueError):
    """A stored record or decrypted plaintext does not have the expected shape."""


class DerivationError(RuntimeError):
    """The KDF rejected its inputs (bad salt length, unencodable PIN...)."""


class DecryptionError(ValueError):
    """Wrong key, tampered ciphertext, or garbage plaintext. Deliberately opaque."""


class KeyExportError(PermissionError):
    """Raw bytes were requested from a key that is not exportable."""


class KeyUsageError(PermissionError):
    """A key was used for an operation outside its declared usages."""


class StorageError(OSError):
    """The key-value store could not complete a read or write."""


class StorageQuotaError(StorageError):
    """A write would exceed the store's size limit."""
