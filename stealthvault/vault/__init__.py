"""StealthVault vault modules."""

from stealthvault.vault.manager import SharedVault
from stealthvault.vault.session import MetaKeysSession

__all__ = ["SharedVault", "MetaKeysSession"]
