"""Cross-tab coordination: advisory locks and state broadcasts."""

from stealthvault.sync.broadcast import StateBroadcaster
from stealthvault.sync.events import PageEvents
from stealthvault.sync.locks import TabLockManager

__all__ = ["PageEvents", "StateBroadcaster", "TabLockManager"]
