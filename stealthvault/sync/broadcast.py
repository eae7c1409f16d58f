"""StateBroadcaster: best-effort announcements to this tab and every other tab."""

from __future__ import annotations

import logging
import secrets
from typing import Any, Callable

from stealthvault.config import Settings
from stealthvault.crypto.formats import BroadcastEnvelope
from stealthvault.errors import PayloadFormatError, StorageError
from stealthvault.storage.backend import StorageArea, StorageEvent
from stealthvault.sync.events import PageEvents
from stealthvault.util.clock import now_ms

logger = logging.getLogger("stealthvault.sync")

STATE_CHANGE_EVENT = "state-change"

BroadcastCallback = Callable[[str, Any], None]


class StateBroadcaster:
    """Storage writes reach other tabs; page events reach this one.

    No acknowledgement and no ordering guarantee. A later broadcast on the
    same key overwrites the stored envelope.
    """

    def __init__(
        self,
        storage: StorageArea,
        events: PageEvents,
        settings: Settings | None = None,
    ):
        self.storage = storage
        self.events = events
        self.settings = settings or Settings()

    def broadcast(self, key: str, data: Any) -> None:
        timestamp = now_ms()
        envelope = BroadcastEnvelope(data=data, timestamp=timestamp, id=secrets.token_hex(8))
        try:
            self.storage.set_item(f"{self.settings.broadcast_prefix}{key}", envelope.to_json())
        except StorageError as exc:
            logger.warning("Broadcast '%s' not persisted: %s", key, exc)

        self.events.dispatch(
            STATE_CHANGE_EVENT, {"key": key, "data": data, "timestamp": timestamp}
        )

    def on_broadcast(self, callback: BroadcastCallback) -> Callable[[], None]:
        """Register *callback* for both channels; returns an unsubscribe function."""
        prefix = self.settings.broadcast_prefix

        def handle_storage_change(event: StorageEvent) -> None:
            if not event.key.startswith(prefix) or not event.new_value:
                return
            try:
                envelope = BroadcastEnvelope.from_json(event.new_value)
            except PayloadFormatError as exc:
                logger.error("Error parsing broadcast data for %s: %s", event.key, exc)
                return
            callback(event.key[len(prefix):], envelope.data)

        def handle_page_event(detail: Any) -> None:
            callback(detail["key"], detail["data"])

        self.storage.add_listener(handle_storage_change)
        self.events.add_listener(STATE_CHANGE_EVENT, handle_page_event)

        def unsubscribe() -> None:
            self.storage.remove_listener(handle_storage_change)
            self.events.remove_listener(STATE_CHANGE_EVENT, handle_page_event)

        return unsubscribe
