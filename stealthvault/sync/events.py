"""PageEvents: synchronous in-tab event dispatch (the ``window`` event target)."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

logger = logging.getLogger("stealthvault.sync")

PageListener = Callable[[Any], None]


class PageEvents:
    """Named events delivered to listeners in the same tab only."""

    def __init__(self) -> None:
        self._listeners: DefaultDict[str, List[PageListener]] = defaultdict(list)
        self._lock = threading.Lock()

    def add_listener(self, name: str, listener: PageListener) -> None:
        with self._lock:
            self._listeners[name].append(listener)

    def remove_listener(self, name: str, listener: PageListener) -> None:
        with self._lock:
            if listener in self._listeners.get(name, []):
                self._listeners[name].remove(listener)

    def dispatch(self, name: str, detail: Any) -> None:
        with self._lock:
            listeners = list(self._listeners.get(name, []))
        for listener in listeners:
            try:
                listener(detail)
            except Exception:
                logger.exception("Listener for page event '%s' failed", name)

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()
