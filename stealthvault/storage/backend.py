"""Shared string key-value storage: backends, per-tab areas, and change events.

A backend is the origin-wide store. Each tab talks to it through its own
``StorageArea``; writes made through one area are announced to listeners on
every *other* area attached to the same backend, never to the writer.
"""

from __future__ import annotations

import abc
import json
import logging
import os
import platform
import tempfile
import threading
import time
import weakref
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional

from stealthvault.config import Config
from stealthvault.errors import StorageError, StorageQuotaError

logger = logging.getLogger("stealthvault.storage")


@dataclass(frozen=True)
class StorageEvent:
    key: str
    old_value: Optional[str]
    new_value: Optional[str]


StorageListener = Callable[[StorageEvent], None]


def _document_size(doc: Dict[str, str]) -> int:
    return sum(len(k) + len(v) for k, v in doc.items())


# ============================================================================
#  StorageBackend
# ============================================================================
class StorageBackend(abc.ABC):
    """Origin-wide store. Each call is atomic; there are no transactions."""

    def __init__(self) -> None:
        self._mutex = threading.RLock()
        self._areas: "weakref.WeakSet[StorageArea]" = weakref.WeakSet()

    @abc.abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abc.abstractmethod
    def set(self, key: str, value: str) -> Optional[str]:
        """Store *value*, returning the previous value."""

    @abc.abstractmethod
    def remove(self, key: str) -> Optional[str]:
        """Delete *key*, returning the previous value."""

    @abc.abstractmethod
    def keys(self) -> List[str]:
        ...

    # -- change fan-out -----------------------------------------------------
    def attach(self, area: StorageArea) -> None:
        with self._mutex:
            self._areas.add(area)

    def detach(self, area: StorageArea) -> None:
        with self._mutex:
            self._areas.discard(area)

    def notify(self, origin: StorageArea, event: StorageEvent) -> None:
        with self._mutex:
            targets = [a for a in self._areas if a is not origin]
        for area in targets:
            area.dispatch(event)


# ============================================================================
#  MemoryBackend
# ============================================================================
class MemoryBackend(StorageBackend):
    """In-process dict store, optionally with a size quota in characters."""

    def __init__(self, quota: int | None = None):
        super().__init__()
        self._data: Dict[str, str] = {}
        self.quota = quota

    def get(self, key: str) -> Optional[str]:
        with self._mutex:
            return self._data.get(key)

    def set(self, key: str, value: str) -> Optional[str]:
        with self._mutex:
            if self.quota is not None:
                candidate = dict(self._data)
                candidate[key] = value
                if _document_size(candidate) > self.quota:
                    raise StorageQuotaError(f"Storage quota of {self.quota} exceeded")
            old = self._data.get(key)
            self._data[key] = value
            return old

    def remove(self, key: str) -> Optional[str]:
        with self._mutex:
            return self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._mutex:
            return list(self._data)


# ============================================================================
#  FileBackend
# ============================================================================
class FileBackend(StorageBackend):
    """One JSON document on disk with atomic writes and cross-process locking.

    Every operation re-reads the file under an exclusive ``flock`` so several
    processes can share it. Change events only reach areas in this process.
    """

    def __init__(self, path: Path, max_size: int = Config.MAX_STORE_SIZE):
        super().__init__()
        self.path = path
        self.lock_path = path.parent / (path.name + ".lock")
        self.max_size = max_size

        self.path.parent.mkdir(parents=True, exist_ok=True)
        if platform.system() != "Windows":
            try:
                os.chmod(self.path.parent, 0o700)
            except OSError:
                pass

    # -- locking ------------------------------------------------------------
    @contextmanager
    def _locked(self) -> Iterator[None]:
        with self._mutex:
            try:
                self.lock_path.touch(mode=0o600, exist_ok=True)
                lock_file = open(self.lock_path, "r+b")
            except OSError as exc:
                raise StorageError(f"Cannot open storage lock: {exc}") from exc
            try:
                if platform.system() != "Windows":
                    import fcntl

                    fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
                yield
            finally:
                # closing the descriptor drops the flock
                lock_file.close()

    # -- document I/O -------------------------------------------------------
    def _read_document(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            size = self.path.stat().st_size
            if size > self.max_size * 2:
                raise StorageError(f"Storage file too large: {size} bytes")
            doc = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StorageError(f"Storage file unreadable: {exc}") from exc
        if not isinstance(doc, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in doc.items()
        ):
            raise StorageError("Storage file is not a string map")
        return doc

    def _write_document(self, doc: Dict[str, str]) -> None:
        if _document_size(doc) > self.max_size:
            raise StorageQuotaError(f"Storage quota of {self.max_size} exceeded")

        old_umask = None
        try:
            if os.name != "nt":
                old_umask = os.umask(0o077)
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix="sv_tmp_",
                suffix=".json",
                delete=False,
            ) as tmp:
                json.dump(doc, tmp)
                tmp.flush()
                os.fsync(tmp.fileno())
                temp_path = Path(tmp.name)
            if os.name != "nt":
                os.chmod(temp_path, 0o600)
            temp_path.replace(self.path)
        except OSError as exc:
            raise StorageError(f"Storage write failed: {exc}") from exc
        finally:
            if old_umask is not None:
                os.umask(old_umask)
        self._cleanup_temp_files()

    def _cleanup_temp_files(self) -> None:
        for tmp in self.path.parent.glob("sv_tmp_*"):
            try:
                if time.time() - tmp.stat().st_mtime > 3600:
                    tmp.unlink()
            except OSError as exc:
                logger.debug("Could not remove stale temp file %s: %s", tmp, exc)

    # -- StorageBackend -----------------------------------------------------
    def get(self, key: str) -> Optional[str]:
        with self._locked():
            return self._read_document().get(key)

    def set(self, key: str, value: str) -> Optional[str]:
        with self._locked():
            doc = self._read_document()
            old = doc.get(key)
            doc[key] = value
            self._write_document(doc)
            return old

    def remove(self, key: str) -> Optional[str]:
        with self._locked():
            doc = self._read_document()
            if key not in doc:
                return None
            old = doc.pop(key)
            self._write_document(doc)
            return old

    def keys(self) -> List[str]:
        with self._locked():
            return list(self._read_document())


# ============================================================================
#  StorageArea
# ============================================================================
class StorageArea:
    """One tab's view of a backend, the analogue of ``window.localStorage``."""

    def __init__(self, backend: StorageBackend):
        self.backend = backend
        self._listeners: List[StorageListener] = []
        self._listeners_lock = threading.Lock()
        backend.attach(self)

    def get_item(self, key: str) -> Optional[str]:
        return self.backend.get(key)

    def set_item(self, key: str, value: str) -> None:
        old = self.backend.set(key, value)
        if old != value:
            self.backend.notify(self, StorageEvent(key, old, value))

    def remove_item(self, key: str) -> None:
        old = self.backend.remove(key)
        if old is not None:
            self.backend.notify(self, StorageEvent(key, old, None))

    def keys(self) -> List[str]:
        return self.backend.keys()

    # -- listeners ----------------------------------------------------------
    def add_listener(self, listener: StorageListener) -> None:
        with self._listeners_lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: StorageListener) -> None:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def dispatch(self, event: StorageEvent) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Storage listener failed for key %s", event.key)

    def close(self) -> None:
        with self._listeners_lock:
            self._listeners.clear()
        self.backend.detach(self)
