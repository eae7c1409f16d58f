"""SecureMemory: mlock'd buffer for PINs and raw key bytes, wiped on release."""

from __future__ import annotations

import ctypes
import logging
import platform
import secrets
from typing import Union

logger = logging.getLogger("stealthvault.memory")


def wipe(buf: bytearray) -> None:
    """Overwrite *buf* in place with zeros."""
    for i in range(len(buf)):
        buf[i] = 0


class SecureMemory:
    """A bytearray kept in locked (non-swappable) memory where the OS allows it."""

    def __init__(self, data: Union[bytes, bytearray, str]):
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._size = len(data)
        self._data = bytearray(data)
        self._locked = False
        self._protect_memory()

    def _address(self) -> int:
        return ctypes.addressof(ctypes.c_char.from_buffer(self._data))

    def _protect_memory(self) -> None:
        if self._size == 0:
            return
        try:
            if platform.system() == "Windows":
                kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
                if kernel32.VirtualLock(
                    ctypes.c_void_p(self._address()), ctypes.c_size_t(self._size)
                ):
                    self._locked = True
            else:
                libc = ctypes.CDLL(None)
                rc = libc.mlock(ctypes.c_void_p(self._address()), ctypes.c_size_t(self._size))
                self._locked = rc == 0
        except Exception as exc:
            logger.debug("Memory locking unavailable: %s", exc)

    def _unprotect_memory(self) -> None:
        try:
            if platform.system() == "Windows":
                kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
                kernel32.VirtualUnlock(
                    ctypes.c_void_p(self._address()), ctypes.c_size_t(self._size)
                )
            else:
                libc = ctypes.CDLL(None)
                libc.munlock(ctypes.c_void_p(self._address()), ctypes.c_size_t(self._size))
        except Exception as exc:
            logger.debug("munlock failed: %s", exc)

    def get_bytes(self) -> bytes:
        if not self._data:
            raise ValueError("Memory already cleared")
        return bytes(self._data)

    def clear(self) -> None:
        if not getattr(self, "_data", None):
            return
        try:
            # random pass, then zeros
            self._data[:] = secrets.token_bytes(self._size)
            wipe(self._data)
            if self._locked:
                self._unprotect_memory()
        finally:
            self._data = bytearray()
            self._size = 0
            self._locked = False

    def __len__(self) -> int:
        return self._size

    def __del__(self):
        self.clear()

    @property
    def is_protected(self) -> bool:
        return self._locked
