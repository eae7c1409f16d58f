"""Persisted record formats and protocol constants.

Every record is stored as a JSON string under a single storage key. Byte
fields are written as JSON arrays of integers (0..255) so that a vault
written by one front end can be read by another without a base64 layer.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Dict, List

from stealthvault.errors import PayloadFormatError

# ============================================================================
#  Protocol constants
# ============================================================================
SALT_SIZE = 16  # 128 bits, fresh per PIN derivation
IV_SIZE = 12  # 96 bits (AES-GCM)
KEY_SIZE = 32  # 256 bits
TAG_SIZE = 16  # GCM authentication tag

# Changing these breaks every stored vault; bump a format version first.
PBKDF2_ITERATIONS = 100_000
PBKDF2_HASH = "SHA-256"


# ============================================================================
#  Byte helpers
# ============================================================================
def bytes_to_list(data: bytes) -> List[int]:
    return list(data)


def list_to_bytes(value: Any, field: str, size: int | None = None) -> bytes:
    if not isinstance(value, list):
        raise PayloadFormatError(f"'{field}' must be a list of byte values")
    try:
        raw = bytes(value)
    except (TypeError, ValueError) as exc:
        raise PayloadFormatError(f"'{field}' contains non-byte values") from exc
    if size is not None and len(raw) != size:
        raise PayloadFormatError(f"'{field}' must be {size} bytes, got {len(raw)}")
    return raw


def _load_object(raw: str, what: str) -> Dict[str, Any]:
    try:
        obj = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as exc:
        raise PayloadFormatError(f"{what} is not valid JSON") from exc
    if not isinstance(obj, dict):
        raise PayloadFormatError(f"{what} must be a JSON object")
    return obj


def _int_field(obj: Dict[str, Any], field: str) -> int:
    value = obj.get(field)
    # bool is an int subclass; a timestamp of True is still garbage
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PayloadFormatError(f"'{field}' must be a number")
    if isinstance(value, float) and not math.isfinite(value):
        raise PayloadFormatError(f"'{field}' must be finite")
    return int(value)


# ============================================================================
#  EncryptedPayload
# ============================================================================
@dataclass(frozen=True)
class EncryptedPayload:
    ciphertext: bytes
    iv: bytes
    salt: bytes
    timestamp: int  # ms since epoch

    def to_json(self) -> str:
        return json.dumps(
            {
                "encrypted": bytes_to_list(self.ciphertext),
                "iv": bytes_to_list(self.iv),
                "salt": bytes_to_list(self.salt),
                "timestamp": self.timestamp,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> EncryptedPayload:
        obj = _load_object(raw, "Encrypted payload")
        ciphertext = list_to_bytes(obj.get("encrypted"), "encrypted")
        if len(ciphertext) < TAG_SIZE:
            raise PayloadFormatError("Ciphertext shorter than the authentication tag")
        return cls(
            ciphertext=ciphertext,
            iv=list_to_bytes(obj.get("iv"), "iv", IV_SIZE),
            salt=list_to_bytes(obj.get("salt"), "salt", SALT_SIZE),
            timestamp=_int_field(obj, "timestamp"),
        )


# ============================================================================
#  SessionKeyData
# ============================================================================
@dataclass(frozen=True)
class SessionKeyData:
    key: bytes
    timestamp: int  # ms since epoch

    def to_json(self) -> str:
        return json.dumps({"key": bytes_to_list(self.key), "timestamp": self.timestamp})

    @classmethod
    def from_json(cls, raw: str) -> SessionKeyData:
        obj = _load_object(raw, "Session key")
        return cls(
            key=list_to_bytes(obj.get("key"), "key", KEY_SIZE),
            timestamp=_int_field(obj, "timestamp"),
        )

    def is_expired(self, now_ms: int, ttl_ms: int) -> bool:
        return now_ms - self.timestamp > ttl_ms


# ============================================================================
#  LockRecord
# ============================================================================
@dataclass(frozen=True)
class LockRecord:
    timestamp: int
    duration: int
    tab_id: str

    def to_json(self) -> str:
        return json.dumps(
            {"timestamp": self.timestamp, "duration": self.duration, "tabId": self.tab_id}
        )

    @classmethod
    def from_json(cls, raw: str) -> LockRecord:
        obj = _load_object(raw, "Lock record")
        tab_id = obj.get("tabId")
        if not isinstance(tab_id, str):
            raise PayloadFormatError("'tabId' must be a string")
        return cls(
            timestamp=_int_field(obj, "timestamp"),
            duration=_int_field(obj, "duration"),
            tab_id=tab_id,
        )

    def is_active(self, now_ms: int) -> bool:
        return now_ms - self.timestamp < self.duration


# ============================================================================
#  BroadcastEnvelope
# ============================================================================
@dataclass(frozen=True)
class BroadcastEnvelope:
    data: Any
    timestamp: int
    id: str

    def to_json(self) -> str:
        return json.dumps({"data": self.data, "timestamp": self.timestamp, "id": self.id})

    @classmethod
    def from_json(cls, raw: str) -> BroadcastEnvelope:
        obj = _load_object(raw, "Broadcast envelope")
        if "data" not in obj:
            raise PayloadFormatError("Broadcast envelope has no 'data'")
        return cls(
            data=obj["data"],
            timestamp=_int_field(obj, "timestamp"),
            id=str(obj.get("id", "")),
        )
