"""Tests for persisted record serialisation."""

from __future__ import annotations

import json
import secrets

import pytest

from stealthvault.crypto.formats import (
    IV_SIZE,
    KEY_SIZE,
    SALT_SIZE,
    BroadcastEnvelope,
    EncryptedPayload,
    LockRecord,
    SessionKeyData,
)
from stealthvault.errors import PayloadFormatError


def _payload():
    return EncryptedPayload(
        ciphertext=secrets.token_bytes(48),
        iv=secrets.token_bytes(IV_SIZE),
        salt=secrets.token_bytes(SALT_SIZE),
        timestamp=1_700_000_000_000,
    )


class TestEncryptedPayload:
    def test_wire_layout(self):
        payload = _payload()
        obj = json.loads(payload.to_json())
        assert set(obj) == {"encrypted", "iv", "salt", "timestamp"}
        assert obj["iv"] == list(payload.iv)
        assert all(isinstance(b, int) and 0 <= b <= 255 for b in obj["encrypted"])

    def test_parse(self):
        payload = _payload()
        assert EncryptedPayload.from_json(payload.to_json()) == payload

    def test_rejects_bad_iv_length(self):
        obj = json.loads(_payload().to_json())
        obj["iv"] = obj["iv"][:8]
        with pytest.raises(PayloadFormatError, match="iv"):
            EncryptedPayload.from_json(json.dumps(obj))

    def test_rejects_out_of_range_bytes(self):
        obj = json.loads(_payload().to_json())
        obj["salt"][0] = 300
        with pytest.raises(PayloadFormatError):
            EncryptedPayload.from_json(json.dumps(obj))

    def test_rejects_missing_timestamp(self):
        obj = json.loads(_payload().to_json())
        del obj["timestamp"]
        with pytest.raises(PayloadFormatError):
            EncryptedPayload.from_json(json.dumps(obj))

    @pytest.mark.parametrize("raw", ["", "not json", "[]", "null"])
    def test_rejects_non_objects(self, raw):
        with pytest.raises(PayloadFormatError):
            EncryptedPayload.from_json(raw)


class TestSessionKeyData:
    def test_wire_layout(self):
        data = SessionKeyData(key=secrets.token_bytes(KEY_SIZE), timestamp=5)
        obj = json.loads(data.to_json())
        assert obj == {"key": list(data.key), "timestamp": 5}

    def test_rejects_short_key(self):
        with pytest.raises(PayloadFormatError):
            SessionKeyData.from_json(json.dumps({"key": [1, 2, 3], "timestamp": 0}))

    def test_expiry_boundary(self):
        data = SessionKeyData(key=b"\x00" * KEY_SIZE, timestamp=1000)
        assert not data.is_expired(now_ms=1100, ttl_ms=100)
        assert data.is_expired(now_ms=1101, ttl_ms=100)


class TestLockRecord:
    def test_tab_id_serialised_camel_case(self):
        obj = json.loads(LockRecord(10, 5000, "abc").to_json())
        assert obj == {"timestamp": 10, "duration": 5000, "tabId": "abc"}

    def test_active_window(self):
        record = LockRecord(timestamp=1000, duration=50, tab_id="t")
        assert record.is_active(1049)
        assert not record.is_active(1050)

    def test_missing_tab_id(self):
        with pytest.raises(PayloadFormatError):
            LockRecord.from_json(json.dumps({"timestamp": 1, "duration": 1}))

    @pytest.mark.parametrize("number", ["1e400", "-1e400", "NaN", "Infinity"])
    def test_non_finite_numbers_rejected(self, number):
        raw = '{"timestamp": ' + number + ', "duration": 1000, "tabId": "a"}'
        with pytest.raises(PayloadFormatError, match="finite"):
            LockRecord.from_json(raw)


class TestBroadcastEnvelope:
    def test_parse(self):
        env = BroadcastEnvelope(data={"a": 1}, timestamp=3, id="x")
        assert BroadcastEnvelope.from_json(env.to_json()) == env

    def test_requires_data(self):
        with pytest.raises(PayloadFormatError):
            BroadcastEnvelope.from_json(json.dumps({"timestamp": 1, "id": "x"}))
