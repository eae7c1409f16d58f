"""MetaKeySet / AllMetaKeys: the typed plaintext a vault protects."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict, Iterator, Optional, Tuple

from stealthvault.errors import PayloadFormatError

CHAIN_APTOS = "APTOS"
SUPPORTED_CHAINS: Tuple[str, ...] = (CHAIN_APTOS,)


@dataclass(frozen=True)
class MetaKeySet:
    """Key material for one chain. Hex / base58 strings, never parsed here."""

    address: str
    metaSpendPriv: str
    metaSpendPub: str
    metaViewPriv: str
    metaViewPub: str

    def to_dict(self) -> Dict[str, str]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Any) -> MetaKeySet:
        if not isinstance(data, dict):
            raise PayloadFormatError("Meta key set must be an object")
        values = {}
        for f in fields(cls):
            value = data.get(f.name)
            if not isinstance(value, str):
                raise PayloadFormatError(f"Meta key field '{f.name}' must be a string")
            values[f.name] = value
        return cls(**values)

    def __repr__(self) -> str:
        # private halves stay out of tracebacks and log lines
        return f"MetaKeySet(address={self.address!r}, metaSpendPub={self.metaSpendPub!r})"


@dataclass(frozen=True)
class AllMetaKeys:
    """Per-chain meta keys. Absent chains are ``None`` and are not serialized."""

    APTOS: Optional[MetaKeySet] = None

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        return {
            chain: keys.to_dict() for chain, keys in self.items()
        }

    @classmethod
    def from_dict(cls, data: Any) -> AllMetaKeys:
        if not isinstance(data, dict):
            raise PayloadFormatError("Meta keys must be an object keyed by chain")
        unknown = set(data) - set(SUPPORTED_CHAINS)
        if unknown:
            raise PayloadFormatError(f"Unknown chain(s): {', '.join(sorted(unknown))}")
        values = {}
        for chain in SUPPORTED_CHAINS:
            entry = data.get(chain)
            values[chain] = None if entry is None else MetaKeySet.from_dict(entry)
        return cls(**values)

    def items(self) -> Iterator[Tuple[str, MetaKeySet]]:
        for chain in SUPPORTED_CHAINS:
            keys = getattr(self, chain)
            if keys is not None:
                yield chain, keys

    def is_empty(self) -> bool:
        return next(self.items(), None) is None
