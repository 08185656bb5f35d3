"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ProtocolId(IntEnum):
    """Closed set of yield protocols the adapter can route to."""

    ZEST = 1
    VELAR = 2
    ALEX = 3
    STACKINGDAO = 4

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def from_name(cls, name: str) -> "ProtocolId":
        """Resolve a config/scenario name (case-insensitive) to an id."""
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown protocol '{name}'") from None


_LABELS = {
    ProtocolId.ZEST: "Zest",
    ProtocolId.VELAR: "Velar",
    ProtocolId.ALEX: "Alex",
    ProtocolId.STACKINGDAO: "StackingDao",
}


@dataclass(frozen=True)
class ProtocolInfo:
    """Snapshot of one registry entry."""

    protocol_id: ProtocolId
    rate: int
    paused: bool
    balance: int

    @property
    def name(self) -> str:
        return self.protocol_id.label

    @property
    def rate_percent(self) -> float:
        return self.rate / 100


@dataclass(frozen=True)
class DepositRecord:
    """One entry in a user's deposit history."""

    amount: int
    block_height: int
