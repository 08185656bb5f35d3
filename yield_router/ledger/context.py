"""Explicit execution context shared by the adapter and the aggregator."""
from __future__ import annotations

from dataclasses import dataclass, field

from ..events import EventLog, LedgerEvent


@dataclass
class LedgerContext:
    """Owner principal, block clock and event sink for one ledger instance.

    ``block_height`` advances once per committed mutating operation, giving
    deposit history entries and events a strictly increasing reference.
    """

    owner: str
    block_height: int = 0
    events: EventLog = field(default_factory=EventLog)

    def is_owner(self, caller: str) -> bool:
        return caller == self.owner

    def tick(self) -> int:
        self.block_height += 1
        return self.block_height

    def emit(self, kind: str, **kwargs) -> LedgerEvent:
        event = LedgerEvent(kind=kind, block_height=self.block_height, **kwargs)
        self.events.emit(event)
        return event
