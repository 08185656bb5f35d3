"""Ledger events — append-only log with subscriber callbacks for indexers."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerEvent:
    """Observable record of a committed ledger mutation."""

    kind: str
    block_height: int
    principal: str = ""
    amount: int = 0
    protocol_id: int | None = None
    data: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Subscribers share the event; give them a read-only copy of the payload.
        object.__setattr__(self, "data", _freeze(self.data))


def _freeze(data: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(
        {k: _freeze(v) if isinstance(v, Mapping) else v for k, v in data.items()}
    )


Subscriber = Callable[[LedgerEvent], None]


class EventLog:
    """Ordered event sink shared by the adapter and aggregator."""

    def __init__(self) -> None:
        self._events: list[LedgerEvent] = []
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> None:
        self._subscribers.append(callback)

    def emit(self, event: LedgerEvent) -> None:
        """Record an event; runs only after the mutation it describes committed."""
        self._events.append(event)
        logger.debug("Event %s: %s", event.kind, event)
        for callback in self._subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.error("Event subscriber failed on %s: %s", event.kind, e)

    @property
    def events(self) -> tuple[LedgerEvent, ...]:
        return tuple(self._events)

    def of_kind(self, kind: str) -> list[LedgerEvent]:
        return [e for e in self._events if e.kind == kind]

    def __len__(self) -> int:
        return len(self._events)
