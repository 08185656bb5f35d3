"""Asset token protocol — fungible-asset transfer abstraction."""
from typing import Protocol


class AssetToken(Protocol):
    """Abstract interface for the single fungible asset the ledger holds."""

    @property
    def symbol(self) -> str: ...

    def transfer(self, amount: int, sender: str, recipient: str) -> bool: ...

    def balance_of(self, principal: str) -> int: ...

    def mint(self, amount: int, recipient: str) -> bool: ...
