"""In-memory fungible token used as the ledger's sBTC asset."""
from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class InMemoryToken:
    """Balance-map token exposing transfer / balance_of / mint.

    Transfers report failure with ``False`` instead of raising, which is the
    signal the ledger propagates as its own ``TransferFailed`` error.
    """

    def __init__(self, symbol: str = "sBTC", decimals: int = 8) -> None:
        self._symbol = symbol
        self.decimals = decimals
        self._balances: dict[str, int] = {}
        self._supply = 0

    @property
    def symbol(self) -> str:
        return self._symbol

    def balance_of(self, principal: str) -> int:
        return self._balances.get(principal, 0)

    def total_supply(self) -> int:
        return self._supply

    def mint(self, amount: int, recipient: str) -> bool:
        if amount <= 0:
            return False
        self._balances[recipient] = self.balance_of(recipient) + amount
        self._supply += amount
        logger.debug("Minted %d %s to %s", amount, self._symbol, recipient)
        return True

    def transfer(self, amount: int, sender: str, recipient: str) -> bool:
        if amount <= 0 or sender == recipient:
            return False
        available = self.balance_of(sender)
        if available < amount:
            logger.debug(
                "Transfer of %d %s from %s refused: balance %d",
                amount, self._symbol, sender, available,
            )
            return False
        self._balances[sender] = available - amount
        self._balances[recipient] = self.balance_of(recipient) + amount
        return True
