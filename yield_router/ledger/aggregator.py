"""Yield aggregator — user deposit ledger, totals, history and yield credit."""
from __future__ import annotations

import logging

from ..errors import (
    AlreadyInitialized,
    InsufficientBalance,
    InvalidAmount,
    NotInitialized,
    Unauthorized,
)
from ..interfaces.asset import AssetToken
from ..models import DepositRecord
from .adapter import ProtocolAdapter
from .context import LedgerContext

logger = logging.getLogger(__name__)


class YieldAggregator:
    """Front-of-house ledger; capital placement is delegated to the adapter.

    State machine: uninitialized -> initialized, crossed with active/paused.
    Deposits need initialized and active; withdrawals only need initialized.
    """

    def __init__(
        self, context: LedgerContext, asset: AssetToken, adapter: ProtocolAdapter
    ) -> None:
        self._ctx = context
        self._asset = asset
        self._adapter = adapter
        adapter.attach_pool(self)

        self._deposits: dict[str, int] = {}
        self._history: dict[str, list[DepositRecord]] = {}
        self._yield_credit: dict[str, int] = {}
        self._total_deposits = 0
        self._total_yield = 0
        self._retained_yield = 0
        self._initialized = False
        self._paused = False

    @property
    def adapter(self) -> ProtocolAdapter:
        return self._adapter

    def _require_owner(self, caller: str) -> None:
        if not self._ctx.is_owner(caller):
            raise Unauthorized(f"{caller} is not the aggregator owner")

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitialized("aggregator not initialized")

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    def initialize(self, caller: str) -> bool:
        """Mark the ledger initialized.

        A second call is rejected unless the emergency pause is set, in which
        case it succeeds and leaves the ledger and the pause flag untouched.
        """
        self._require_owner(caller)
        if self._initialized and not self._paused:
            raise AlreadyInitialized("aggregator already initialized")

        self._initialized = True
        self._ctx.tick()
        self._ctx.emit("init", principal=caller)
        logger.info("Aggregator initialized by %s", caller)
        return True

    def set_emergency_pause(self, caller: str, flag: bool) -> bool:
        self._require_owner(caller)
        self._paused = flag

        self._ctx.tick()
        self._ctx.emit("pause", principal=caller, data={"paused": flag})
        logger.warning("Emergency pause %s", "enabled" if flag else "lifted")
        return True

    def distribute_yield(self, caller: str, amount: int) -> bool:
        """Record externally-reported yield and credit depositors pro rata.

        Each depositor receives ``amount * deposit // total_deposits``; the
        rounding remainder, or everything when nobody has deposited, is
        retained by the pool.
        """
        self._require_owner(caller)
        if amount <= 0:
            raise InvalidAmount(f"yield amount must be positive, got {amount}")
        self._require_initialized()

        credited = 0
        if self._total_deposits > 0:
            for user, deposit in self._deposits.items():
                if deposit == 0:
                    continue
                share = amount * deposit // self._total_deposits
                if share:
                    self._yield_credit[user] = self._yield_credit.get(user, 0) + share
                    credited += share

        retained = amount - credited
        self._retained_yield += retained
        self._total_yield += amount

        self._ctx.tick()
        self._ctx.emit(
            "yield",
            principal=caller,
            amount=amount,
            data={"credited": credited, "retained": retained},
        )
        logger.info(
            "Distributed yield %d (credited %d, retained %d)", amount, credited, retained
        )
        return True

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    def deposit_sbtc(self, caller: str, amount: int) -> bool:
        self._require_initialized()
        if self._paused:
            # Paused deposits surface as an authorization failure (code 100).
            raise Unauthorized("deposits are paused")
        if amount <= 0:
            raise InvalidAmount(f"deposit amount must be positive, got {amount}")
        available = self._asset.balance_of(caller)
        if available < amount:
            raise InsufficientBalance(
                f"{caller} holds {available} {self._asset.symbol}, requested {amount}"
            )

        # Raises without side effects if routing or the transfer fails.
        protocol = self._adapter.deposit_for_pool(self, caller, amount)

        self._deposits[caller] = self._deposits.get(caller, 0) + amount
        self._total_deposits += amount
        height = self._ctx.tick()
        self._history.setdefault(caller, []).append(
            DepositRecord(amount=amount, block_height=height)
        )

        self._ctx.emit(
            "deposit", principal=caller, amount=amount, protocol_id=int(protocol)
        )
        logger.info("Deposit %d from %s routed to %s", amount, caller, protocol.label)
        return True

    def withdraw_sbtc(self, caller: str, amount: int) -> bool:
        self._require_initialized()
        if amount <= 0:
            raise InvalidAmount(f"withdraw amount must be positive, got {amount}")
        deposited = self._deposits.get(caller, 0)
        if deposited < amount:
            raise InsufficientBalance(
                f"{caller} has {deposited} deposited, requested {amount}"
            )

        plan = self._adapter.release_allocations(self, caller, amount)

        self._deposits[caller] = deposited - amount
        self._total_deposits -= amount

        self._ctx.tick()
        self._ctx.emit(
            "withdraw",
            principal=caller,
            amount=amount,
            data={"plan": {int(p): v for p, v in plan.items()}},
        )
        logger.info("Withdrawal %d to %s", amount, caller)
        return True

    # ------------------------------------------------------------------
    # Read-only
    # ------------------------------------------------------------------

    def get_user_deposit(self, user: str) -> int:
        return self._deposits.get(user, 0)

    def get_total_deposits(self) -> int:
        return self._total_deposits

    def get_total_yield_earned(self) -> int:
        return self._total_yield

    def get_user_yield(self, user: str) -> int:
        return self._yield_credit.get(user, 0)

    def get_retained_yield(self) -> int:
        return self._retained_yield

    def get_user_deposit_history(self, user: str) -> tuple[DepositRecord, ...]:
        return tuple(self._history.get(user, ()))

    def get_depositors(self) -> dict[str, int]:
        return {user: amount for user, amount in self._deposits.items() if amount > 0}

    def is_initialized(self) -> bool:
        return self._initialized

    def is_emergency_paused(self) -> bool:
        return self._paused
