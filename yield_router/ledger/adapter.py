"""Protocol adapter — protocol registry, allocation table and rebalancing."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from ..config import DEFAULT_RATES, ProtocolSeed
from ..errors import (
    ErrorCode,
    InsufficientLiquidity,
    InvalidProtocol,
    NoEligibleProtocol,
    NotInitialized,
    ProtocolNotFound,
    ProtocolPaused,
    TransferFailed,
    Unauthorized,
)
from ..interfaces.asset import AssetToken
from ..models import ProtocolId, ProtocolInfo
from .context import LedgerContext

logger = logging.getLogger(__name__)


@dataclass
class _ProtocolState:
    rate: int = 0
    paused: bool = False
    balance: int = 0


class ProtocolAdapter:
    """Routes capital to the highest-rate protocol and tracks who owns what.

    Every protocol in :class:`ProtocolId` has a registry entry from the start;
    ``initialize_adapter`` applies the seed rates. Mutating calls validate
    everything, then perform the one external transfer, then update the
    in-memory tables, so a refused transfer leaves no trace.

    Allocations placed by the attached aggregator are pooled: they count
    towards the user's allocation but can only be released by that aggregator,
    so its ledger and the registry cannot drift apart.
    """

    def __init__(
        self,
        context: LedgerContext,
        asset: AssetToken,
        seeds: Mapping[ProtocolId, ProtocolSeed] | None = None,
        principal: str = "yield-router.protocol-adapter",
    ) -> None:
        self._ctx = context
        self._asset = asset
        self._seeds = dict(seeds) if seeds is not None else {
            pid: ProtocolSeed(rate=rate) for pid, rate in DEFAULT_RATES.items()
        }
        self.principal = principal

        self._protocols: dict[ProtocolId, _ProtocolState] = {
            pid: _ProtocolState() for pid in ProtocolId
        }
        self._allocations: dict[tuple[str, ProtocolId], int] = {}
        # Share of each allocation owned by the attached pool; a subset of
        # _allocations that only the pool operator can release.
        self._pooled: dict[tuple[str, ProtocolId], int] = {}
        self._pool_operator: object | None = None
        self._active: ProtocolId | None = None
        self._initialized = False
        self._paused = False

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _require_owner(self, caller: str) -> None:
        if not self._ctx.is_owner(caller):
            raise Unauthorized(
                f"{caller} is not the adapter owner", ErrorCode.ADAPTER_UNAUTHORIZED
            )

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitialized(
                "adapter not initialized", ErrorCode.ADAPTER_NOT_INITIALIZED
            )

    @staticmethod
    def _resolve(protocol_id: int) -> ProtocolId:
        try:
            return ProtocolId(protocol_id)
        except ValueError:
            raise ProtocolNotFound(f"protocol {protocol_id} is not registered") from None

    @staticmethod
    def _require_positive(amount: int) -> None:
        if amount <= 0:
            raise InvalidProtocol(f"amount must be positive, got {amount}")

    def _require_pool_operator(self, operator: object) -> None:
        if self._pool_operator is None or operator is not self._pool_operator:
            raise Unauthorized(
                "caller is not the attached pool", ErrorCode.ADAPTER_UNAUTHORIZED
            )

    def _pay_out(self, recipient: str, amount: int) -> None:
        if not self._asset.transfer(amount, self.principal, recipient):
            raise TransferFailed(f"transfer of {amount} to {recipient} failed")

    def attach_pool(self, operator: object) -> None:
        """Dedicate this adapter's pooled capital to one aggregator.

        Only ``operator`` may then place or release pooled allocations.
        """
        if self._pool_operator is not None and operator is not self._pool_operator:
            raise Unauthorized(
                "adapter already serves another pool", ErrorCode.ADAPTER_UNAUTHORIZED
            )
        self._pool_operator = operator

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    def initialize_adapter(self, caller: str) -> bool:
        """Apply seed rates and pause flags. Re-running resets them to the seeds.

        Balances and allocations survive re-initialization; the active pointer
        is only chosen on the first run.
        """
        self._require_owner(caller)

        for pid in ProtocolId:
            seed = self._seeds.get(pid, ProtocolSeed(rate=DEFAULT_RATES[pid]))
            state = self._protocols[pid]
            state.rate = seed.rate
            state.paused = seed.paused

        first_run = not self._initialized
        self._initialized = True
        if self._active is None:
            try:
                self._active = self.get_optimal_protocol()
            except NoEligibleProtocol:
                # All seeds paused; the first rebalance picks the active protocol.
                logger.warning("No eligible protocol at initialization")

        self._ctx.tick()
        self._ctx.emit(
            "adapter-init",
            principal=caller,
            protocol_id=int(self._active) if self._active is not None else None,
            data={"first_run": first_run},
        )
        logger.info(
            "Adapter %s; active protocol %s",
            "initialized" if first_run else "re-initialized",
            self._active.label if self._active is not None else "-",
        )
        return True

    def update_protocol_rate(self, caller: str, protocol_id: int, new_rate: int) -> bool:
        self._require_owner(caller)
        self._require_initialized()
        pid = self._resolve(protocol_id)
        if new_rate < 0:
            raise InvalidProtocol(f"rate must be non-negative, got {new_rate}")

        old_rate = self._protocols[pid].rate
        self._protocols[pid].rate = new_rate

        self._ctx.tick()
        self._ctx.emit(
            "rate",
            principal=caller,
            protocol_id=int(pid),
            data={"old_rate": old_rate, "new_rate": new_rate},
        )
        logger.info("Rate for %s: %d -> %d bps", pid.label, old_rate, new_rate)
        return True

    def set_protocol_pause(self, caller: str, protocol_id: int, flag: bool) -> bool:
        """Exclude (or re-admit) a protocol from optimal selection."""
        self._require_owner(caller)
        self._require_initialized()
        pid = self._resolve(protocol_id)
        self._protocols[pid].paused = flag

        self._ctx.tick()
        self._ctx.emit(
            "protocol-pause", principal=caller, protocol_id=int(pid), data={"paused": flag}
        )
        logger.info("Protocol %s %s", pid.label, "paused" if flag else "unpaused")
        return True

    def set_adapter_pause(self, caller: str, flag: bool) -> bool:
        self._require_owner(caller)
        self._paused = flag

        self._ctx.tick()
        self._ctx.emit("adapter-pause", principal=caller, data={"paused": flag})
        logger.warning("Adapter deposits %s", "paused" if flag else "resumed")
        return True

    def rebalance_protocols(self, caller: str) -> bool:
        """Move the active protocol's capital to the optimal one.

        Each user's allocation in the old protocol moves whole, so per-protocol
        sums stay exact. Returns ``False`` when the active protocol is already
        optimal.
        """
        self._require_owner(caller)
        self._require_initialized()

        optimal = self.get_optimal_protocol()
        old = self._active
        if old == optimal:
            logger.debug("Rebalance skipped: %s already optimal", optimal.label)
            return False

        moved = 0
        if old is not None:
            for (user, pid), amount in list(self._allocations.items()):
                if pid != old or amount == 0:
                    continue
                pooled = self._pooled.get((user, pid), 0)
                self._allocations[(user, pid)] = 0
                self._pooled[(user, pid)] = 0
                key = (user, optimal)
                self._allocations[key] = self._allocations.get(key, 0) + amount
                self._pooled[key] = self._pooled.get(key, 0) + pooled
                moved += amount
            self._protocols[old].balance -= moved
            self._protocols[optimal].balance += moved

        self._active = optimal

        self._ctx.tick()
        self._ctx.emit(
            "rebalance",
            principal=caller,
            amount=moved,
            protocol_id=int(optimal),
            data={"from": int(old) if old is not None else None},
        )
        logger.info(
            "Rebalanced %d from %s to %s",
            moved,
            old.label if old is not None else "-",
            optimal.label,
        )
        return True

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    def _route(self, caller: str, amount: int, pooled: bool) -> ProtocolId:
        self._require_initialized()
        self._require_positive(amount)
        if self._paused:
            raise ProtocolPaused("adapter is paused")

        # Recomputed on every call; rates may have changed since the last one.
        pid = self.get_optimal_protocol()

        if not self._asset.transfer(amount, caller, self.principal):
            raise TransferFailed(f"transfer of {amount} from {caller} failed")

        self._protocols[pid].balance += amount
        key = (caller, pid)
        self._allocations[key] = self._allocations.get(key, 0) + amount
        if pooled:
            self._pooled[key] = self._pooled.get(key, 0) + amount

        self._ctx.tick()
        self._ctx.emit(
            "route",
            principal=caller,
            amount=amount,
            protocol_id=int(pid),
            data={"pooled": pooled},
        )
        logger.debug("Routed %d from %s to %s", amount, caller, pid.label)
        return pid

    def deposit_to_optimal(self, caller: str, amount: int) -> ProtocolId:
        """Pull ``amount`` from ``caller`` and place it with the optimal protocol."""
        return self._route(caller, amount, pooled=False)

    def deposit_for_pool(self, operator: object, user: str, amount: int) -> ProtocolId:
        """Route a pool deposit; the allocation is held on the pool's behalf."""
        self._require_pool_operator(operator)
        return self._route(user, amount, pooled=True)

    def withdraw_from_protocol(self, caller: str, protocol_id: int, amount: int) -> bool:
        """Return ``amount`` of the caller's own allocation in one protocol.

        Capital placed through the pool is not available here; it leaves only
        through :meth:`release_allocations`. Allowed while the adapter is paused.
        """
        self._require_initialized()
        self._require_positive(amount)
        pid = self._resolve(protocol_id)

        key = (caller, pid)
        allocated = self._allocations.get(key, 0)
        free = allocated - self._pooled.get(key, 0)
        if free < amount:
            raise InsufficientLiquidity(
                f"{caller} has {free} withdrawable in {pid.label}, requested {amount}"
            )

        self._pay_out(caller, amount)

        self._allocations[key] = allocated - amount
        self._protocols[pid].balance -= amount

        self._ctx.tick()
        self._ctx.emit(
            "protocol-withdraw", principal=caller, amount=amount, protocol_id=int(pid)
        )
        return True

    def release_allocations(
        self, operator: object, user: str, amount: int
    ) -> dict[ProtocolId, int]:
        """Withdraw ``amount`` of a user's pooled allocations for the pool.

        Lowest-rate protocols are drained first (ties: lowest id), keeping the
        remaining capital in the best-paying venues. A single transfer pays the
        user, so the operation is all-or-nothing.
        """
        self._require_pool_operator(operator)
        self._require_initialized()
        self._require_positive(amount)

        held = self.get_pooled_allocations(user)
        total = sum(held.values())
        if total < amount:
            raise InsufficientLiquidity(
                f"{user} has {total} pooled, requested {amount}"
            )

        plan: dict[ProtocolId, int] = {}
        remaining = amount
        for pid in sorted(held, key=lambda p: (self._protocols[p].rate, p)):
            if remaining == 0:
                break
            take = min(held[pid], remaining)
            plan[pid] = take
            remaining -= take

        self._pay_out(user, amount)

        for pid, take in plan.items():
            self._allocations[(user, pid)] -= take
            self._pooled[(user, pid)] -= take
            self._protocols[pid].balance -= take

        self._ctx.tick()
        self._ctx.emit(
            "release",
            principal=user,
            amount=amount,
            data={"plan": {int(p): v for p, v in plan.items()}},
        )
        return plan

    # ------------------------------------------------------------------
    # Read-only
    # ------------------------------------------------------------------

    def get_optimal_protocol(self) -> ProtocolId:
        """Highest rate among non-paused protocols; ties go to the lowest id."""
        if not self._initialized:
            raise NoEligibleProtocol("adapter not initialized")

        best: ProtocolId | None = None
        for pid in sorted(ProtocolId):
            state = self._protocols[pid]
            if state.paused:
                continue
            if best is None or state.rate > self._protocols[best].rate:
                best = pid

        if best is None:
            raise NoEligibleProtocol("every protocol is paused")
        return best

    def get_protocol_info(self, protocol_id: int) -> ProtocolInfo:
        pid = self._resolve(protocol_id)
        state = self._protocols[pid]
        return ProtocolInfo(
            protocol_id=pid, rate=state.rate, paused=state.paused, balance=state.balance
        )

    def get_protocol_balance(self, protocol_id: int) -> int:
        try:
            pid = ProtocolId(protocol_id)
        except ValueError:
            return 0
        return self._protocols[pid].balance

    def get_user_allocation(self, user: str, protocol_id: int) -> int:
        try:
            pid = ProtocolId(protocol_id)
        except ValueError:
            return 0
        return self._allocations.get((user, pid), 0)

    def get_user_allocations(self, user: str) -> dict[ProtocolId, int]:
        """Non-zero allocations of one user, keyed by protocol."""
        return {
            pid: amount
            for (owner, pid), amount in sorted(self._allocations.items(), key=lambda kv: kv[0][1])
            if owner == user and amount > 0
        }

    def get_pooled_allocation(self, user: str, protocol_id: int) -> int:
        try:
            pid = ProtocolId(protocol_id)
        except ValueError:
            return 0
        return self._pooled.get((user, pid), 0)

    def get_pooled_allocations(self, user: str) -> dict[ProtocolId, int]:
        """Non-zero pooled allocations of one user, keyed by protocol."""
        return {
            pid: amount
            for (owner, pid), amount in sorted(self._pooled.items(), key=lambda kv: kv[0][1])
            if owner == user and amount > 0
        }

    def get_total_pooled(self) -> int:
        return sum(self._pooled.values())

    def get_pool_members(self) -> set[str]:
        return {user for (user, _), amount in self._pooled.items() if amount > 0}

    def get_allocation_holders(self, protocol_id: int) -> dict[str, int]:
        """Users with a non-zero allocation in one protocol."""
        return {
            user: amount
            for (user, pid), amount in self._allocations.items()
            if pid == protocol_id and amount > 0
        }

    def get_active_protocol(self) -> ProtocolId | None:
        return self._active

    def get_all_protocol_rates(self) -> dict[ProtocolId, int]:
        return {pid: self._protocols[pid].rate for pid in ProtocolId}

    def get_total_allocated(self) -> int:
        return sum(state.balance for state in self._protocols.values())

    def is_adapter_paused(self) -> bool:
        return self._paused

    def is_initialized(self) -> bool:
        return self._initialized
