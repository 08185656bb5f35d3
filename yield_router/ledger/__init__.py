"""Accounting and allocation engine."""
from __future__ import annotations

from dataclasses import dataclass

from ..config import AppConfig
from ..interfaces.asset import AssetToken
from .adapter import ProtocolAdapter
from .aggregator import YieldAggregator
from .context import LedgerContext

__all__ = [
    "ConservationReport",
    "LedgerContext",
    "ProtocolAdapter",
    "YieldAggregator",
    "build_ledger",
    "check_conservation",
]


def build_ledger(
    config: AppConfig, asset: AssetToken, context: LedgerContext | None = None
) -> YieldAggregator:
    """Wire a context, an adapter dedicated to one aggregator, and the aggregator."""
    if context is None:
        context = LedgerContext(owner=config.ledger.owner)
    adapter = ProtocolAdapter(
        context,
        asset,
        seeds=config.protocols,
        principal=config.ledger.adapter_principal,
    )
    return YieldAggregator(context, asset, adapter)


@dataclass(frozen=True)
class ConservationReport:
    total_deposits: int
    sum_user_deposits: int
    pooled_balance: int
    sum_protocol_balances: int
    custody_balance: int
    mismatched_protocols: tuple[int, ...] = ()
    mismatched_users: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return (
            self.total_deposits == self.sum_user_deposits
            and self.total_deposits == self.pooled_balance
            and self.custody_balance == self.sum_protocol_balances
            and not self.mismatched_protocols
            and not self.mismatched_users
        )


def check_conservation(aggregator: YieldAggregator, asset: AssetToken) -> ConservationReport:
    """Compare every ledger total against its independent sum.

    The aggregator's totals are checked against the adapter's pooled
    allocations; custody is checked against every protocol balance, which also
    covers capital deposited with the adapter directly.
    """
    adapter = aggregator.adapter
    mismatched = []
    for pid in adapter.get_all_protocol_rates():
        held = sum(adapter.get_allocation_holders(pid).values())
        if held != adapter.get_protocol_balance(pid):
            mismatched.append(int(pid))

    depositors = aggregator.get_depositors()
    mismatched_users = sorted(
        user
        for user in set(depositors) | adapter.get_pool_members()
        if depositors.get(user, 0) != sum(adapter.get_pooled_allocations(user).values())
    )

    return ConservationReport(
        total_deposits=aggregator.get_total_deposits(),
        sum_user_deposits=sum(depositors.values()),
        pooled_balance=adapter.get_total_pooled(),
        sum_protocol_balances=adapter.get_total_allocated(),
        custody_balance=asset.balance_of(adapter.principal),
        mismatched_protocols=tuple(mismatched),
        mismatched_users=tuple(mismatched_users),
    )
