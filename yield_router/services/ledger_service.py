"""Async ledger service — serializes ledger calls and forwards events to notifiers."""
from __future__ import annotations

import asyncio
import html
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from ..assets import InMemoryToken
from ..config import AppConfig
from ..errors import LedgerError, NoEligibleProtocol
from ..events import LedgerEvent
from ..interfaces.notifier import Notifier
from ..ledger import (
    LedgerContext,
    ProtocolAdapter,
    YieldAggregator,
    build_ledger,
    check_conservation,
)
from ..models import ProtocolId
from ..notifications import TelegramNotifier, format_amount, format_event
from .scenario import ScenarioStep

logger = logging.getLogger(__name__)

# Event kinds that go to the unmuted alert channel rather than the log channel.
_ALERT_KINDS = {"pause", "adapter-pause", "protocol-pause", "rebalance"}


@dataclass(frozen=True)
class StepOutcome:
    step: ScenarioStep
    ok: bool
    result: Any = None
    error_code: int | None = None
    error: str = ""


class LedgerService:
    """Hosts one ledger instance for concurrent async callers.

    Every mutating call runs under a single ``asyncio.Lock`` so callers observe
    one global ordering; queued ledger events are dispatched to notifiers
    while the lock is still held, keeping notification order equal to ledger
    order.
    """

    def __init__(self, config: AppConfig, token: InMemoryToken | None = None) -> None:
        self._config = config
        self._token = token or InMemoryToken(
            config.ledger.asset_symbol, config.ledger.asset_decimals
        )
        self._context = LedgerContext(owner=config.ledger.owner)
        self._aggregator = build_ledger(config, self._token, self._context)
        self._adapter = self._aggregator.adapter
        self._lock = asyncio.Lock()

        self._pending: list[LedgerEvent] = []
        self._context.events.subscribe(self._pending.append)

        self._notifiers: list[Notifier] = []
        if config.notifications.telegram.enabled:
            self._notifiers.append(TelegramNotifier(config.notifications.telegram))

        self._dispatch: dict[str, Callable[[str, ScenarioStep], Any]] = {
            "mint": lambda caller, s: self._token.mint(s.amount, s.to),
            "initialize": lambda caller, s: self._aggregator.initialize(caller),
            "initialize_adapter": lambda caller, s: self._adapter.initialize_adapter(caller),
            "deposit": lambda caller, s: self._aggregator.deposit_sbtc(caller, s.amount),
            "withdraw": lambda caller, s: self._aggregator.withdraw_sbtc(caller, s.amount),
            "adapter_deposit": lambda caller, s: self._adapter.deposit_to_optimal(
                caller, s.amount
            ),
            "adapter_withdraw": lambda caller, s: self._adapter.withdraw_from_protocol(
                caller, s.protocol, s.amount
            ),
            "update_rate": lambda caller, s: self._adapter.update_protocol_rate(
                caller, s.protocol, s.rate
            ),
            "pause_protocol": lambda caller, s: self._adapter.set_protocol_pause(
                caller, s.protocol, s.flag
            ),
            "rebalance": lambda caller, s: self._adapter.rebalance_protocols(caller),
            "distribute_yield": lambda caller, s: self._aggregator.distribute_yield(
                caller, s.amount
            ),
            "pause": lambda caller, s: self._aggregator.set_emergency_pause(caller, s.flag),
            "adapter_pause": lambda caller, s: self._adapter.set_adapter_pause(
                caller, s.flag
            ),
        }

    @property
    def token(self) -> InMemoryToken:
        return self._token

    @property
    def aggregator(self) -> YieldAggregator:
        return self._aggregator

    @property
    def adapter(self) -> ProtocolAdapter:
        return self._adapter

    @property
    def owner(self) -> str:
        return self._context.owner

    # ------------------------------------------------------------------
    # Notification dispatch
    # ------------------------------------------------------------------

    async def _send_log(self, message: str, silent: bool = True) -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_log(message, silent=silent)
            except Exception as e:
                logger.error("Notifier send_log failed: %s", e)

    async def _send_alert(self, message: str, subject: str = "") -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_alert(message, subject=subject)
            except Exception as e:
                logger.error("Notifier send_alert failed: %s", e)

    def _format_amount(self, amount: int) -> str:
        return format_amount(amount, self._token.symbol)

    async def _flush_events(self) -> None:
        events = list(self._pending)
        self._pending.clear()
        for event in events:
            message = format_event(event, self._token.symbol)
            if event.kind in _ALERT_KINDS:
                await self._send_alert(message, subject=f"Ledger {event.kind}")
            else:
                await self._send_log(message)

    # ------------------------------------------------------------------
    # Serialized calls
    # ------------------------------------------------------------------

    async def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        async with self._lock:
            try:
                return func(*args)
            finally:
                await self._flush_events()

    async def initialize(self) -> None:
        """Initialize adapter and aggregator as the owner."""
        await self._call(self._adapter.initialize_adapter, self.owner)
        await self._call(self._aggregator.initialize, self.owner)

    async def mint(self, amount: int, recipient: str) -> bool:
        return await self._call(self._token.mint, amount, recipient)

    async def deposit(self, caller: str, amount: int) -> bool:
        return await self._call(self._aggregator.deposit_sbtc, caller, amount)

    async def withdraw(self, caller: str, amount: int) -> bool:
        return await self._call(self._aggregator.withdraw_sbtc, caller, amount)

    async def distribute_yield(self, amount: int) -> bool:
        return await self._call(self._aggregator.distribute_yield, self.owner, amount)

    async def update_rate(self, protocol_id: int, rate: int) -> bool:
        return await self._call(
            self._adapter.update_protocol_rate, self.owner, protocol_id, rate
        )

    async def rebalance(self) -> bool:
        return await self._call(self._adapter.rebalance_protocols, self.owner)

    async def set_emergency_pause(self, flag: bool) -> bool:
        return await self._call(self._aggregator.set_emergency_pause, self.owner, flag)

    async def execute(self, step: ScenarioStep) -> StepOutcome:
        """Run one scenario step; ledger errors become a failed outcome."""
        caller = step.caller or self.owner
        try:
            result = await self._call(self._dispatch[step.op], caller, step)
        except LedgerError as e:
            logger.warning("Step %s by %s failed: %s", step.op, caller, e)
            return StepOutcome(step=step, ok=False, error_code=int(e.code), error=str(e))

        logger.debug("Step %s by %s -> %r", step.op, caller, result)
        return StepOutcome(step=step, ok=True, result=result)

    async def run_scenario(self, steps: tuple[ScenarioStep, ...]) -> list[StepOutcome]:
        outcomes = []
        for step in steps:
            outcomes.append(await self.execute(step))
        failed = sum(1 for o in outcomes if not o.ok)
        logger.info("Scenario finished: %d steps, %d failed", len(outcomes), failed)
        return outcomes

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    @staticmethod
    def _now_str() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    def build_report(self) -> str:
        """Ledger summary: registry, depositors, totals and conservation check."""
        adapter = self._adapter
        aggregator = self._aggregator

        active = adapter.get_active_protocol()
        try:
            optimal = adapter.get_optimal_protocol().label
        except NoEligibleProtocol:
            optimal = "—"

        protocol_lines = []
        for pid in ProtocolId:
            info = adapter.get_protocol_info(pid)
            flags = " · PAUSED" if info.paused else ""
            marker = " (active)" if pid == active else ""
            protocol_lines.append(
                f"{info.name}{marker} · {info.rate_percent:.2f}% · "
                f"{self._format_amount(info.balance)}{flags}"
            )

        depositors = aggregator.get_depositors()
        depositor_lines = [
            f"{html.escape(user)}: {self._format_amount(amount)} "
            f"(yield {self._format_amount(aggregator.get_user_yield(user))})"
            for user, amount in sorted(depositors.items())
        ] or ["No active deposits."]

        conservation = check_conservation(aggregator, self._token)
        status = "✅ OK" if conservation.ok else "🚨 MISMATCH"

        return (
            f"📋 Yield Router Report\n"
            f"\n"
            f"Active: {active.label if active is not None else '—'} · Optimal: {optimal}\n"
            f"Deposits paused: {'yes' if aggregator.is_emergency_paused() else 'no'} · "
            f"Adapter paused: {'yes' if adapter.is_adapter_paused() else 'no'}\n"
            f"\n"
            f"━━ Protocols ━━\n" + "\n".join(protocol_lines) + "\n"
            f"\n"
            f"━━ Depositors ━━\n" + "\n".join(depositor_lines) + "\n"
            f"\n"
            f"Total deposits: {self._format_amount(aggregator.get_total_deposits())}\n"
            f"Yield earned: {self._format_amount(aggregator.get_total_yield_earned())} · "
            f"retained {self._format_amount(aggregator.get_retained_yield())}\n"
            f"Conservation: {status}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

    async def send_report(self) -> str:
        report = self.build_report()
        await self._send_alert(report, subject="Yield Router Report")
        logger.info("Ledger report sent")
        return report
