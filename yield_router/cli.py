"""Command-line interface for the yield router."""
from __future__ import annotations

import argparse
import asyncio
import sys

from .assets import InMemoryToken
from .config import AppConfig, default_config, load_config
from .errors import NoEligibleProtocol
from .ledger import build_ledger
from .logging_setup import configure_logging
from .models import ProtocolId
from .services import LedgerService, StepOutcome, load_scenario


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="yield-router",
        description="Yield-routing ledger: deposits, protocol allocation, rebalancing",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: built-in seeds)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("rates", help="Show seeded protocol rates and the optimal protocol")

    simulate_parser = sub.add_parser("simulate", help="Run a scenario file against a fresh ledger")
    simulate_parser.add_argument("scenario", help="Path to a scenario YAML file")
    simulate_parser.add_argument(
        "--notify",
        action="store_true",
        help="Send the final report through the configured notifiers",
    )

    return parser


def _load(args: argparse.Namespace) -> AppConfig:
    return load_config(args.config) if args.config else default_config()


def format_rates(config: AppConfig) -> str:
    """Registry table as it looks right after initialization."""
    aggregator = build_ledger(config, InMemoryToken(config.ledger.asset_symbol))
    adapter = aggregator.adapter
    adapter.initialize_adapter(config.ledger.owner)

    lines = []
    for pid in ProtocolId:
        info = adapter.get_protocol_info(pid)
        paused = "  paused" if info.paused else ""
        lines.append(f"{int(pid)}  {info.name:<12} {info.rate_percent:6.2f}%{paused}")
    try:
        lines.append(f"Optimal: {adapter.get_optimal_protocol().label}")
    except NoEligibleProtocol:
        lines.append("Optimal: none (all protocols paused)")
    return "\n".join(lines)


def format_outcome(index: int, outcome: StepOutcome) -> str:
    step = outcome.step
    status = f"ok {outcome.result!r}" if outcome.ok else f"err {outcome.error_code}"
    return f"{index:>3}. {step.op:<18} {step.caller or '(owner)':<12} {status}"


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = _load(args)

    if args.command == "rates":
        print(format_rates(config))
    elif args.command == "simulate":
        steps = load_scenario(args.scenario)
        service = LedgerService(config)
        outcomes = await service.run_scenario(steps)
        for index, outcome in enumerate(outcomes, start=1):
            print(format_outcome(index, outcome))
        print()
        if args.notify:
            print(await service.send_report())
        else:
            print(service.build_report())
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    asyncio.run(_run(args))
