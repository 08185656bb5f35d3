"""Scenario loader — YAML list of ledger operations for the simulate command."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from ..config import _interpolate_env
from ..models import ProtocolId

logger = logging.getLogger(__name__)

# op name -> fields that must be present
_REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "mint": ("to", "amount"),
    "initialize": (),
    "initialize_adapter": (),
    "deposit": ("amount",),
    "withdraw": ("amount",),
    "adapter_deposit": ("amount",),
    "adapter_withdraw": ("protocol", "amount"),
    "update_rate": ("protocol", "rate"),
    "pause_protocol": ("protocol", "flag"),
    "rebalance": (),
    "distribute_yield": ("amount",),
    "pause": ("flag",),
    "adapter_pause": ("flag",),
}

OPERATIONS = tuple(_REQUIRED_FIELDS)


@dataclass(frozen=True)
class ScenarioStep:
    """One ledger call. An empty ``caller`` means the configured owner."""

    op: str
    caller: str = ""
    amount: int = 0
    protocol: int = 0
    rate: int = 0
    flag: bool = False
    to: str = ""


def _parse_protocol(value: Any) -> int:
    # Names must be known; raw integers pass through so unregistered ids can
    # be exercised.
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return int(ProtocolId.from_name(str(value)))


def _build_step(index: int, raw: dict[str, Any]) -> ScenarioStep:
    op = str(raw.get("op", ""))
    if op not in _REQUIRED_FIELDS:
        raise ValueError(f"Step {index}: unknown op '{op}'")

    missing = [name for name in _REQUIRED_FIELDS[op] if name not in raw]
    if missing:
        raise ValueError(f"Step {index} ({op}): missing {', '.join(missing)}")

    return ScenarioStep(
        op=op,
        caller=str(raw.get("caller", "")),
        amount=int(raw.get("amount", 0)),
        protocol=_parse_protocol(raw["protocol"]) if "protocol" in raw else 0,
        rate=int(raw.get("rate", 0)),
        flag=bool(raw.get("flag", False)),
        to=str(raw.get("to", "")),
    )


def build_steps(raw: list[dict[str, Any]]) -> tuple[ScenarioStep, ...]:
    steps: list[ScenarioStep] = []
    for index, item in enumerate(raw, start=1):
        if not isinstance(item, dict):
            raise ValueError(f"Step {index}: expected a mapping, got {type(item).__name__}")
        try:
            steps.append(_build_step(index, item))
        except (TypeError, ValueError) as e:
            if str(e).startswith("Step "):
                raise
            raise ValueError(f"Step {index}: {e}") from e
    return tuple(steps)


def load_scenario(path: str | Path) -> tuple[ScenarioStep, ...]:
    """Load scenario steps from a YAML file with a top-level ``steps`` list."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Scenario file not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)
    steps = build_steps(raw.get("steps", []))
    if not steps:
        raise ValueError(f"Scenario {path} has no steps")

    logger.info("Loaded %d scenario steps from %s", len(steps), path)
    return steps
