"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import ProtocolId

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------

# Seed rates in basis points (800 = 8.00% APY).
DEFAULT_RATES: dict[ProtocolId, int] = {
    ProtocolId.ZEST: 800,
    ProtocolId.VELAR: 650,
    ProtocolId.ALEX: 700,
    ProtocolId.STACKINGDAO: 750,
}


@dataclass(frozen=True)
class LedgerConfig:
    owner: str = "deployer"
    asset_symbol: str = "sBTC"
    asset_decimals: int = 8
    adapter_principal: str = "yield-router.protocol-adapter"


@dataclass(frozen=True)
class ProtocolSeed:
    rate: int = 0
    paused: bool = False


def _default_seeds() -> dict[ProtocolId, ProtocolSeed]:
    return {pid: ProtocolSeed(rate=rate) for pid, rate in DEFAULT_RATES.items()}


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    alert_bot_token: str = ""
    log_bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)


@dataclass(frozen=True)
class AppConfig:
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    protocols: dict[ProtocolId, ProtocolSeed] = field(default_factory=_default_seeds)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_ledger(raw: dict[str, Any]) -> LedgerConfig:
    defaults = LedgerConfig()
    return LedgerConfig(
        owner=str(raw.get("owner", defaults.owner)),
        asset_symbol=str(raw.get("asset", defaults.asset_symbol)),
        asset_decimals=int(raw.get("asset_decimals", defaults.asset_decimals)),
        adapter_principal=str(raw.get("adapter_principal", defaults.adapter_principal)),
    )


def _build_protocols(raw: dict[str, Any]) -> dict[ProtocolId, ProtocolSeed]:
    # Every protocol in the closed set is always present; the file only
    # overrides seeds.
    protocols = _default_seeds()
    for name, cfg in raw.items():
        pid = ProtocolId.from_name(str(name))
        cfg = cfg or {}
        protocols[pid] = ProtocolSeed(
            rate=int(cfg.get("rate", DEFAULT_RATES[pid])),
            paused=bool(cfg.get("paused", False)),
        )
    return protocols


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=bool(tg.get("enabled", False)),
            alert_bot_token=tg.get("alert_bot_token", ""),
            log_bot_token=tg.get("log_bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def default_config() -> AppConfig:
    """Built-in configuration: deployer owner, default seed rates, no notifiers."""
    return AppConfig()


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    try:
        cfg = AppConfig(
            ledger=_build_ledger(raw.get("ledger", {})),
            protocols=_build_protocols(raw.get("protocols", {})),
            notifications=_build_notifications(raw.get("notifications", {})),
        )
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid configuration in {config_path}: {e}") from e

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    ledger = cfg.ledger
    if not ledger.owner:
        raise ValueError("Ledger owner must be set")
    if not ledger.adapter_principal:
        raise ValueError("Adapter custody principal must be set")
    if ledger.owner == ledger.adapter_principal:
        raise ValueError("Owner cannot be the custody principal")
    if ledger.asset_decimals < 0:
        raise ValueError("asset_decimals must be non-negative")

    for pid, seed in cfg.protocols.items():
        if seed.rate < 0:
            raise ValueError(f"Protocol '{pid.label}' has a negative rate")

    if cfg.notifications.telegram.enabled and not cfg.notifications.telegram.chat_id:
        raise ValueError("Telegram notifications enabled without a chat_id")
