"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from yield_router.assets import InMemoryToken
from yield_router.config import (
    AppConfig,
    LedgerConfig,
    NotificationsConfig,
    TelegramConfig,
)
from yield_router.ledger import (
    LedgerContext,
    ProtocolAdapter,
    YieldAggregator,
    build_ledger,
)

DEPLOYER = "deployer"
ALICE = "wallet_1"
BOB = "wallet_2"
MINTED = 1_000_000_000


# ---------------------------------------------------------------------------
# Ledger fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def token() -> InMemoryToken:
    t = InMemoryToken("sBTC", 8)
    t.mint(MINTED, ALICE)
    t.mint(MINTED, BOB)
    return t


@pytest.fixture()
def context() -> LedgerContext:
    return LedgerContext(owner=DEPLOYER)


@pytest.fixture()
def adapter(context: LedgerContext, token: InMemoryToken) -> ProtocolAdapter:
    a = ProtocolAdapter(context, token)
    a.initialize_adapter(DEPLOYER)
    return a


@pytest.fixture()
def aggregator(context: LedgerContext, token: InMemoryToken) -> YieldAggregator:
    agg = build_ledger(AppConfig(), token, context)
    agg.adapter.initialize_adapter(DEPLOYER)
    agg.initialize(DEPLOYER)
    return agg


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_app_config() -> AppConfig:
    return AppConfig(
        ledger=LedgerConfig(owner=DEPLOYER),
        notifications=NotificationsConfig(
            telegram=TelegramConfig(
                enabled=True,
                alert_bot_token="fake-alert-token",
                log_bot_token="fake-log-token",
                chat_id="12345",
            ),
        ),
    )


SAMPLE_YAML = textwrap.dedent("""\
    ledger:
      owner: deployer
      asset: sBTC
      asset_decimals: 8
      adapter_principal: custody.adapter
    protocols:
      zest:
        rate: 800
      velar:
        rate: 650
      alex:
        rate: 700
        paused: true
    notifications:
      telegram:
        enabled: true
        alert_bot_token: "tok1"
        log_bot_token: "tok2"
        chat_id: "999"
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file


SAMPLE_SCENARIO = textwrap.dedent("""\
    steps:
      - {op: initialize_adapter}
      - {op: initialize}
      - {op: mint, to: wallet_1, amount: 1000000000}
      - {op: mint, to: wallet_2, amount: 1000000000}
      - {op: deposit, caller: wallet_1, amount: 200000}
      - {op: deposit, caller: wallet_2, amount: 100000}
      - {op: update_rate, protocol: velar, rate: 950}
      - {op: rebalance}
      - {op: rebalance}
      - {op: distribute_yield, amount: 15000}
      - {op: withdraw, caller: wallet_1, amount: 50000}
      - {op: withdraw, caller: wallet_1, amount: 300000}
      - {op: adapter_withdraw, caller: wallet_2, protocol: 99, amount: 10000}
""")


@pytest.fixture()
def sample_scenario_path(tmp_path: Path) -> Path:
    path = tmp_path / "scenario.yaml"
    path.write_text(SAMPLE_SCENARIO)
    return path
