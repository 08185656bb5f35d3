"""Unit tests for config loading, env interpolation, and validation."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from yield_router.config import (
    DEFAULT_RATES,
    AppConfig,
    LedgerConfig,
    ProtocolSeed,
    TelegramConfig,
    _interpolate_env,
    default_config,
    load_config,
)
from yield_router.models import ProtocolId


class TestInterpolateEnv:
    def test_simple_substitution(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MY_VAR", "hello")
        assert _interpolate_env("${MY_VAR}") == "hello"

    def test_missing_var_becomes_empty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NONEXISTENT_VAR_XYZ", raising=False)
        assert _interpolate_env("${NONEXISTENT_VAR_XYZ}") == ""

    def test_nested_dict(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TOK", "secret")
        result = _interpolate_env({"key": "${TOK}", "plain": "text"})
        assert result == {"key": "secret", "plain": "text"}

    def test_nested_list(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("A", "x")
        assert _interpolate_env(["${A}", "y"]) == ["x", "y"]

    def test_non_string_passthrough(self) -> None:
        assert _interpolate_env(42) == 42
        assert _interpolate_env(True) is True


class TestDefaults:
    def test_default_config(self) -> None:
        cfg = default_config()
        assert cfg.ledger.owner == "deployer"
        assert cfg.ledger.asset_symbol == "sBTC"
        assert cfg.notifications.telegram.enabled is False

    def test_default_seeds_cover_every_protocol(self) -> None:
        cfg = AppConfig()
        assert set(cfg.protocols) == set(ProtocolId)
        assert cfg.protocols[ProtocolId.ZEST].rate == 800
        assert cfg.protocols[ProtocolId.VELAR].rate == 650
        assert cfg.protocols[ProtocolId.ALEX].rate == 700
        assert cfg.protocols[ProtocolId.STACKINGDAO].rate == 750


class TestLoadConfig:
    def test_loads_valid_yaml(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert isinstance(cfg, AppConfig)
        assert cfg.ledger.owner == "deployer"
        assert cfg.ledger.adapter_principal == "custody.adapter"
        assert cfg.protocols[ProtocolId.ALEX] == ProtocolSeed(rate=700, paused=True)
        assert cfg.notifications.telegram.chat_id == "999"

    def test_unlisted_protocols_keep_defaults(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert cfg.protocols[ProtocolId.STACKINGDAO].rate == DEFAULT_RATES[ProtocolId.STACKINGDAO]

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.yaml")

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("")
        assert load_config(cfg_file) == AppConfig()

    def test_env_interpolation_in_yaml(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TEST_OWNER", "treasury")
        monkeypatch.setenv("TEST_CHAT", "4242")
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(textwrap.dedent("""\
            ledger:
              owner: "${TEST_OWNER}"
            notifications:
              telegram:
                enabled: true
                chat_id: "${TEST_CHAT}"
        """))
        cfg = load_config(cfg_file)
        assert cfg.ledger.owner == "treasury"
        assert cfg.notifications.telegram.chat_id == "4242"

    def test_unknown_protocol_name(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("protocols:\n  bitflow:\n    rate: 900\n")
        with pytest.raises(ValueError, match="Invalid configuration"):
            load_config(cfg_file)

    def test_non_numeric_rate(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("protocols:\n  zest:\n    rate: high\n")
        with pytest.raises(ValueError, match="Invalid configuration"):
            load_config(cfg_file)


class TestValidation:
    def _write(self, tmp_path: Path, body: str) -> Path:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(textwrap.dedent(body))
        return cfg_file

    def test_empty_owner_raises(self, tmp_path: Path) -> None:
        path = self._write(tmp_path, """\
            ledger:
              owner: ""
        """)
        with pytest.raises(ValueError, match="owner must be set"):
            load_config(path)

    def test_owner_as_custody_raises(self, tmp_path: Path) -> None:
        path = self._write(tmp_path, """\
            ledger:
              owner: vault
              adapter_principal: vault
        """)
        with pytest.raises(ValueError, match="custody principal"):
            load_config(path)

    def test_negative_rate_raises(self, tmp_path: Path) -> None:
        path = self._write(tmp_path, """\
            protocols:
              velar:
                rate: -5
        """)
        with pytest.raises(ValueError, match="negative rate"):
            load_config(path)

    def test_telegram_without_chat_raises(self, tmp_path: Path) -> None:
        path = self._write(tmp_path, """\
            notifications:
              telegram:
                enabled: true
        """)
        with pytest.raises(ValueError, match="chat_id"):
            load_config(path)


class TestFrozenConfigs:
    def test_ledger_config_immutable(self) -> None:
        c = LedgerConfig()
        with pytest.raises(AttributeError):
            c.owner = "mallory"  # type: ignore[misc]

    def test_seed_immutable(self) -> None:
        s = ProtocolSeed(rate=100)
        with pytest.raises(AttributeError):
            s.rate = 999  # type: ignore[misc]

    def test_telegram_config_immutable(self) -> None:
        t = TelegramConfig()
        with pytest.raises(AttributeError):
            t.enabled = True  # type: ignore[misc]
