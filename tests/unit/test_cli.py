"""Unit tests for CLI argument parsing and command output."""
from __future__ import annotations

import argparse
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from yield_router.cli import _run, build_parser, format_outcome, format_rates, main
from yield_router.config import AppConfig, ProtocolSeed, _default_seeds
from yield_router.models import ProtocolId
from yield_router.services import ScenarioStep, StepOutcome


class TestBuildParser:
    def test_rates_command(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["rates"])
        assert args.command == "rates"

    def test_simulate_command(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["simulate", "scenarios/rate_shift.yaml"])
        assert args.command == "simulate"
        assert args.scenario == "scenarios/rate_shift.yaml"
        assert args.notify is False

    def test_simulate_notify(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["simulate", "s.yaml", "--notify"])
        assert args.notify is True

    def test_simulate_requires_scenario(self) -> None:
        parser = build_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(["simulate"])

    def test_config_flag(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["--config", "/tmp/c.yaml", "rates"])
        assert args.config == "/tmp/c.yaml"

    def test_default_config_is_builtin(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["rates"])
        assert args.config is None

    def test_log_level_flag(self) -> None:
        parser = build_parser()
        args = parser.parse_args(["--log-level", "DEBUG", "rates"])
        assert args.log_level == "DEBUG"

    def test_no_command(self) -> None:
        parser = build_parser()
        args = parser.parse_args([])
        assert args.command is None


class TestFormatting:
    def test_rates_table(self) -> None:
        out = format_rates(AppConfig())
        assert "Zest" in out
        assert "8.00%" in out
        assert "6.50%" in out
        assert out.splitlines()[-1] == "Optimal: Zest"

    def test_rates_with_paused_seed(self) -> None:
        seeds = _default_seeds()
        seeds[ProtocolId.ZEST] = ProtocolSeed(rate=800, paused=True)
        out = format_rates(AppConfig(protocols=seeds))
        assert "paused" in out
        assert out.splitlines()[-1] == "Optimal: StackingDao"

    def test_rates_all_paused(self) -> None:
        seeds = {pid: ProtocolSeed(rate=100, paused=True) for pid in ProtocolId}
        out = format_rates(AppConfig(protocols=seeds))
        assert "none" in out.splitlines()[-1]

    def test_outcome_ok(self) -> None:
        outcome = StepOutcome(step=ScenarioStep(op="rebalance"), ok=True, result=False)
        line = format_outcome(3, outcome)
        assert "rebalance" in line
        assert "(owner)" in line
        assert "ok False" in line

    def test_outcome_error(self) -> None:
        outcome = StepOutcome(
            step=ScenarioStep(op="withdraw", caller="wallet_1"),
            ok=False,
            error_code=103,
        )
        line = format_outcome(12, outcome)
        assert "wallet_1" in line
        assert "err 103" in line


class TestRun:
    @pytest.mark.asyncio
    async def test_rates(self, capsys: pytest.CaptureFixture[str]) -> None:
        args = build_parser().parse_args(["rates"])
        await _run(args)
        assert "Optimal: Zest" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_simulate(
        self, sample_scenario_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        args = build_parser().parse_args(["simulate", str(sample_scenario_path)])
        await _run(args)
        out = capsys.readouterr().out
        assert "err 103" in out
        assert "err 201" in out
        assert "Yield Router Report" in out
        assert "Conservation: ✅ OK" in out

    @pytest.mark.asyncio
    async def test_simulate_notify_sends_report(
        self, sample_scenario_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        args = build_parser().parse_args(
            ["simulate", str(sample_scenario_path), "--notify"]
        )
        with patch(
            "yield_router.cli.LedgerService.send_report",
            new_callable=AsyncMock,
            return_value="sent report",
        ) as send_report:
            await _run(args)
        send_report.assert_awaited_once()
        assert "sent report" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_config_file(
        self, sample_yaml_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        args = build_parser().parse_args(["--config", str(sample_yaml_path), "rates"])
        await _run(args)
        out = capsys.readouterr().out
        assert "paused" in out

    @pytest.mark.asyncio
    async def test_unknown_command_exits(self) -> None:
        args = argparse.Namespace(command="bogus", config=None, log_level="INFO")
        with pytest.raises(SystemExit):
            await _run(args)


class TestMain:
    def test_no_command_exits(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("sys.argv", ["yield-router"])
        with pytest.raises(SystemExit) as exc:
            main()
        assert exc.value.code == 1
