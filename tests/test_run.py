"""
Unit tests for run.py helper behavior.
"""

import logging
from unittest.mock import MagicMock, patch

import pytest

import run
from ledger.store import PersistenceError
from pipeline.loop import CycleReport


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """No .env file, no stray env overrides, logs under tmp_path."""
    monkeypatch.chdir(tmp_path)
    for name in ("MAX_PER_CATEGORY", "MAX_PREDICTIONS_PER_DAY", "LOG_LEVEL", "DB_PATH"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(run, "setup_logging", MagicMock(return_value=str(tmp_path / "run.log")))
    root = logging.getLogger()
    handlers = root.handlers[:]
    yield
    root.handlers[:] = handlers


class TestParseArgs:
    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            run.parse_args([])

    def test_globals_and_subcommand(self):
        args = run.parse_args(["--db", "x.db", "--log-level", "DEBUG", "cycle"])
        assert args.command == "cycle"
        assert args.db == "x.db"
        assert args.log_level == "DEBUG"

    def test_arb_options(self):
        args = run.parse_args(["arb", "--query", "bitcoin", "--limit", "25"])
        assert args.query == "bitcoin"
        assert args.limit == 25


class TestBuildConfig:
    def test_overrides(self):
        cfg = run.build_config(run.parse_args(["--db", "other.db", "status"]))
        assert cfg.db_path == "other.db"

    def test_defaults(self):
        cfg = run.build_config(run.parse_args(["status"]))
        assert cfg.log_level == "INFO"


class TestMain:
    def test_invalid_config_exits_nonzero(self, monkeypatch):
        monkeypatch.setenv("MAX_PER_CATEGORY", "50")
        monkeypatch.setenv("MAX_PREDICTIONS_PER_DAY", "10")
        with patch.object(run, "ControlLoop") as loop_cls:
            assert run.main(["status"]) == 1
        loop_cls.assert_not_called()

    def test_unopenable_ledger_exits_nonzero(self):
        with patch.object(run, "ControlLoop", side_effect=PersistenceError("no such dir")):
            assert run.main(["status"]) == 1

    def test_status_command(self):
        loop = MagicMock()
        loop.get_status.return_value = {}
        with patch.object(run, "ControlLoop", return_value=loop):
            assert run.main(["status"]) == 0
        loop.prepare.assert_called_once()
        loop.close.assert_called_once()

    def test_cycle_exit_code_reflects_error(self):
        loop = MagicMock()
        loop.force_cycle.return_value = CycleReport(0, 0, 0, 0, 0, error="venue down")
        loop.get_status.return_value = {}
        loop.scanner.last_result.error = "venue down"
        with patch.object(run, "ControlLoop", return_value=loop):
            assert run.main(["cycle"]) == 1
        loop.close.assert_called_once()

    def test_arb_passes_query(self):
        loop = MagicMock()
        loop.scan_arbitrage.return_value = []
        with patch.object(run, "ControlLoop", return_value=loop):
            assert run.main(["arb", "--query", "fed", "--limit", "5"]) == 0
        loop.scan_arbitrage.assert_called_once_with("fed", 5)
