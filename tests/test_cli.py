"""
Test the command line interface against local ledgers.
"""

import logging

import pytest
import structlog
from typer.testing import CliRunner

from holder_rewards import cli
from holder_rewards.cli import app
from holder_rewards.core.exceptions import DatabaseError


runner = CliRunner()


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logging.getLogger().handlers.clear()
    structlog.reset_defaults()


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TOKEN_MINT_ADDRESS", "11111111111111111111111111111111")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'ledger.db'}")
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    return tmp_path


def test_init_db_creates_file(env):
    result = runner.invoke(app, ["init-db"])

    assert result.exit_code == 0, result.output
    assert "Database initialized" in result.output
    assert (env / "ledger.db").exists()


def test_status_on_empty_ledger(env):
    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0, result.output
    assert "Ledger Summary" in result.output
    assert "Distributions" in result.output


def test_rewards_for_unknown_wallet(env):
    result = runner.invoke(app, ["rewards", "So11111111111111111111111111111111111111112"])

    assert result.exit_code == 0, result.output
    assert "Total received: 0 across 0 transfers" in result.output


def test_missing_configuration(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("TOKEN_MINT_ADDRESS", raising=False)

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


class UnavailableReporter:
    def __init__(self, store):
        pass

    async def stats(self):
        raise DatabaseError("Database unavailable: disk I/O error")

    async def wallet_rewards(self, address, recent=20):
        raise DatabaseError("Database unavailable: disk I/O error")


@pytest.mark.parametrize("args", [["status"], ["rewards", "So11111111111111111111111111111111111111112"]])
def test_ledger_errors_exit_cleanly(env, monkeypatch, args):
    monkeypatch.setattr(cli, "LedgerReporter", UnavailableReporter)

    result = runner.invoke(app, args)

    assert result.exit_code == 1
    assert "Database unavailable" in result.output
    assert result.exception is None or isinstance(result.exception, SystemExit)
