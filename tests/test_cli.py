"""CLI commands against a temporary database."""

import pytest
from typer.testing import CliRunner

from parimarket.cli.app import app

runner = CliRunner()


@pytest.fixture
def config_dir(tmp_path):
    (tmp_path / "default.toml").write_text(
        f'[storage]\ndb_path = "{(tmp_path / "cli.duckdb").as_posix()}"\n[logging]\nlevel = "WARNING"\n'
    )
    return tmp_path


def _run(config_dir, *args):
    result = runner.invoke(app, ["--config-dir", str(config_dir), *args])
    assert result.exit_code == 0, result.output
    return result.output


def test_create_bet_cancel(config_dir):
    _run(config_dir, "ledger", "deposit", "alice", "100")
    _run(config_dir, "ledger", "deposit", "bob", "100")
    _run(config_dir, "coins", "add", "Coin111", "--symbol", "MEME")
    assert "MEME" in _run(config_dir, "coins", "list")

    out = _run(
        config_dir, "events", "create", "--creator", "alice", "--side", "yes", "--stake", "10",
        "--duration", "1h", "--contract", "Coin111", "--platform", "pumpfun",
    )
    assert "Created event #1" in out
    assert "@ 50.00" in _run(config_dir, "events", "bet", "1", "--user", "bob", "--side", "no", "--amount", "10")
    assert "active" in _run(config_dir, "events", "list")
    assert "cancelled" in _run(config_dir, "events", "cancel", "1")
    assert "alice: 100" in _run(config_dir, "ledger", "balance", "alice")
    assert "Purged 1 events." in _run(config_dir, "events", "purge", "--yes")


def test_market_error_exits_nonzero(config_dir):
    result = runner.invoke(app, ["--config-dir", str(config_dir), "events", "show", "7"])
    assert result.exit_code == 1
    assert "event_not_found" in result.output
