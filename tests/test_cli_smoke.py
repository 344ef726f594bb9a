from __future__ import annotations

from typer.testing import CliRunner

from league_export.cli.app import app
from league_export.core.config import settings


def test_cli_help_smoke() -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for name in ("league", "sync", "config"):
        assert name in result.stdout


def test_cli_urls_lists_requested_views() -> None:
    runner = CliRunner()
    result = runner.invoke(
        app, ["league", "urls", "--league-id", "12345", "--season", "2023", "--view", "mSettings"]
    )
    assert result.exit_code == 0
    assert result.stdout.strip() == (
        "mSettings\thttps://fantasy.espn.com/apis/v3/games/ffl/seasons/2023"
        "/segments/0/leagues/12345?view=mSettings"
    )


def test_cli_urls_batched() -> None:
    runner = CliRunner()
    result = runner.invoke(
        app,
        ["league", "urls", "--league-id", "1", "--season", "2023", "--view", "mTeam",
         "--view", "mRoster", "--batched"],
    )
    assert result.exit_code == 0
    assert result.stdout.strip().endswith("leagues/1?view=mTeam&view=mRoster")


def test_cli_config_set_show_reset(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(settings, "database_url", f"sqlite+pysqlite:///{tmp_path / 'state.db'}")
    monkeypatch.setattr(settings, "supabase_url", None)
    monkeypatch.setattr(settings, "supabase_anon_key", None)
    runner = CliRunner()

    result = runner.invoke(
        app, ["config", "set-sync", "--url", "https://proj.supabase.co", "--anon-key", "secretkey"]
    )
    assert result.exit_code == 0

    result = runner.invoke(app, ["config", "show"])
    assert "url=https://proj.supabase.co" in result.stdout
    assert "anon_key=secr..." in result.stdout

    result = runner.invoke(app, ["config", "reset", "--yes"])
    assert result.exit_code == 0

    result = runner.invoke(app, ["config", "show"])
    assert "last_fetch: none" in result.stdout
    assert "url=unset" in result.stdout
