from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from league_export.cli.common import (
    default_bundle_path,
    echo_failures,
    exporter_scope,
    fail,
    resolve_league,
    session_scope,
    write_bundle,
)
from league_export.cli.sync import push_bundle
from league_export.core.config import settings
from league_export.ingestion.providers.espn.types import ALL_VIEWS, ExportFailure, View
from league_export.ingestion.providers.espn.urls import build_batched_url, build_view_requests
from league_export.ingestion.seasons import resolve_season
from league_export.state import SqlKeyValueStore, save_last_fetch

app = typer.Typer(help="Fetch ESPN fantasy league data.")

_page_url_opt = typer.Option(
    None,
    "--page-url",
    help=(
        "Fantasy page open in the browser session "
        "(e.g. https://fantasy.espn.com/football/league?leagueId=123)."
    ),
)
_cookies_opt = typer.Option(
    None,
    "--cookies-file",
    help="Exported Netscape cookies.txt with the espn.com session.",
)
_prefer_cookie_opt = typer.Option(
    None,
    "--prefer-cookie-header/--no-prefer-cookie-header",
    help="Try SWID/espn_s2 cookie headers before the tab transports.",
)


def _prefer(value: bool | None) -> bool:
    return settings.prefer_cookie_header if value is None else value


@app.command("test-connection")
def test_connection_cmd(
    league_id: str | None = typer.Option(None, "--league-id", help="ESPN league id."),
    season: int | None = typer.Option(None, "--season", help="Season year (default: current)."),
    page_url: str | None = _page_url_opt,
    cookies_file: Path | None = _cookies_opt,
    prefer_cookie_header: bool | None = _prefer_cookie_opt,
) -> None:
    """Fetch mSettings only, to check the league is reachable as the current user."""

    league_id, season = resolve_league(league_id, season)

    async def _run():
        async with exporter_scope(
            page_url=page_url or settings.page_url,
            cookies_file=cookies_file or settings.cookies_file,
            prefer_cookie_header=_prefer(prefer_cookie_header),
        ) as exporter:
            return await exporter.test_connection(league_id, season)

    result = asyncio.run(_run())
    if isinstance(result, ExportFailure):
        fail(result)
    typer.echo(f"Connected to league {league_id} via {result.path}.")


@app.command("fetch")
def fetch_cmd(
    league_id: str | None = typer.Option(None, "--league-id", help="ESPN league id."),
    season: int | None = typer.Option(None, "--season", help="Season year (default: current)."),
    include_raw: bool = typer.Option(
        False, "--include-raw/--no-include-raw", help="Embed unmerged per-view JSON."
    ),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Bundle path (default: espn_league_<id>_<season>.json)."
    ),
    sync: bool = typer.Option(False, "--sync", help="Push the bundle to Supabase after fetching."),
    page_url: str | None = _page_url_opt,
    cookies_file: Path | None = _cookies_opt,
    prefer_cookie_header: bool | None = _prefer_cookie_opt,
) -> None:
    """Fetch every league view, normalize, and write the bundle JSON."""

    league_id, season = resolve_league(league_id, season)

    async def _run():
        async with exporter_scope(
            page_url=page_url or settings.page_url,
            cookies_file=cookies_file or settings.cookies_file,
            prefer_cookie_header=_prefer(prefer_cookie_header),
        ) as exporter:
            return await exporter.fetch_bundle(league_id, season, include_raw)

    result = asyncio.run(_run())
    if isinstance(result, ExportFailure):
        fail(result)

    bundle = result.bundle
    path = write_bundle(bundle, output or default_bundle_path(bundle))

    with session_scope() as session:
        save_last_fetch(SqlKeyValueStore(session), bundle)

    summary = bundle.meta.summary
    typer.echo(
        " ".join(
            [
                f"Fetched league {bundle.meta.league_id} {bundle.meta.season}",
                f"via {result.transport}:",
                f"status={result.status}",
                f"teams={summary.team_count}",
                f"rostered_players={summary.total_rostered_players}",
                f"matchups={summary.matchup_count}",
                f"-> {path}",
            ]
        )
    )
    if result.failures:
        typer.echo("Failed views:")
        echo_failures(result.failures)

    if sync:
        push_bundle(bundle)


@app.command("detect-league")
def detect_league_cmd(
    page_url: str | None = _page_url_opt,
    cookies_file: Path | None = _cookies_opt,
) -> None:
    """Read the league id from the active fantasy page."""

    async def _run():
        async with exporter_scope(
            page_url=page_url or settings.page_url,
            cookies_file=cookies_file or settings.cookies_file,
            prefer_cookie_header=False,
        ) as exporter:
            return await exporter.detect_league_id()

    league_id = asyncio.run(_run())
    if not league_id:
        typer.echo("Could not detect a league ID. Enter it manually.", err=True)
        raise typer.Exit(code=1)
    typer.echo(league_id)


@app.command("urls")
def urls_cmd(
    league_id: str = typer.Option(..., "--league-id", help="ESPN league id."),
    season: int | None = typer.Option(None, "--season", help="Season year (default: current)."),
    views: list[View] = typer.Option(
        list(ALL_VIEWS), "--view", help="View to include (repeatable)."
    ),
    batched: bool = typer.Option(False, "--batched", help="One URL carrying every view."),
) -> None:
    """Print the provider URLs a fetch would request."""

    resolved = resolve_season(season)
    if batched:
        typer.echo(build_batched_url(league_id, resolved, views))
        return
    for req in build_view_requests(league_id, resolved, views):
        typer.echo(f"{req.view}\t{req.url}")
