from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from league_export.cli.common import read_bundle, session_scope
from league_export.core.config import settings
from league_export.ingestion.providers.base.client import BaseHttpClient
from league_export.ingestion.providers.espn.types import LeagueBundle
from league_export.state import (
    SqlKeyValueStore,
    clear_state,
    load_last_fetch,
    load_sync_target,
    save_sync_target,
)
from league_export.sync.supabase import DEFAULT_TABLE, SupabaseSyncClient, SyncTarget

app = typer.Typer(help="Push bundles to Supabase.")
config_app = typer.Typer(help="Persisted settings (sync target, last fetch).")


def _settings_target() -> SyncTarget:
    return SyncTarget(
        url=settings.supabase_url,
        anon_key=settings.supabase_anon_key,
        table=settings.supabase_table,
    )


def push_bundle(bundle: LeagueBundle) -> None:
    with session_scope() as session:
        target = load_sync_target(SqlKeyValueStore(session), fallback=_settings_target())

    async def _run():
        async with BaseHttpClient(
            timeout_s=settings.http_timeout_s,
            connect_timeout_s=settings.http_connect_timeout_s,
        ) as http:
            return await SupabaseSyncClient(http=http).push(bundle, target)

    result = asyncio.run(_run())
    if not result.ok:
        typer.echo(f"Sync failed: {result.message}", err=True)
        if result.details:
            typer.echo(result.details, err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Synced league {bundle.meta.league_id} {bundle.meta.season} to {target.table}.")


@app.command("push")
def push_cmd(
    bundle_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Bundle JSON file."),
) -> None:
    """Upload a previously written bundle file."""

    push_bundle(read_bundle(bundle_path))


@config_app.command("set-sync")
def set_sync_cmd(
    url: str = typer.Option(..., "--url", help="Supabase project URL."),
    anon_key: str = typer.Option(..., "--anon-key", help="Supabase anon key."),
    table: str = typer.Option(DEFAULT_TABLE, "--table", help="Destination table."),
) -> None:
    """Save the Supabase sync target."""

    url = url.strip()
    anon_key = anon_key.strip()
    if not url:
        typer.echo("Supabase URL is required.", err=True)
        raise typer.Exit(code=2)
    if not anon_key:
        typer.echo("Supabase anon key is required.", err=True)
        raise typer.Exit(code=2)

    with session_scope() as session:
        save_sync_target(
            SqlKeyValueStore(session),
            SyncTarget(url=url, anon_key=anon_key, table=table.strip() or DEFAULT_TABLE),
        )
    typer.echo("Settings saved.")


@config_app.command("show")
def show_cmd() -> None:
    """Print the persisted last fetch and sync target (key masked)."""

    with session_scope() as session:
        store = SqlKeyValueStore(session)
        last = load_last_fetch(store)
        target = load_sync_target(store, fallback=_settings_target())

    if last is None:
        typer.echo("last_fetch: none")
    else:
        summary = last.summary
        counts = (
            f" teams={summary.team_count} rostered_players={summary.total_rostered_players}"
            f" matchups={summary.matchup_count}"
            if summary
            else ""
        )
        typer.echo(f"last_fetch: league={last.league_id} season={last.season}{counts}")

    masked = f"{target.anon_key[:4]}..." if target.anon_key else "unset"
    typer.echo(f"sync_target: url={target.url or 'unset'} table={target.table} anon_key={masked}")


@config_app.command("reset")
def reset_cmd(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Clear the persisted last fetch and sync target."""

    if not yes:
        typer.confirm("Clear saved settings?", abort=True)
    with session_scope() as session:
        clear_state(SqlKeyValueStore(session))
    typer.echo("Settings cleared.")
