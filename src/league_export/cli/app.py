from __future__ import annotations

import logging

import typer

from league_export.cli.league import app as league_app
from league_export.cli.sync import app as sync_app
from league_export.cli.sync import config_app
from league_export.core.config import settings

app = typer.Typer(no_args_is_help=True)
app.add_typer(league_app, name="league")
app.add_typer(sync_app, name="sync")
app.add_typer(config_app, name="config")


@app.callback()
def main(
    log_level: str = typer.Option(
        settings.log_level, "--log-level", help="Python logging level (DEBUG, INFO, ...)."
    ),
) -> None:
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
