from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path

import typer
from sqlalchemy.orm import Session

from league_export.core.config import settings
from league_export.db import DatabaseConfig, create_db_engine, create_session_factory, ensure_schema
from league_export.ingestion.providers.base.client import BaseHttpClient
from league_export.ingestion.providers.base.retry import RetryPolicy
from league_export.ingestion.providers.espn.browser import (
    JarCookieStore,
    SessionBrowser,
    load_cookie_jar,
)
from league_export.ingestion.providers.espn.ingest.league_bundle import LeagueExporter
from league_export.ingestion.providers.espn.types import ExportFailure, LeagueBundle, ViewFailure
from league_export.state import SqlKeyValueStore, load_last_fetch


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Context-managed DB session for CLI commands.
    Ensures proper close and rolls back on exception.
    """
    engine = create_db_engine(
        DatabaseConfig(database_url=settings.database_url, echo=settings.db_echo)
    )
    ensure_schema(engine)
    SessionLocal = create_session_factory(engine)
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def retry_policy() -> RetryPolicy:
    return RetryPolicy(
        base_delay_s=settings.retry_base_delay_s,
        max_retries=settings.retry_max_retries,
    )


def _http(**kwargs) -> BaseHttpClient:
    return BaseHttpClient(
        timeout_s=settings.http_timeout_s,
        connect_timeout_s=settings.http_connect_timeout_s,
        **kwargs,
    )


@asynccontextmanager
async def exporter_scope(
    *,
    page_url: str | None,
    cookies_file: Path | None,
    prefer_cookie_header: bool,
) -> AsyncIterator[LeagueExporter]:
    """
    Build a LeagueExporter over a SessionBrowser.

    The exported cookie jar (if any) backs both the tab's session and the
    cookie-header transport's credential lookup.
    """
    jar = load_cookie_jar(cookies_file) if cookies_file else None
    retry = retry_policy()
    page_http = _http(cookies=jar)
    cookie_http = _http() if jar is not None else None
    try:
        yield LeagueExporter(
            browser=SessionBrowser(page_url=page_url, http=page_http, retry=retry),
            cookie_store=JarCookieStore(jar) if jar is not None else None,
            cookie_http=cookie_http,
            retry=retry,
            prefer_cookie_header=prefer_cookie_header,
        )
    finally:
        await page_http.aclose()
        if cookie_http is not None:
            await cookie_http.aclose()


def resolve_league(league_id: str | None, season: int | None) -> tuple[str, int | None]:
    """Explicit league id wins; otherwise fall back to the last fetched league and season."""
    if league_id:
        return league_id, season
    with session_scope() as session:
        last = load_last_fetch(SqlKeyValueStore(session))
    if last is None:
        typer.echo("No --league-id given and no previous fetch to default from.", err=True)
        raise typer.Exit(code=2)
    return last.league_id, season or last.season


def echo_failures(failures: tuple[ViewFailure, ...]) -> None:
    for f in failures:
        detail = f.failure.message or ""
        if f.failure.status is not None:
            detail = f"HTTP {f.failure.status} {f.failure.status_text or ''}".rstrip()
        typer.echo(f"  {f.view}: {f.failure.kind} {detail}".rstrip())


def fail(failure: ExportFailure) -> None:
    typer.echo(f"Failed: {failure.describe()}", err=True)
    if failure.failures:
        echo_failures(failure.failures)
    raise typer.Exit(code=1)


def default_bundle_path(bundle: LeagueBundle) -> Path:
    return Path(f"espn_league_{bundle.meta.league_id}_{bundle.meta.season}.json")


def write_bundle(bundle: LeagueBundle, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(bundle.to_dict(), indent=2), encoding="utf-8")
    return path


def read_bundle(path: Path) -> LeagueBundle:
    return LeagueBundle.from_dict(json.loads(path.read_text(encoding="utf-8")))
