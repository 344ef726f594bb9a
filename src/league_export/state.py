"""
Persisted key/value state.

Holds the last fetched league (id, season, summary counts) and the Supabase
sync target. Read at startup for defaults, written after every successful
fetch or explicit edit. Last write wins; there is no locking.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy.orm import Session

from league_export.db.repos.kv_entry_repo import KeyValueEntryRepository
from league_export.ingestion.providers.espn.types import BundleSummary, LeagueBundle
from league_export.sync.supabase import DEFAULT_TABLE, SyncTarget

LAST_FETCH_KEY = "last_fetch"
SYNC_TARGET_KEY = "sync_target"


class KeyValueStore(Protocol):
    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class SqlKeyValueStore:
    """KeyValueStore over the kv_entries table. The caller owns commit/rollback."""

    def __init__(self, session: Session) -> None:
        self.repo = KeyValueEntryRepository(session)

    def get(self, key: str, default: Any = None) -> Any:
        entry = self.repo.get(key)
        if entry is None or entry.value_json is None:
            return default
        return entry.value_json

    def set(self, key: str, value: Any) -> None:
        self.repo.upsert(key, value)

    def delete(self, key: str) -> None:
        entry = self.repo.get(key)
        if entry is not None:
            self.repo.delete(entry)


@dataclass(frozen=True)
class LastFetch:
    league_id: str
    season: int
    summary: BundleSummary | None = None


def save_last_fetch(store: KeyValueStore, bundle: LeagueBundle) -> LastFetch:
    last = LastFetch(
        league_id=bundle.meta.league_id,
        season=bundle.meta.season,
        summary=bundle.meta.summary,
    )
    store.set(
        LAST_FETCH_KEY,
        {
            "leagueId": last.league_id,
            "season": last.season,
            "summary": last.summary.to_dict() if last.summary else None,
        },
    )
    return last


def load_last_fetch(store: KeyValueStore) -> LastFetch | None:
    value = store.get(LAST_FETCH_KEY)
    if not isinstance(value, dict) or not value.get("leagueId"):
        return None

    summary = None
    raw_summary = value.get("summary")
    if isinstance(raw_summary, dict):
        summary = BundleSummary(
            team_count=int(raw_summary.get("teamCount") or 0),
            total_rostered_players=int(raw_summary.get("totalRosteredPlayers") or 0),
            matchup_count=int(raw_summary.get("matchupCount") or 0),
        )

    try:
        season = int(value.get("season"))
    except (TypeError, ValueError):
        return None

    return LastFetch(league_id=str(value["leagueId"]), season=season, summary=summary)


def save_sync_target(store: KeyValueStore, target: SyncTarget) -> None:
    store.set(
        SYNC_TARGET_KEY,
        {
            "supabaseUrl": target.url,
            "supabaseAnonKey": target.anon_key,
            "supabaseTable": target.table or DEFAULT_TABLE,
        },
    )


def load_sync_target(store: KeyValueStore, *, fallback: SyncTarget | None = None) -> SyncTarget:
    """Stored target; fields missing from the store come from `fallback` (e.g. env settings)."""
    fallback = fallback or SyncTarget()
    value = store.get(SYNC_TARGET_KEY)
    if not isinstance(value, dict):
        return fallback
    return SyncTarget(
        url=value.get("supabaseUrl") or fallback.url,
        anon_key=value.get("supabaseAnonKey") or fallback.anon_key,
        table=value.get("supabaseTable") or fallback.table or DEFAULT_TABLE,
    )


def clear_state(store: KeyValueStore) -> None:
    """Forget the last fetch and the saved sync target."""
    for key in (LAST_FETCH_KEY, SYNC_TARGET_KEY):
        store.delete(key)
