from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from league_export.ingestion.providers.base.types import Json

from .types import BundleMeta, BundleSummary, LeagueBundle, LeagueData, View


def _iso_z(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    dt = dt.astimezone(UTC).replace(microsecond=0)
    return dt.isoformat().replace("+00:00", "Z")


def _as_list(value: Any) -> list[Any] | None:
    return value if isinstance(value, list) else None


def _as_dict(value: Any) -> Json | None:
    return value if isinstance(value, dict) else None


def _resolve_teams(combined_raw: Mapping[str, Any], settings: Json | None) -> list[Any] | None:
    """Top-level teams, else the settings' embedded list; None when neither is a list."""
    teams = _as_list(combined_raw.get("teams"))
    if teams is None and settings is not None:
        teams = _as_list(settings.get("teams"))
    return teams


def _settings_size(settings: Json | None) -> int:
    if settings is None:
        return 0
    size = settings.get("size")
    return size if isinstance(size, int) and not isinstance(size, bool) else 0


def _roster_entries(team: Any) -> list[Any]:
    roster = _as_dict(team.get("roster")) if isinstance(team, dict) else None
    if roster is None:
        return []
    return _as_list(roster.get("entries")) or []


def _resolve_matchups(combined_raw: Mapping[str, Any], scoreboard: Any) -> list[Any]:
    schedule = _as_list(combined_raw.get("schedule"))
    if schedule is not None:
        return schedule
    if isinstance(scoreboard, Mapping):
        for key in ("matchups", "schedule"):
            found = _as_list(scoreboard.get(key))
            if found is not None:
                return found
    return []


def normalize_bundle(
    combined_raw: Mapping[str, Any],
    *,
    league_id: str,
    season: int,
    views: Sequence[View],
    include_raw: bool = False,
    fragments: Mapping[View, Any] | None = None,
    now: datetime | None = None,
) -> LeagueBundle:
    """Map the merged provider object onto the league bundle schema.

    Pure apart from `now` (defaults to the current UTC time). `views` should be
    the views that actually succeeded; `fragments` supplies the unmerged
    per-view JSON used for the scoreboard fallback and the raw passthrough.
    """
    fragments = fragments or {}

    settings = _as_dict(combined_raw.get("settings"))
    found_teams = _resolve_teams(combined_raw, settings)
    teams = found_teams if found_teams is not None else []
    rosters = [
        {"teamId": t.get("id") if isinstance(t, dict) else None, "entries": _roster_entries(t)}
        for t in teams
    ]
    matchups = _resolve_matchups(combined_raw, fragments.get(View.SCOREBOARD))
    draft = _as_dict(combined_raw.get("draftDetail"))

    summary = BundleSummary(
        team_count=len(teams) if found_teams is not None else _settings_size(settings),
        total_rostered_players=sum(len(r["entries"]) for r in rosters),
        matchup_count=len(matchups),
    )

    raw = None
    if include_raw:
        raw = {str(v): fragments.get(v) for v in views}

    meta = BundleMeta(
        league_id=str(league_id),
        season=int(season),
        fetched_at_iso=_iso_z(now or datetime.now(UTC)),
        views=tuple(View(v) for v in views),
        summary=summary,
    )
    return LeagueBundle(
        meta=meta,
        league=LeagueData(
            settings=settings,
            teams=teams,
            rosters=rosters,
            matchups=matchups,
            draft=draft,
            raw=raw,
        ),
    )
