from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from league_export.ingestion.providers.base.errors import ErrorCode
from league_export.ingestion.providers.base.types import FetchFailure, Json


class View(StrEnum):
    TEAM = "mTeam"
    ROSTER = "mRoster"
    MATCHUP = "mMatchup"
    SCOREBOARD = "mScoreboard"
    SETTINGS = "mSettings"
    DRAFT_DETAIL = "mDraftDetail"


ALL_VIEWS: tuple[View, ...] = tuple(View)


@dataclass(frozen=True)
class ViewRequest:
    view: View
    url: str


@dataclass(frozen=True)
class ViewFailure:
    view: View
    failure: FetchFailure


@dataclass(frozen=True)
class AggregateResult:
    """
    Outcome of fetching a batch of views.

    succeeded_views and the views in `failures` partition the requested views.
    `fragments` keeps each view's JSON unmerged; `combined_raw` is their deep merge
    in request order.
    """

    succeeded_views: tuple[View, ...]
    combined_raw: Json
    fragments: dict[View, Any]
    failures: tuple[ViewFailure, ...]
    transport: str

    @property
    def all_failed(self) -> bool:
        return not self.succeeded_views

    @property
    def only_network_failures(self) -> bool:
        """Every view failed without an HTTP exchange (network or messaging)."""
        return self.all_failed and all(f.failure.is_network_class for f in self.failures)

    @property
    def auth_rejected(self) -> bool:
        return self.all_failed and any(f.failure.is_auth_failure for f in self.failures)

    def hard_failure(self) -> FetchFailure | None:
        """
        None when at least one view succeeded.

        Otherwise the deciding failure: the first 401/403, since a login problem
        is the more actionable diagnosis, else the first failure in request order.
        """
        if not self.all_failed or not self.failures:
            return None
        for f in self.failures:
            if f.failure.is_auth_failure:
                return f.failure
        return self.failures[0].failure


@dataclass(frozen=True)
class BundleSummary:
    team_count: int = 0
    total_rostered_players: int = 0
    matchup_count: int = 0

    def to_dict(self) -> Json:
        return {
            "teamCount": self.team_count,
            "totalRosteredPlayers": self.total_rostered_players,
            "matchupCount": self.matchup_count,
        }


@dataclass(frozen=True)
class BundleMeta:
    league_id: str
    season: int
    fetched_at_iso: str
    views: tuple[View, ...]
    summary: BundleSummary

    def to_dict(self) -> Json:
        return {
            "leagueId": self.league_id,
            "season": self.season,
            "fetchedAtISO": self.fetched_at_iso,
            "views": [str(v) for v in self.views],
            "summary": self.summary.to_dict(),
        }


@dataclass(frozen=True)
class LeagueData:
    settings: Json | None
    teams: list[Any]
    rosters: list[Json]
    matchups: list[Any]
    draft: Json | None
    raw: dict[str, Any] | None = None

    def to_dict(self) -> Json:
        out: Json = {
            "settings": self.settings,
            "teams": self.teams,
            "rosters": self.rosters,
            "matchups": self.matchups,
            "draft": self.draft,
        }
        if self.raw is not None:
            out["raw"] = self.raw
        return out


@dataclass(frozen=True)
class LeagueBundle:
    meta: BundleMeta
    league: LeagueData

    def to_dict(self) -> Json:
        return {"meta": self.meta.to_dict(), "league": self.league.to_dict()}

    @classmethod
    def from_dict(cls, value: Mapping[str, Any]) -> LeagueBundle:
        """Rebuild a bundle from its `to_dict` JSON (e.g. a downloaded file)."""
        meta = value["meta"]
        summary = meta.get("summary") or {}
        league = value.get("league") or {}
        return cls(
            meta=BundleMeta(
                league_id=str(meta["leagueId"]),
                season=int(meta["season"]),
                fetched_at_iso=str(meta["fetchedAtISO"]),
                views=tuple(View(v) for v in meta.get("views") or ()),
                summary=BundleSummary(
                    team_count=int(summary.get("teamCount") or 0),
                    total_rostered_players=int(summary.get("totalRosteredPlayers") or 0),
                    matchup_count=int(summary.get("matchupCount") or 0),
                ),
            ),
            league=LeagueData(
                settings=league.get("settings"),
                teams=list(league.get("teams") or []),
                rosters=list(league.get("rosters") or []),
                matchups=list(league.get("matchups") or []),
                draft=league.get("draft"),
                raw=league.get("raw"),
            ),
        )


class FetchStatus(StrEnum):
    SUCCESS = "SUCCESS"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"


@dataclass(frozen=True)
class BundleResult:
    status: FetchStatus
    bundle: LeagueBundle
    transport: str
    failures: tuple[ViewFailure, ...] = ()

    ok = True


@dataclass(frozen=True)
class ConnectionResult:
    path: str

    ok = True


@dataclass(frozen=True)
class ExportFailure:
    """Top-level failure returned (never raised) by the exporter."""

    code: ErrorCode
    hint: str | None = None
    status: int | None = None
    status_text: str | None = None
    message: str | None = None
    failures: tuple[ViewFailure, ...] = field(default=())

    ok = False

    def describe(self) -> str:
        parts = [str(self.code)]
        if self.status is not None:
            parts.append(f"HTTP {self.status} {self.status_text or ''}".rstrip())
        if self.message:
            parts.append(self.message)
        if self.hint:
            parts.append(self.hint)
        return " - ".join(parts)
