from __future__ import annotations

from collections.abc import Sequence
from urllib.parse import quote, urlencode

import httpx

from .types import View, ViewRequest

ESPN_ORIGIN = "https://fantasy.espn.com"
ESPN_FANTASY_PREFIX = f"{ESPN_ORIGIN}/"

LEAGUE_PATH = "/apis/v3/games/ffl/seasons/{season}/segments/0/leagues/{league_id}"


def league_base_url(league_id: str, season: int | str) -> str:
    return ESPN_ORIGIN + LEAGUE_PATH.format(season=season, league_id=league_id)


def _distinct_views(views: Sequence[View]) -> list[View]:
    if not views:
        raise ValueError("At least one view is required.")
    return list(dict.fromkeys(View(v) for v in views))


def build_view_requests(
    league_id: str, season: int | str, views: Sequence[View]
) -> list[ViewRequest]:
    """
    One URL per distinct view, first occurrence order.

    leagueId/season are not validated; bad values surface as HTTP errors.
    """
    base = league_base_url(league_id, season)
    return [
        ViewRequest(view=v, url=f"{base}?view={quote(str(v), safe='')}")
        for v in _distinct_views(views)
    ]


def build_batched_url(league_id: str, season: int | str, views: Sequence[View]) -> str:
    """Single URL carrying one `view=` parameter per view."""
    query = urlencode([("view", str(v)) for v in _distinct_views(views)])
    return f"{league_base_url(league_id, season)}?{query}"


def url_origin(url: str) -> str | None:
    """scheme://host[:port] of `url`, or None when it cannot be parsed as an absolute URL."""
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError):
        return None
    if not parsed.scheme or not parsed.host:
        return None
    origin = f"{parsed.scheme}://{parsed.host}"
    if parsed.port is not None:
        origin += f":{parsed.port}"
    return origin.lower()


def is_fantasy_page(url: str | None) -> bool:
    return bool(url) and url.startswith(ESPN_FANTASY_PREFIX)
