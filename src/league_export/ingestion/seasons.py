from __future__ import annotations

from datetime import date

# Fantasy football seasons roll over in July.
SEASON_ROLLOVER_MONTH = 7


def default_season(today: date | None = None) -> int:
    today = today or date.today()
    return today.year if today.month >= SEASON_ROLLOVER_MONTH else today.year - 1


def resolve_season(season: int | str | None, *, today: date | None = None) -> int:
    """Explicit season when it parses to a positive int, else the default season."""
    try:
        value = int(season) if season not in (None, "") else 0
    except (TypeError, ValueError):
        value = 0
    return value if value > 0 else default_season(today)
