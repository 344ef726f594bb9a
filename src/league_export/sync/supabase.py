from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from league_export.ingestion.providers.base.client import BaseHttpClient
from league_export.ingestion.providers.espn.types import LeagueBundle

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "espn_syncs"


@dataclass(frozen=True)
class SyncTarget:
    url: str | None = None
    anon_key: str | None = None
    table: str | None = DEFAULT_TABLE

    @property
    def is_complete(self) -> bool:
        return bool(self.url and self.anon_key and self.table)

    def endpoint(self) -> str:
        return f"{str(self.url).rstrip('/')}/rest/v1/{quote(str(self.table), safe='')}"


@dataclass(frozen=True)
class SyncResult:
    ok: bool
    message: str | None = None
    details: str | None = None
    data: Any = None


def sync_row(bundle: LeagueBundle) -> dict[str, Any]:
    return {
        "league_id": bundle.meta.league_id,
        "season": bundle.meta.season,
        "fetched_at": bundle.meta.fetched_at_iso,
        "payload": bundle.to_dict(),
    }


class SupabaseSyncClient:
    """One-shot POST of a bundle row to a Supabase REST table. No retries."""

    def __init__(self, *, http: BaseHttpClient) -> None:
        self.http = http

    async def push(self, bundle: LeagueBundle, target: SyncTarget) -> SyncResult:
        if not target.is_complete:
            return SyncResult(ok=False, message="Missing Supabase configuration.")

        headers = {
            "apikey": str(target.anon_key),
            "Authorization": f"Bearer {target.anon_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        try:
            resp = await self.http.post_json(target.endpoint(), json=sync_row(bundle), headers=headers)
        except httpx.HTTPError as e:
            logger.warning("supabase sync failed: %s", e)
            return SyncResult(ok=False, message=str(e) or type(e).__name__)

        if not resp.is_success:
            return SyncResult(ok=False, message=f"Supabase HTTP {resp.status_code}", details=resp.text)

        try:
            body = resp.json()
        except ValueError:
            body = []
        logger.info(
            "synced league %s season %s to %s",
            bundle.meta.league_id,
            bundle.meta.season,
            target.table,
        )
        return SyncResult(ok=True, data=body)
