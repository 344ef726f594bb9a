from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from league_export.ingestion.providers.base.client import BaseHttpClient
from league_export.ingestion.providers.base.errors import (
    ErrorCode,
    MessagingUnavailableError,
    MissingCredentialsError,
    ScriptInjectionError,
)
from league_export.ingestion.providers.base.retry import RetryPolicy
from league_export.ingestion.providers.base.types import (
    FetchFailure,
    FetchOutcome,
    outcome_from_message,
)

from .browser import (
    CONTENT_SCRIPT_PATH,
    MAIN_WORLD_PATH,
    Browser,
    BrowserTab,
    CookieStore,
    SessionCookie,
    injected_fetch_json,
)
from .fetch import fetch_json_many

logger = logging.getLogger(__name__)

COOKIE_HEADER_PATH = "cookie-header"

ESPN_COOKIE_DOMAIN = "espn.com"
SWID_COOKIE = "SWID"
ESPN_S2_COOKIE = "espn_s2"

FANTASY_HEADERS = {
    "X-Fantasy-Platform": "kona",
    "X-Fantasy-Source": "kona",
}


class Transport(Protocol):
    """
    Retrieve JSON for a set of URLs, authenticated as the current user.

    fetch_many returns exactly one outcome per URL, in input order, even when
    everything fails. Non-2xx statuses are never retried here.
    """

    name: str
    supports_batch: bool

    async def fetch_many(self, urls: Sequence[str]) -> list[FetchOutcome]: ...


def _fail_all(urls: Sequence[str], kind: ErrorCode, message: str) -> list[FetchOutcome]:
    return [FetchFailure(kind, str(u), message=message) for u in urls]


def _decode_results(
    urls: Sequence[str], results: object, *, transport: str, missing: str
) -> list[FetchOutcome]:
    items = results if isinstance(results, list) else []
    out: list[FetchOutcome] = []
    for i, url in enumerate(urls):
        if i < len(items):
            out.append(outcome_from_message(items[i], url=str(url), transport=transport))
        else:
            out.append(FetchFailure(ErrorCode.MESSAGING_ERROR, str(url), message=missing))
    return out


@dataclass
class MessagingTransport:
    """Delegates fetches to the in-page agent so the tab's own session cookies apply."""

    browser: Browser
    tab: BrowserTab

    name: str = CONTENT_SCRIPT_PATH
    supports_batch: bool = True

    async def _send(self, message: dict, frame_id: int | None) -> tuple[dict | None, str | None]:
        try:
            return await self.browser.send_message(self.tab.id, message, frame_id=frame_id), None
        except MessagingUnavailableError as e:
            return None, str(e)

    async def fetch_many(self, urls: Sequence[str]) -> list[FetchOutcome]:
        urls = [str(u) for u in urls]
        message = {"type": "fetchJson", "urls": urls}

        resp, error = await self._send(message, 0)
        if resp is None:
            logger.debug("no reply from primary frame (%s); trying any frame", error)
            resp, error = await self._send(message, None)

        if resp is None:
            return _fail_all(
                urls,
                ErrorCode.MESSAGING_ERROR,
                error or "No response from content script.",
            )

        if resp.get("ok") is not True:
            return _fail_all(
                urls,
                ErrorCode.MESSAGING_ERROR,
                f"{resp.get('code') or 'UNKNOWN'}: {resp.get('message') or ''}".rstrip(": "),
            )

        return _decode_results(
            urls,
            resp.get("results"),
            transport=self.name,
            missing="No result from content script.",
        )


@dataclass
class InjectedTransport:
    """Fallback: run a fetch routine directly in the page's top-level context."""

    browser: Browser
    tab: BrowserTab

    name: str = MAIN_WORLD_PATH
    supports_batch: bool = True

    async def fetch_many(self, urls: Sequence[str]) -> list[FetchOutcome]:
        urls = [str(u) for u in urls]
        try:
            results = await self.browser.execute_script(self.tab.id, injected_fetch_json, urls)
        except ScriptInjectionError as e:
            return _fail_all(urls, ErrorCode.MESSAGING_ERROR, f"Script injection failed: {e}")

        return _decode_results(
            urls, results, transport=self.name, missing="No result from injected routine."
        )


def select_session_cookie(cookies: Sequence[SessionCookie], name: str) -> SessionCookie | None:
    """
    Pick `name` among duplicates across subdomains.

    Parent-domain cookies (".espn.com") win over host-only ones, broader
    domains over narrower ones.
    """
    matches = [c for c in cookies if c.name == name and c.value]
    if not matches:
        return None
    matches.sort(key=lambda c: (c.host_only, len(c.domain.lstrip("."))))
    return matches[0]


@dataclass
class CredentialHeaderTransport:
    """Attach SWID / espn_s2 from the cookie store as an explicit Cookie header."""

    cookie_store: CookieStore
    http: BaseHttpClient
    retry: RetryPolicy

    name: str = COOKIE_HEADER_PATH
    supports_batch: bool = False

    async def credential_headers(self) -> dict[str, str]:
        """Raises MissingCredentialsError, before any network call, if a cookie is absent."""
        cookies = await self.cookie_store.get_all(domain=ESPN_COOKIE_DOMAIN)
        swid = select_session_cookie(cookies, SWID_COOKIE)
        espn_s2 = select_session_cookie(cookies, ESPN_S2_COOKIE)

        missing = [
            name for name, c in ((SWID_COOKIE, swid), (ESPN_S2_COOKIE, espn_s2)) if c is None
        ]
        if missing:
            raise MissingCredentialsError(missing)

        return {
            **FANTASY_HEADERS,
            "Cookie": f"{SWID_COOKIE}={swid.value}; {ESPN_S2_COOKIE}={espn_s2.value}",
        }

    async def fetch_many(self, urls: Sequence[str]) -> list[FetchOutcome]:
        headers = await self.credential_headers()
        return await fetch_json_many(
            self.http, urls, retry=self.retry, transport=self.name, headers=headers
        )
