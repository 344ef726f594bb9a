"""
Browsing-context seam.

The exporter never talks to a browser directly; it goes through the `Browser`
protocol (active tab, message an in-page agent, run a routine inside the page)
and the `CookieStore` protocol (read session cookies for a domain).

`SessionBrowser` is the shipped implementation: one tab whose location is a
known fantasy page URL, backed by an httpx session seeded from an exported
Netscape cookies.txt jar. The same jar serves as the cookie store.
"""
from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from http.cookiejar import CookieJar, MozillaCookieJar
from pathlib import Path
from typing import Any, Protocol

from league_export.ingestion.providers.base.client import BaseHttpClient
from league_export.ingestion.providers.base.errors import (
    MessagingUnavailableError,
    ScriptInjectionError,
)
from league_export.ingestion.providers.base.retry import RetryPolicy
from league_export.ingestion.providers.base.types import Json

from .fetch import fetch_json
from .urls import ESPN_ORIGIN, is_fantasy_page, url_origin

logger = logging.getLogger(__name__)

_league_id_re = re.compile(r"[?&#]leagueId=(\d+)")

CONTENT_SCRIPT_PATH = "content-script"
MAIN_WORLD_PATH = "main-world"


@dataclass(frozen=True)
class BrowserTab:
    id: int
    url: str


@dataclass
class PageContext:
    """What code running inside a tab can reach: its location and the page's own fetch."""

    url: str
    http: BaseHttpClient
    retry: RetryPolicy

    @property
    def origin(self) -> str | None:
        return url_origin(self.url)


PageScript = Callable[..., Awaitable[Any]]


class Browser(Protocol):
    async def active_tab(self) -> BrowserTab | None: ...

    async def send_message(
        self, tab_id: int, message: Json, *, frame_id: int | None = None
    ) -> Json | None:
        """
        Deliver `message` to the in-page agent of `tab_id`.

        frame_id=0 targets the primary frame; None lets any frame answer.
        Raises MessagingUnavailableError when nothing receives the message;
        returns None when the channel closes without a reply.
        """
        ...

    async def execute_script(self, tab_id: int, func: PageScript, *args: Any) -> Any:
        """Run `func(page, *args)` in the tab's top-level context. Raises ScriptInjectionError."""
        ...


@dataclass(frozen=True)
class SessionCookie:
    name: str
    value: str
    domain: str

    @property
    def host_only(self) -> bool:
        return not self.domain.startswith(".")


class CookieStore(Protocol):
    async def get_all(self, *, domain: str) -> list[SessionCookie]: ...


def extract_league_id(url: str | None) -> str | None:
    m = _league_id_re.search(str(url or ""))
    return m.group(1) if m else None


class PageAgent:
    """In-page agent answering `fetchJson` / `detectLeagueId` messages.

    Runs with the page's session, so browser-managed cookies apply to every fetch.
    """

    def __init__(self, page: PageContext) -> None:
        self.page = page

    async def handle(self, message: Any) -> Json:
        if not isinstance(message, Mapping) or not isinstance(message.get("type"), str):
            return {"ok": False, "code": "BAD_MESSAGE", "message": "Invalid request."}

        kind = message["type"]
        try:
            if kind == "detectLeagueId":
                league_id = extract_league_id(self.page.url)
                if league_id:
                    return {"ok": True, "leagueId": league_id}
                return {"ok": False, "code": "NO_LEAGUE_ID"}

            if kind == "fetchJson":
                urls = message.get("urls")
                if not isinstance(urls, list):
                    return {"ok": False, "code": "BAD_MESSAGE", "message": "Missing URLs."}
                results = []
                for url in urls:
                    outcome = await fetch_json(
                        self.page.http,
                        str(url or ""),
                        retry=self.page.retry,
                        transport=CONTENT_SCRIPT_PATH,
                    )
                    results.append(outcome.to_message())
                return {"ok": True, "results": results, "path": CONTENT_SCRIPT_PATH}
        except Exception as e:
            logger.exception("page agent failed handling %s", kind)
            return {"ok": False, "code": "UNEXPECTED", "message": str(e)}

        return {"ok": False, "code": "UNKNOWN_REQUEST", "message": f"Unknown type: {kind}"}


async def injected_fetch_json(page: PageContext, urls: Sequence[str]) -> list[Json]:
    """
    Routine injected into the page's top-level context.

    Re-checks every URL against the provider origin here, inside the page: the
    caller's allow-list does not cover a dynamically injected routine.
    """
    out: list[Json] = []
    for url in urls:
        url = str(url)
        if url_origin(url) != ESPN_ORIGIN:
            out.append({"ok": False, "code": "CROSS_ORIGIN", "url": url})
            continue
        outcome = await fetch_json(page.http, url, retry=page.retry, transport=MAIN_WORLD_PATH)
        out.append(outcome.to_message())
    return out


def load_cookie_jar(path: str | Path) -> MozillaCookieJar:
    jar = MozillaCookieJar(str(path))
    jar.load(ignore_discard=True, ignore_expires=True)
    return jar


class JarCookieStore:
    """CookieStore over a stdlib cookie jar (e.g. an exported cookies.txt)."""

    def __init__(self, jar: CookieJar) -> None:
        self.jar = jar

    async def get_all(self, *, domain: str) -> list[SessionCookie]:
        domain = domain.lstrip(".").lower()
        out: list[SessionCookie] = []
        for c in self.jar:
            cookie_domain = (c.domain or "").lower()
            bare = cookie_domain.lstrip(".")
            if bare == domain or bare.endswith("." + domain):
                out.append(SessionCookie(name=c.name, value=c.value or "", domain=cookie_domain))
        return out


class SessionBrowser:
    """Single-tab browser: a fantasy page URL plus the session that loaded it.

    Messages are delivered to a PageAgent running in-process in the frames listed
    in `agent_frame_ids`; injected routines run against the same page context.
    """

    TAB_ID = 1

    def __init__(
        self,
        *,
        page_url: str | None,
        http: BaseHttpClient,
        retry: RetryPolicy,
        agent_frame_ids: frozenset[int] = frozenset({0}),
    ) -> None:
        self.page_url = page_url
        self.agent_frame_ids = agent_frame_ids
        self._page = PageContext(url=page_url or "", http=http, retry=retry)
        self._agent = PageAgent(self._page)

    async def active_tab(self) -> BrowserTab | None:
        if not self.page_url:
            return None
        return BrowserTab(id=self.TAB_ID, url=self.page_url)

    def _check_tab(self, tab_id: int) -> None:
        if tab_id != self.TAB_ID or not self.page_url:
            raise MessagingUnavailableError(f"No tab with id: {tab_id}.")

    async def send_message(
        self, tab_id: int, message: Json, *, frame_id: int | None = None
    ) -> Json | None:
        self._check_tab(tab_id)
        if frame_id is None:
            if not self.agent_frame_ids:
                raise MessagingUnavailableError(
                    "Could not establish connection. Receiving end does not exist."
                )
        elif frame_id not in self.agent_frame_ids:
            raise MessagingUnavailableError(
                "Could not establish connection. Receiving end does not exist."
            )
        return await self._agent.handle(message)

    async def execute_script(self, tab_id: int, func: PageScript, *args: Any) -> Any:
        if tab_id != self.TAB_ID or not is_fantasy_page(self.page_url):
            raise ScriptInjectionError(f"Cannot access contents of url {self.page_url!r}.")
        try:
            return await func(self._page, *args)
        except Exception as e:
            raise ScriptInjectionError(str(e)) from e
