from __future__ import annotations

import asyncio
from http.cookiejar import Cookie, CookieJar
from typing import Any

import httpx
import pytest

from league_export.ingestion.providers.base.client import BaseHttpClient
from league_export.ingestion.providers.base.errors import (
    ErrorCode,
    MessagingUnavailableError,
    MissingCredentialsError,
)
from league_export.ingestion.providers.base.retry import RetryPolicy
from league_export.ingestion.providers.base.types import FetchFailure, FetchSuccess
from league_export.ingestion.providers.espn.browser import (
    BrowserTab,
    JarCookieStore,
    SessionBrowser,
    SessionCookie,
)
from league_export.ingestion.providers.espn.transports import (
    CredentialHeaderTransport,
    InjectedTransport,
    MessagingTransport,
    select_session_cookie,
)

PAGE_URL = "https://fantasy.espn.com/football/team?leagueId=12345&seasonId=2023"
LEAGUE_URL = "https://fantasy.espn.com/apis/v3/games/ffl/seasons/2023/segments/0/leagues/12345"
EVIL_URL = "https://evil.example/api"


async def _no_sleep(_: float) -> None:
    return None


def _cookie(name: str, value: str, domain: str) -> Cookie:
    return Cookie(
        version=0,
        name=name,
        value=value,
        port=None,
        port_specified=False,
        domain=domain,
        domain_specified=domain.startswith("."),
        domain_initial_dot=domain.startswith("."),
        path="/",
        path_specified=True,
        secure=True,
        expires=None,
        discard=True,
        comment=None,
        comment_url=None,
        rest={},
    )


class CountingHandler:
    def __init__(self, payload: Any = None) -> None:
        self.calls: list[httpx.Request] = []
        self.payload = {"teams": []} if payload is None else payload

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        return httpx.Response(200, json=self.payload)


class ScriptedBrowser:
    """Fake browser: replies per frame id, records every send."""

    def __init__(self, replies: dict[int | None, Any]) -> None:
        self.replies = replies
        self.sent: list[int | None] = []

    async def active_tab(self) -> BrowserTab | None:
        return BrowserTab(id=7, url=PAGE_URL)

    async def send_message(self, tab_id: int, message: dict, *, frame_id: int | None = None):
        self.sent.append(frame_id)
        reply = self.replies.get(frame_id, MessagingUnavailableError("Receiving end does not exist."))
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def execute_script(self, tab_id: int, func, *args: Any) -> Any:
        raise NotImplementedError


def test_messaging_transport_retries_unscoped_frame() -> None:
    ok_reply = {
        "ok": True,
        "results": [{"ok": True, "data": {"teams": []}, "url": LEAGUE_URL}],
    }
    browser = ScriptedBrowser({0: MessagingUnavailableError("no frame 0"), None: ok_reply})
    transport = MessagingTransport(browser=browser, tab=BrowserTab(id=7, url=PAGE_URL))

    (outcome,) = asyncio.run(transport.fetch_many([LEAGUE_URL]))

    assert browser.sent == [0, None]
    assert isinstance(outcome, FetchSuccess)
    assert outcome.transport == "content-script"


def test_messaging_transport_no_reply_is_messaging_error_per_url() -> None:
    browser = ScriptedBrowser({0: None, None: None})
    transport = MessagingTransport(browser=browser, tab=BrowserTab(id=7, url=PAGE_URL))

    outcomes = asyncio.run(transport.fetch_many([LEAGUE_URL, LEAGUE_URL + "?view=mTeam"]))

    assert browser.sent == [0, None]
    assert len(outcomes) == 2
    assert all(o.kind == ErrorCode.MESSAGING_ERROR for o in outcomes)


def test_messaging_transport_pads_short_results() -> None:
    reply = {
        "ok": True,
        "results": [
            {"ok": False, "code": "HTTP_ERROR", "status": 401, "statusText": "Unauthorized"}
        ],
    }
    browser = ScriptedBrowser({0: reply})
    transport = MessagingTransport(browser=browser, tab=BrowserTab(id=7, url=PAGE_URL))

    first, second = asyncio.run(transport.fetch_many([LEAGUE_URL, LEAGUE_URL + "?view=mTeam"]))

    assert isinstance(first, FetchFailure)
    assert first.is_auth_failure
    assert first.status_text == "Unauthorized"
    assert second.kind == ErrorCode.MESSAGING_ERROR


def _session_browser(handler) -> tuple[SessionBrowser, BaseHttpClient]:
    http = BaseHttpClient(transport=httpx.MockTransport(handler))
    browser = SessionBrowser(page_url=PAGE_URL, http=http, retry=RetryPolicy(_sleep=_no_sleep))
    return browser, http


@pytest.mark.parametrize("transport_cls", [MessagingTransport, InjectedTransport])
def test_tab_transports_reject_cross_origin_without_network(transport_cls) -> None:
    handler = CountingHandler()

    async def _run():
        browser, http = _session_browser(handler)
        async with http:
            tab = await browser.active_tab()
            return await transport_cls(browser=browser, tab=tab).fetch_many(
                [EVIL_URL, LEAGUE_URL + "?view=mTeam"]
            )

    evil, league = asyncio.run(_run())

    assert evil.kind == ErrorCode.CROSS_ORIGIN
    assert evil.source_url == EVIL_URL
    assert isinstance(league, FetchSuccess)
    assert [str(r.url) for r in handler.calls] == [LEAGUE_URL + "?view=mTeam"]


def test_injected_transport_reports_path_main_world() -> None:
    async def _run():
        browser, http = _session_browser(CountingHandler())
        async with http:
            tab = await browser.active_tab()
            return await InjectedTransport(browser=browser, tab=tab).fetch_many([LEAGUE_URL])

    (outcome,) = asyncio.run(_run())
    assert isinstance(outcome, FetchSuccess)
    assert outcome.transport == "main-world"


def test_injected_transport_injection_failure_is_messaging_error() -> None:
    async def _run():
        http = BaseHttpClient(transport=httpx.MockTransport(CountingHandler()))
        browser = SessionBrowser(
            page_url="https://www.espn.com/", http=http, retry=RetryPolicy(_sleep=_no_sleep)
        )
        async with http:
            tab = BrowserTab(id=SessionBrowser.TAB_ID, url="https://www.espn.com/")
            return await InjectedTransport(browser=browser, tab=tab).fetch_many([LEAGUE_URL])

    (outcome,) = asyncio.run(_run())
    assert outcome.kind == ErrorCode.MESSAGING_ERROR


def test_select_session_cookie_prefers_parent_domain() -> None:
    cookies = [
        SessionCookie(name="SWID", value="host-only", domain="fantasy.espn.com"),
        SessionCookie(name="SWID", value="parent", domain=".espn.com"),
        SessionCookie(name="SWID", value="sub-parent", domain=".fantasy.espn.com"),
    ]
    assert select_session_cookie(cookies, "SWID").value == "parent"
    assert select_session_cookie(cookies, "espn_s2") is None


def test_credential_header_transport_sends_cookie_header() -> None:
    handler = CountingHandler()
    jar = CookieJar()
    jar.set_cookie(_cookie("SWID", "{ABC}", ".espn.com"))
    jar.set_cookie(_cookie("SWID", "{STALE}", "fantasy.espn.com"))
    jar.set_cookie(_cookie("espn_s2", "s2value", ".espn.com"))
    jar.set_cookie(_cookie("other", "x", ".example.com"))

    async def _run():
        async with BaseHttpClient(transport=httpx.MockTransport(handler)) as http:
            transport = CredentialHeaderTransport(
                cookie_store=JarCookieStore(jar),
                http=http,
                retry=RetryPolicy(_sleep=_no_sleep),
            )
            return await transport.fetch_many([LEAGUE_URL, EVIL_URL])

    league, evil = asyncio.run(_run())

    assert isinstance(league, FetchSuccess)
    assert league.transport == "cookie-header"
    assert evil.kind == ErrorCode.CROSS_ORIGIN
    assert len(handler.calls) == 1
    assert handler.calls[0].headers["Cookie"] == "SWID={ABC}; espn_s2=s2value"
    assert handler.calls[0].headers["X-Fantasy-Source"] == "kona"


def test_credential_header_transport_fails_fast_without_cookies() -> None:
    handler = CountingHandler()
    jar = CookieJar()
    jar.set_cookie(_cookie("SWID", "{ABC}", ".espn.com"))

    async def _run():
        async with BaseHttpClient(transport=httpx.MockTransport(handler)) as http:
            transport = CredentialHeaderTransport(
                cookie_store=JarCookieStore(jar),
                http=http,
                retry=RetryPolicy(_sleep=_no_sleep),
            )
            return await transport.fetch_many([LEAGUE_URL])

    with pytest.raises(MissingCredentialsError) as excinfo:
        asyncio.run(_run())

    assert excinfo.value.missing == ["espn_s2"]
    assert handler.calls == []
