from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from league_export.ingestion.providers.base.client import BaseHttpClient
from league_export.ingestion.providers.base.errors import (
    ErrorCode,
    MessagingUnavailableError,
    MissingCredentialsError,
)
from league_export.ingestion.providers.base.retry import RetryPolicy
from league_export.ingestion.providers.base.types import FetchFailure
from league_export.ingestion.providers.espn.aggregate import aggregate_views
from league_export.ingestion.providers.espn.browser import (
    Browser,
    BrowserTab,
    CookieStore,
    extract_league_id,
)
from league_export.ingestion.providers.espn.normalize import normalize_bundle
from league_export.ingestion.providers.espn.transports import (
    CredentialHeaderTransport,
    InjectedTransport,
    MessagingTransport,
)
from league_export.ingestion.providers.espn.types import (
    ALL_VIEWS,
    AggregateResult,
    BundleResult,
    ConnectionResult,
    ExportFailure,
    FetchStatus,
    View,
    ViewFailure,
    ViewRequest,
)
from league_export.ingestion.providers.espn.urls import build_view_requests, is_fantasy_page
from league_export.ingestion.seasons import resolve_season

logger = logging.getLogger(__name__)

WRONG_HOST_HINT = "Open your league or team page on fantasy.espn.com"
NOT_LOGGED_IN_HINT = "Log into https://www.espn.com/, refresh the fantasy page, then retry."
MISSING_CREDENTIALS_HINT = (
    "No SWID/espn_s2 cookies found for espn.com. Log in, re-export your cookies, then retry."
)


class ExportState(StrEnum):
    IDLE = "idle"
    TRANSPORT_SELECT = "transport_select"
    FETCHING = "fetching"
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    HARD_FAILURE = "hard_failure"


@dataclass
class _CookiePathOutcome:
    result: AggregateResult | None = None
    missing_credentials: MissingCredentialsError | None = None
    auth_rejected: bool = False


@dataclass
class LeagueExporter:
    """
    Picks a transport, fetches the league views and normalizes them.

    Transport order:
      1. cookie-header (only when `prefer_cookie_header` and a cookie store + client are set);
         missing cookies or an all-views 401/403 fall through to the tab path.
      2. content-script messaging in the active fantasy tab.
      3. main-world injection, only when step 2 failed with network/messaging
         errors on every view.

    Public methods never raise; every failure comes back as ExportFailure.
    """

    browser: Browser
    cookie_store: CookieStore | None = None
    cookie_http: BaseHttpClient | None = None
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    prefer_cookie_header: bool = False

    state: ExportState = field(default=ExportState.IDLE, init=False)

    @property
    def _cookie_path_enabled(self) -> bool:
        return (
            self.prefer_cookie_header
            and self.cookie_store is not None
            and self.cookie_http is not None
        )

    def _transition(self, state: ExportState, detail: str = "") -> None:
        logger.info("export %s -> %s%s", self.state, state, f" ({detail})" if detail else "")
        self.state = state

    async def _qualifying_tab(self) -> BrowserTab | None:
        tab = await self.browser.active_tab()
        if tab is None or not is_fantasy_page(tab.url):
            return None
        return tab

    async def _try_cookie_header(self, requests: Sequence[ViewRequest]) -> _CookiePathOutcome:
        transport = CredentialHeaderTransport(
            cookie_store=self.cookie_store, http=self.cookie_http, retry=self.retry
        )
        self._transition(ExportState.FETCHING, transport.name)
        try:
            result = await aggregate_views(transport, requests)
        except MissingCredentialsError as e:
            logger.info("%s; falling back to tab transports", e)
            return _CookiePathOutcome(missing_credentials=e)

        if result.auth_rejected:
            # Cookie auth can be stale even when a logged-in tab is not.
            logger.info("cookie-header auth rejected; falling back to tab transports")
            return _CookiePathOutcome(auth_rejected=True)
        return _CookiePathOutcome(result=result)

    async def _fetch_views(
        self, requests: Sequence[ViewRequest]
    ) -> AggregateResult | ExportFailure:
        self._transition(ExportState.TRANSPORT_SELECT)

        cookie_path = None
        if self._cookie_path_enabled:
            cookie_path = await self._try_cookie_header(requests)
            if cookie_path.result is not None:
                return cookie_path.result

        tab = await self._qualifying_tab()
        if tab is None:
            if cookie_path is not None and cookie_path.auth_rejected:
                return ExportFailure(ErrorCode.NOT_LOGGED_IN, hint=NOT_LOGGED_IN_HINT)
            if cookie_path is not None and cookie_path.missing_credentials is not None:
                return ExportFailure(
                    ErrorCode.MISSING_CREDENTIALS,
                    hint=MISSING_CREDENTIALS_HINT,
                    message=str(cookie_path.missing_credentials),
                )
            return ExportFailure(ErrorCode.WRONG_HOST, hint=WRONG_HOST_HINT)

        messaging = MessagingTransport(browser=self.browser, tab=tab)
        self._transition(ExportState.FETCHING, messaging.name)
        result = await aggregate_views(messaging, requests)

        if result.only_network_failures:
            injected = InjectedTransport(browser=self.browser, tab=tab)
            logger.info("%s could not reach the network; trying %s", messaging.name, injected.name)
            self._transition(ExportState.FETCHING, injected.name)
            result = await aggregate_views(injected, requests)

        return result

    def _fail(self, failure: ExportFailure) -> ExportFailure:
        self._transition(ExportState.HARD_FAILURE, failure.describe())
        return failure

    @staticmethod
    def _failure_from(deciding: FetchFailure, failures: tuple[ViewFailure, ...]) -> ExportFailure:
        if deciding.is_auth_failure:
            return ExportFailure(ErrorCode.NOT_LOGGED_IN, hint=NOT_LOGGED_IN_HINT, failures=failures)
        return ExportFailure(
            deciding.kind,
            status=deciding.status,
            status_text=deciding.status_text,
            message=deciding.message,
            failures=failures,
        )

    async def test_connection(
        self, league_id: str, season: int | str | None = None
    ) -> ConnectionResult | ExportFailure:
        """Fetch only mSettings to check that the league is reachable as the current user."""
        self.state = ExportState.IDLE
        try:
            requests = build_view_requests(league_id, resolve_season(season), [View.SETTINGS])
            result = await self._fetch_views(requests)
            if isinstance(result, ExportFailure):
                return self._fail(result)

            deciding = result.hard_failure()
            if deciding is not None:
                return self._fail(self._failure_from(deciding, result.failures))

            self._transition(ExportState.SUCCESS, result.transport)
            return ConnectionResult(path=result.transport)
        except Exception as e:
            logger.exception("test_connection failed")
            return self._fail(ExportFailure(ErrorCode.UNEXPECTED, message=str(e)))

    async def fetch_bundle(
        self,
        league_id: str,
        season: int | str | None = None,
        include_raw: bool = False,
        views: Sequence[View] = ALL_VIEWS,
    ) -> BundleResult | ExportFailure:
        """
        Fetch `views` and normalize them into a LeagueBundle.

        Some views failing yields PARTIAL_SUCCESS with the failure list; all views
        failing yields NOT_LOGGED_IN when any was a 401/403, else the first
        failure's code (HTTP status preserved).
        """
        self.state = ExportState.IDLE
        try:
            resolved = resolve_season(season)
            requests = build_view_requests(league_id, resolved, views)
            result = await self._fetch_views(requests)
            if isinstance(result, ExportFailure):
                return self._fail(result)

            deciding = result.hard_failure()
            if deciding is not None:
                return self._fail(self._failure_from(deciding, result.failures))

            bundle = normalize_bundle(
                result.combined_raw,
                league_id=league_id,
                season=resolved,
                views=result.succeeded_views,
                include_raw=include_raw,
                fragments=result.fragments,
            )
            if result.failures:
                self._transition(
                    ExportState.PARTIAL_SUCCESS,
                    f"{len(result.failures)} of {len(requests)} views failed",
                )
                status = FetchStatus.PARTIAL_SUCCESS
            else:
                self._transition(ExportState.SUCCESS, result.transport)
                status = FetchStatus.SUCCESS

            return BundleResult(
                status=status,
                bundle=bundle,
                transport=result.transport,
                failures=result.failures,
            )
        except Exception as e:
            logger.exception("fetch_bundle failed")
            return self._fail(ExportFailure(ErrorCode.UNEXPECTED, message=str(e)))

    async def detect_league_id(self) -> str | None:
        """League id from the active tab's URL, else from the page agent."""
        try:
            tab = await self.browser.active_tab()
            if tab is None:
                return None

            league_id = extract_league_id(tab.url)
            if league_id:
                return league_id

            for frame_id in (0, None):
                try:
                    resp = await self.browser.send_message(
                        tab.id, {"type": "detectLeagueId"}, frame_id=frame_id
                    )
                except MessagingUnavailableError:
                    continue
                if resp and resp.get("leagueId"):
                    return str(resp["leagueId"])
            return None
        except Exception:
            logger.exception("detect_league_id failed")
            return None
