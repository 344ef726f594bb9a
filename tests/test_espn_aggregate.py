from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

from league_export.ingestion.providers.base.errors import ErrorCode
from league_export.ingestion.providers.base.types import FetchFailure, FetchOutcome, FetchSuccess
from league_export.ingestion.providers.espn.aggregate import aggregate_views, deep_merge
from league_export.ingestion.providers.espn.types import ALL_VIEWS, View
from league_export.ingestion.providers.espn.urls import build_view_requests


class FakeTransport:
    """Answers per view from a table; records how URLs were grouped into calls."""

    def __init__(self, table: dict[View, Any], *, supports_batch: bool, name: str = "fake") -> None:
        self.table = table
        self.supports_batch = supports_batch
        self.name = name
        self.calls: list[list[str]] = []

    def _answer(self, url: str) -> FetchOutcome:
        view = View(url.rsplit("view=", 1)[1])
        value = self.table.get(view)
        if isinstance(value, FetchFailure):
            return FetchFailure(
                value.kind, url, status=value.status, status_text=value.status_text
            )
        if value is None:
            return FetchFailure(ErrorCode.NETWORK_ERROR, url, message="boom")
        return FetchSuccess(data=value, source_url=url, transport=self.name)

    async def fetch_many(self, urls: Sequence[str]) -> list[FetchOutcome]:
        self.calls.append(list(urls))
        return [self._answer(u) for u in urls]


def _requests(views=ALL_VIEWS):
    return build_view_requests("12345", 2023, views)


TABLE: dict[View, Any] = {
    View.SETTINGS: {"settings": {"name": "League", "scoringSettings": {"a": 1}}},
    View.TEAM: {"teams": [{"id": 1}, {"id": 2}], "settings": {"scoringSettings": {"b": 2}}},
    View.ROSTER: {"teams": [{"id": 1, "roster": {"entries": [1, 2]}}]},
    View.DRAFT_DETAIL: FetchFailure(ErrorCode.HTTP_ERROR, "x", status=404, status_text="Not Found"),
}


def test_deep_merge_merges_objects_and_replaces_lists() -> None:
    target = {"settings": {"name": "A", "nested": {"x": 1}}, "teams": [1, 2, 3]}
    fragment = {"settings": {"nested": {"y": 2}, "size": 10}, "teams": [9]}

    out = deep_merge(target, fragment)

    assert out is target
    assert out == {"settings": {"name": "A", "nested": {"x": 1, "y": 2}, "size": 10}, "teams": [9]}


def test_deep_merge_copies_fragment_values() -> None:
    fragment = {"teams": [{"id": 1}]}
    target = deep_merge({}, fragment)
    target["teams"][0]["id"] = 99
    assert fragment["teams"][0]["id"] == 1


def test_batched_and_sequential_issuance_give_same_result() -> None:
    batched = FakeTransport(TABLE, supports_batch=True)
    sequential = FakeTransport(TABLE, supports_batch=False)

    a = asyncio.run(aggregate_views(batched, _requests()))
    b = asyncio.run(aggregate_views(sequential, _requests()))

    assert len(batched.calls) == 1
    assert len(sequential.calls) == len(ALL_VIEWS)
    assert a.succeeded_views == b.succeeded_views
    assert a.combined_raw == b.combined_raw
    assert [f.view for f in a.failures] == [f.view for f in b.failures]


def test_succeeded_and_failed_views_partition_the_request() -> None:
    result = asyncio.run(aggregate_views(FakeTransport(TABLE, supports_batch=True), _requests()))

    failed = [f.view for f in result.failures]
    assert set(result.succeeded_views) | set(failed) == set(ALL_VIEWS)
    assert not set(result.succeeded_views) & set(failed)
    # request order is kept on both sides
    assert result.succeeded_views == (View.TEAM, View.ROSTER, View.SETTINGS)
    assert failed == [View.MATCHUP, View.SCOREBOARD, View.DRAFT_DETAIL]
    assert result.transport == "fake"


def test_fragments_merge_in_request_order() -> None:
    result = asyncio.run(aggregate_views(FakeTransport(TABLE, supports_batch=True), _requests()))

    # mRoster comes after mTeam, so its teams list replaces mTeam's.
    assert result.combined_raw["teams"] == [{"id": 1, "roster": {"entries": [1, 2]}}]
    assert result.combined_raw["settings"] == {
        "name": "League",
        "scoringSettings": {"a": 1, "b": 2},
    }
    assert result.fragments[View.TEAM] == TABLE[View.TEAM]
    assert result.hard_failure() is None


def test_hard_failure_prefers_auth_failure() -> None:
    table = {
        View.TEAM: None,
        View.ROSTER: None,
        View.SETTINGS: FetchFailure(ErrorCode.HTTP_ERROR, "x", status=401, status_text="Unauthorized"),
    }
    views = [View.TEAM, View.ROSTER, View.SETTINGS]
    result = asyncio.run(aggregate_views(FakeTransport(table, supports_batch=True), _requests(views)))

    assert result.all_failed
    assert result.auth_rejected
    assert not result.only_network_failures
    deciding = result.hard_failure()
    assert deciding.kind == ErrorCode.HTTP_ERROR
    assert deciding.status == 401


def test_only_network_failures() -> None:
    views = [View.TEAM, View.SETTINGS]
    result = asyncio.run(aggregate_views(FakeTransport({}, supports_batch=True), _requests(views)))

    assert result.only_network_failures
    assert result.combined_raw == {}
    assert result.hard_failure().kind == ErrorCode.NETWORK_ERROR


def test_short_transport_reply_is_padded() -> None:
    class ShortTransport(FakeTransport):
        async def fetch_many(self, urls: Sequence[str]) -> list[FetchOutcome]:
            return (await super().fetch_many(urls))[:1]

    views = [View.SETTINGS, View.TEAM]
    result = asyncio.run(aggregate_views(ShortTransport(TABLE, supports_batch=True), _requests(views)))

    assert result.succeeded_views == (View.SETTINGS,)
    assert [(f.view, f.failure.kind) for f in result.failures] == [
        (View.TEAM, ErrorCode.MESSAGING_ERROR)
    ]


def test_repeated_view_is_partitioned_once() -> None:
    transport = FakeTransport(TABLE, supports_batch=True)
    result = asyncio.run(
        aggregate_views(transport, _requests([View.TEAM, View.TEAM, View.SETTINGS]))
    )

    assert result.succeeded_views == (View.TEAM, View.SETTINGS)
    assert len(result.succeeded_views) == len(result.fragments)
    assert len(transport.calls[0]) == 2
