from __future__ import annotations

import copy
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from league_export.ingestion.providers.base.errors import ErrorCode
from league_export.ingestion.providers.base.types import FetchFailure, FetchOutcome, Json

from .transports import Transport
from .types import AggregateResult, View, ViewFailure, ViewRequest

logger = logging.getLogger(__name__)


def deep_merge(target: Json, fragment: Mapping[str, Any]) -> Json:
    """
    Merge `fragment` into `target` in place and return it.

    Nested objects merge key by key; lists and scalars from `fragment` replace
    whatever `target` held (no element-wise list merging).
    """
    for key, value in fragment.items():
        current = target.get(key)
        if isinstance(value, Mapping) and isinstance(current, dict):
            deep_merge(current, value)
        else:
            target[key] = copy.deepcopy(value)
    return target


async def _issue(transport: Transport, requests: Sequence[ViewRequest]) -> list[FetchOutcome]:
    if transport.supports_batch:
        outcomes = await transport.fetch_many([r.url for r in requests])
    else:
        outcomes = []
        for r in requests:
            outcomes.extend(await transport.fetch_many([r.url]))

    if len(outcomes) != len(requests):
        # A transport broke its contract; keep the partition intact.
        logger.warning(
            "%s returned %d outcomes for %d urls", transport.name, len(outcomes), len(requests)
        )
        outcomes = list(outcomes[: len(requests)])
        outcomes.extend(
            FetchFailure(ErrorCode.MESSAGING_ERROR, r.url, message="Missing outcome.")
            for r in requests[len(outcomes) :]
        )
    return outcomes


async def aggregate_views(transport: Transport, requests: Sequence[ViewRequest]) -> AggregateResult:
    """
    Fetch every view through `transport` and partition the outcomes.

    Batched and sequential issuance produce the same result; fragments merge in
    request order, so a later view only wins when two views define the same leaf.
    """
    outcomes = await _issue(transport, requests)

    succeeded: list[View] = []
    fragments: dict[View, Any] = {}
    failures: list[ViewFailure] = []
    combined: Json = {}

    for req, outcome in zip(requests, outcomes):
        if isinstance(outcome, FetchFailure):
            failures.append(ViewFailure(view=req.view, failure=outcome))
            continue
        succeeded.append(req.view)
        fragments[req.view] = outcome.data
        if isinstance(outcome.data, Mapping):
            deep_merge(combined, outcome.data)

    logger.info(
        "%s: %d/%d views succeeded%s",
        transport.name,
        len(succeeded),
        len(requests),
        f" (failed: {', '.join(str(f.view) for f in failures)})" if failures else "",
    )

    return AggregateResult(
        succeeded_views=tuple(succeeded),
        combined_raw=combined,
        fragments=fragments,
        failures=tuple(failures),
        transport=transport.name,
    )
