from __future__ import annotations

from collections.abc import Mapping, Sequence

from league_export.ingestion.providers.base.client import BaseHttpClient
from league_export.ingestion.providers.base.errors import ErrorCode, ProviderRequestError
from league_export.ingestion.providers.base.retry import RetryPolicy
from league_export.ingestion.providers.base.types import FetchFailure, FetchOutcome, FetchSuccess

from .urls import ESPN_ORIGIN, url_origin

JSON_HEADERS = {"Accept": "application/json"}


async def fetch_json(
    http: BaseHttpClient,
    url: str,
    *,
    retry: RetryPolicy,
    transport: str,
    allowed_origin: str = ESPN_ORIGIN,
    headers: Mapping[str, str] | None = None,
) -> FetchOutcome:
    """
    Fetch one provider URL and classify the result.

    The origin check runs before any network I/O. Non-2xx responses are
    returned as HTTP_ERROR without retrying; only RetryPolicy decides what
    gets a second attempt.
    """
    if url_origin(url) != allowed_origin.lower():
        return FetchFailure(ErrorCode.CROSS_ORIGIN, url, message="URL origin mismatch")

    request_headers = {**JSON_HEADERS, **(headers or {})}
    try:
        resp = await retry.run(lambda: http.get(url, headers=request_headers))
    except ProviderRequestError as e:
        return FetchFailure(ErrorCode.NETWORK_ERROR, url, message=str(e))

    if not resp.is_success:
        return FetchFailure(
            ErrorCode.HTTP_ERROR,
            url,
            status=resp.status_code,
            status_text=resp.reason_phrase,
        )

    try:
        data = resp.json()
    except ValueError:
        return FetchFailure(ErrorCode.PARSE_ERROR, url, message="Response was not valid JSON.")

    if data is None:
        return FetchFailure(ErrorCode.PARSE_ERROR, url, message="Response body was empty.")

    return FetchSuccess(data=data, source_url=url, transport=transport)


async def fetch_json_many(
    http: BaseHttpClient,
    urls: Sequence[str],
    *,
    retry: RetryPolicy,
    transport: str,
    allowed_origin: str = ESPN_ORIGIN,
    headers: Mapping[str, str] | None = None,
) -> list[FetchOutcome]:
    """Sequential fetch; one outcome per URL, in order."""
    out: list[FetchOutcome] = []
    for url in urls:
        out.append(
            await fetch_json(
                http,
                str(url),
                retry=retry,
                transport=transport,
                allowed_origin=allowed_origin,
                headers=headers,
            )
        )
    return out
