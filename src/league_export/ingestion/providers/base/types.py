from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .errors import FETCH_FAILURE_CODES, AUTH_STATUSES, ErrorCode

Json = dict[str, Any]


@dataclass(frozen=True)
class FetchSuccess:
    """JSON fetched for one URL."""

    data: Any
    source_url: str
    transport: str

    ok = True

    def to_message(self) -> Json:
        return {"ok": True, "data": self.data, "url": self.source_url, "path": self.transport}


@dataclass(frozen=True)
class FetchFailure:
    """
    Classified failure for one URL.

    status/status_text are set for HTTP_ERROR and only for HTTP_ERROR.
    """

    kind: ErrorCode
    source_url: str
    status: int | None = None
    status_text: str | None = None
    message: str | None = None

    ok = False

    def __post_init__(self) -> None:
        if self.kind not in FETCH_FAILURE_CODES:
            raise ValueError(f"{self.kind} is not a per-URL failure code")
        is_http = self.kind == ErrorCode.HTTP_ERROR
        if is_http != (self.status is not None):
            raise ValueError("status must be set iff kind is HTTP_ERROR")
        if not is_http and self.status_text is not None:
            raise ValueError("status_text is only valid for HTTP_ERROR")

    @property
    def is_auth_failure(self) -> bool:
        return self.kind == ErrorCode.HTTP_ERROR and self.status in AUTH_STATUSES

    @property
    def is_network_class(self) -> bool:
        return self.kind in (ErrorCode.NETWORK_ERROR, ErrorCode.MESSAGING_ERROR)

    def to_message(self) -> Json:
        out: Json = {"ok": False, "code": str(self.kind), "url": self.source_url}
        if self.status is not None:
            out["status"] = self.status
            out["statusText"] = self.status_text or ""
        if self.message:
            out["message"] = self.message
        return out


FetchOutcome = FetchSuccess | FetchFailure


def outcome_from_message(value: Any, *, url: str, transport: str) -> FetchOutcome:
    """
    Decode one entry of an in-page agent `results` list.

    Anything that does not look like a result becomes MESSAGING_ERROR for `url`.
    """
    if not isinstance(value, Mapping):
        return FetchFailure(
            ErrorCode.MESSAGING_ERROR, url, message="Malformed result from page agent."
        )

    if value.get("ok") is True:
        return FetchSuccess(
            data=value.get("data"),
            source_url=url,
            transport=value.get("path") or transport,
        )

    try:
        kind = ErrorCode(value.get("code"))
    except ValueError:
        kind = ErrorCode.MESSAGING_ERROR

    if kind not in FETCH_FAILURE_CODES:
        kind = ErrorCode.MESSAGING_ERROR

    status = value.get("status") if kind == ErrorCode.HTTP_ERROR else None
    if kind == ErrorCode.HTTP_ERROR and not isinstance(status, int):
        return FetchFailure(
            ErrorCode.MESSAGING_ERROR, url, message="HTTP_ERROR result without a status."
        )

    return FetchFailure(
        kind,
        url,
        status=status,
        status_text=(value.get("statusText") or "") if status is not None else None,
        message=value.get("message"),
    )
