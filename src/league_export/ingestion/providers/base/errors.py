from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    WRONG_HOST = "WRONG_HOST"
    NOT_LOGGED_IN = "NOT_LOGGED_IN"
    MISSING_CREDENTIALS = "MISSING_CREDENTIALS"
    CROSS_ORIGIN = "CROSS_ORIGIN"
    HTTP_ERROR = "HTTP_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    MESSAGING_ERROR = "MESSAGING_ERROR"
    UNEXPECTED = "UNEXPECTED"


# Codes a single URL fetch may end with.
FETCH_FAILURE_CODES = frozenset(
    {
        ErrorCode.CROSS_ORIGIN,
        ErrorCode.HTTP_ERROR,
        ErrorCode.PARSE_ERROR,
        ErrorCode.NETWORK_ERROR,
        ErrorCode.MESSAGING_ERROR,
    }
)

AUTH_STATUSES = frozenset({401, 403})


class ProviderError(RuntimeError):
    """Base exception for provider-related failures."""


class ProviderRequestError(ProviderError):
    """HTTP/network/transport layer failures (connection refused/reset, exhausted retries)."""


class MissingCredentialsError(ProviderError):
    """The cookie store has no ESPN session cookies (SWID / espn_s2)."""

    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"Missing ESPN session cookies: {', '.join(missing)}")
        self.missing = missing


class MessagingUnavailableError(ProviderError):
    """No in-page agent received the message."""


class ScriptInjectionError(ProviderError):
    """The page refused or failed to run an injected routine."""
