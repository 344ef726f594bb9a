from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from .errors import ProviderRequestError

logger = logging.getLogger(__name__)

RATE_LIMITED_STATUS = 429


@dataclass
class RetryPolicy:
    """Exponential backoff around a single HTTP call.

    Retries transport-level failures (connection refused/reset, timeouts) and
    HTTP 429. Every other response is returned as-is on the first attempt.

    delay = base_delay_s * 2**attempt, attempt starting at 0, so at most
    max_retries + 1 physical requests are made per call.
    """

    base_delay_s: float = 0.4
    max_retries: int = 3

    _sleep: Any = field(default=asyncio.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        return self.base_delay_s * (2**attempt)

    async def run(self, call: Callable[[], Awaitable[httpx.Response]]) -> httpx.Response:
        """
        Invoke `call` until it yields a non-429 response or the ceiling is reached.

        On exhaustion returns the last response (e.g. the final 429), or raises
        ProviderRequestError wrapping the last transport error.
        """
        attempt = 0
        while True:
            try:
                resp = await call()
            except httpx.TransportError as e:
                if attempt >= self.max_retries:
                    raise ProviderRequestError(str(e) or type(e).__name__) from e
                logger.debug("transport error (%s), retry %d/%d", e, attempt + 1, self.max_retries)
            else:
                if resp.status_code != RATE_LIMITED_STATUS or attempt >= self.max_retries:
                    return resp
                logger.debug("HTTP 429, retry %d/%d", attempt + 1, self.max_retries)

            await self._sleep(self.delay_for(attempt))
            attempt += 1
