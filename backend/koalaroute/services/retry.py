"""Retry policy — one place that decides how idempotent provider calls are retried."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from koalaroute.services.errors import TransportError, UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({429, 503})


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 1
    backoff_seconds: float = 1.0
    backoff_multiplier: float = 2.0

    def is_retryable(self, exc: Exception) -> bool:
        if isinstance(exc, TransportError):
            return True
        return isinstance(exc, UpstreamError) and exc.status_code in RETRYABLE_STATUS_CODES

    async def run(self, call: Callable[[], Awaitable[T]], *, idempotent: bool, label: str = "") -> T:
        """Run ``call``, retrying retryable failures when the call is idempotent.

        Non-idempotent calls (search initiation, booking) run exactly once.
        """
        if not idempotent:
            return await call()

        backoff = self.backoff_seconds
        attempt = 0
        while True:
            try:
                return await call()
            except (TransportError, UpstreamError) as e:
                if attempt >= self.max_retries or not self.is_retryable(e):
                    raise
                attempt += 1
                logger.warning(f"{label} failed ({e}), retry {attempt}/{self.max_retries} in {backoff:.1f}s")
                await asyncio.sleep(backoff)
                backoff *= self.backoff_multiplier


NO_RETRY = RetryPolicy(max_retries=0)
