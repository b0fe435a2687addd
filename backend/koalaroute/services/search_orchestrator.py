"""Search orchestrator — drives initiate → poll → complete/timeout per search."""

import asyncio
import logging
import time
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timezone

from koalaroute.schemas.booking import BookingConfirmation, TravelerInfo
from koalaroute.schemas.flight import (
    TERMINAL_STATES,
    FlightOffer,
    PollStatus,
    SearchHandle,
    SearchState,
)
from koalaroute.schemas.search import SearchRequest
from koalaroute.services.booking_service import BookingService
from koalaroute.services.errors import ProviderError, SearchTimeoutError, UnknownProviderError
from koalaroute.services.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


@dataclass
class SearchOutcome:
    """Discriminated result of a search step or a full run."""
    state: SearchState
    provider: str
    handle: SearchHandle | None = None
    offers: list[FlightOffer] = field(default_factory=list)
    attempts: int = 0
    last_status: PollStatus | None = None
    error: ProviderError | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def raise_for_state(self) -> "SearchOutcome":
        """Raise the failure behind a FAILED or TIMED_OUT outcome."""
        if self.state == SearchState.FAILED and self.error is not None:
            raise self.error
        if self.state == SearchState.TIMED_OUT:
            raise SearchTimeoutError(
                self.provider,
                self.attempts,
                self.last_status.value if self.last_status else None,
            )
        return self

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "provider": self.provider,
            "handle": self.handle.model_dump(mode="json") if self.handle else None,
            "offers": [o.model_dump(mode="json") for o in self.offers],
            "attempts": self.attempts,
            "last_status": self.last_status.value if self.last_status else None,
            "error": self.error.to_dict() if self.error else None,
        }


class SearchOrchestrator:
    """Coordinates searches across provider adapters.

    ``search`` and ``poll`` are single steps for callers that drive polling
    themselves; ``run`` drives the whole state machine and always ends in a
    terminal state. Polls against one handle never overlap.
    """

    def __init__(
        self,
        adapters: dict[str, ProviderAdapter],
        booking_service: BookingService | None = None,
        *,
        poll_interval_seconds: float = 5.0,
        poll_max_attempts: int = 12,
        default_provider: str | None = None,
    ):
        self._adapters = dict(adapters)
        self._booking = booking_service or BookingService(self._adapters)
        self.poll_interval = poll_interval_seconds
        self.max_attempts = poll_max_attempts
        self.default_provider = default_provider or next(iter(self._adapters), None)
        self._poll_locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    @property
    def providers(self) -> dict[str, ProviderAdapter]:
        return dict(self._adapters)

    def adapter(self, provider: str | None = None) -> ProviderAdapter:
        name = (provider or self.default_provider or "").lower()
        adapter = self._adapters.get(name)
        if adapter is None:
            raise UnknownProviderError(f"Unknown flights provider: {name}")
        return adapter

    def _lock_for(self, handle: SearchHandle) -> asyncio.Lock:
        key = (handle.provider, handle.search_id)
        lock = self._poll_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._poll_locks[key] = lock
        return lock

    async def search(self, request: SearchRequest, provider: str | None = None) -> SearchOutcome:
        """Initiate a search. Provider errors propagate to the caller."""
        adapter = self.adapter(provider)
        adapter.converter.ensure_supported(request.currency)
        handle, status, offers = await adapter.search(request)
        if status == PollStatus.COMPLETE:
            state = SearchState.COMPLETE
        else:
            state = SearchState.POLLING
        return SearchOutcome(state=state, provider=adapter.name, handle=handle, offers=offers, last_status=status)

    async def poll(self, handle: SearchHandle) -> SearchOutcome:
        """Poll a handle once, routed to the adapter that issued it."""
        adapter = self.adapter(handle.provider)
        if datetime.now(timezone.utc) >= handle.deadline:
            return SearchOutcome(state=SearchState.TIMED_OUT, provider=adapter.name, handle=handle)

        async with self._lock_for(handle):
            status, offers = await adapter.poll(handle)

        if offers or status == PollStatus.COMPLETE:
            state = SearchState.COMPLETE
        else:
            state = SearchState.POLLING
        return SearchOutcome(
            state=state, provider=adapter.name, handle=handle, offers=offers, attempts=1, last_status=status
        )

    async def run(
        self,
        request: SearchRequest,
        provider: str | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
        timeout_seconds: float | None = None,
    ) -> SearchOutcome:
        """Run a search to a terminal state.

        ``cancel_event`` or ``timeout_seconds`` end the polling phase early
        with CANCELLED. Adapter errors end the run with FAILED and are not
        retried here. An unknown provider or, in strict mode, an unsupported
        currency raises before any provider call.
        """
        adapter = self.adapter(provider)
        adapter.converter.ensure_supported(request.currency)
        outcome = SearchOutcome(state=SearchState.INITIATED, provider=adapter.name)
        deadline = time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        start = time.monotonic()

        try:
            handle, status, offers = await adapter.search(request)
        except ProviderError as e:
            logger.error(f"Search initiation failed on {adapter.name}: {e}")
            outcome.state = SearchState.FAILED
            outcome.error = e
            return outcome

        outcome.handle = handle
        outcome.last_status = status
        if status == PollStatus.COMPLETE:
            outcome.state = SearchState.COMPLETE
            outcome.offers = offers
            return outcome

        outcome.state = SearchState.POLLING
        logger.info(f"Polling {adapter.name} search {handle.search_id}")

        while outcome.attempts < self.max_attempts:
            if await self._wait(cancel_event, deadline):
                outcome.state = SearchState.CANCELLED
                logger.info(f"Search {handle.search_id} cancelled after {outcome.attempts} polls")
                return outcome

            if datetime.now(timezone.utc) >= handle.deadline:
                break

            outcome.attempts += 1
            try:
                async with self._lock_for(handle):
                    status, offers = await adapter.poll(handle)
            except ProviderError as e:
                logger.error(f"Poll {outcome.attempts} failed on {adapter.name}: {e}")
                outcome.state = SearchState.FAILED
                outcome.error = e
                return outcome

            outcome.last_status = status
            if offers or status == PollStatus.COMPLETE:
                outcome.state = SearchState.COMPLETE
                outcome.offers = offers
                elapsed_ms = int((time.monotonic() - start) * 1000)
                logger.info(
                    f"Search {handle.search_id} complete: {len(offers)} offers "
                    f"after {outcome.attempts} polls ({elapsed_ms}ms)"
                )
                return outcome

            logger.debug(f"Polling attempt {outcome.attempts}, no flights yet")

        outcome.state = SearchState.TIMED_OUT
        logger.warning(f"Search {handle.search_id} on {adapter.name} timed out after {outcome.attempts} polls")
        return outcome

    async def _wait(self, cancel_event: asyncio.Event | None, deadline: float | None) -> bool:
        """Sleep one poll interval. Returns True if the search should stop."""
        timeout = self.poll_interval
        expired = False
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= timeout:
                timeout, expired = max(remaining, 0.0), True

        if cancel_event is None:
            await asyncio.sleep(timeout)
            return expired

        if cancel_event.is_set():
            return True
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return expired

    async def book(self, offer: FlightOffer, traveler: TravelerInfo) -> BookingConfirmation:
        return await self._booking.book(offer, traveler)

    async def close(self):
        for adapter in self._adapters.values():
            await adapter.close()
