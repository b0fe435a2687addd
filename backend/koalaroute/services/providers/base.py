"""Provider adapter base — uniform search/poll/book surface over httpx."""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from koalaroute.schemas.booking import BookingConfirmation, TravelerInfo
from koalaroute.schemas.flight import FlightOffer, PollStatus, SearchHandle
from koalaroute.schemas.search import SearchRequest
from koalaroute.services.currency_converter import CurrencyConverter
from koalaroute.services.errors import (
    AuthError,
    ProviderMismatchError,
    TransportError,
    UpstreamError,
)
from koalaroute.services.offer_normalizer import OfferContext
from koalaroute.services.retry import NO_RETRY, RetryPolicy

logger = logging.getLogger(__name__)


def _response_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


class ProviderAdapter(ABC):
    """One upstream flight provider.

    ``search`` either finishes immediately (COMPLETE with offers) or returns
    a PENDING handle that ``poll`` advances. Handles are only accepted by
    the adapter that issued them.
    """

    name: str = ""
    base_url: str = ""

    def __init__(
        self,
        converter: CurrencyConverter,
        retry_policy: RetryPolicy = NO_RETRY,
        base_url: str | None = None,
        timeout: float = 30.0,
        search_ttl_seconds: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.converter = converter
        self.retry_policy = retry_policy
        if base_url:
            self.base_url = base_url
        self._timeout = timeout
        self._search_ttl = timedelta(seconds=search_ttl_seconds)
        self._client = client

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @abstractmethod
    async def search(self, request: SearchRequest) -> tuple[SearchHandle, PollStatus, list[FlightOffer]]:
        ...

    @abstractmethod
    async def poll(self, handle: SearchHandle) -> tuple[PollStatus, list[FlightOffer]]:
        ...

    @abstractmethod
    async def book(self, offer: FlightOffer, traveler: TravelerInfo) -> BookingConfirmation:
        ...

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._timeout,
            )
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    def new_handle(self, request: SearchRequest, search_id: str | None = None) -> SearchHandle:
        now = datetime.now(timezone.utc)
        return SearchHandle(
            provider=self.name,
            search_id=search_id or str(uuid.uuid4()),
            created_at=now,
            deadline=now + self._search_ttl,
            origin=request.origin,
            destination=request.destination,
            currency=request.currency,
            passengers=request.passenger_count,
            seated_passengers=request.seated_passengers,
        )

    def offer_context(self, handle: SearchHandle) -> OfferContext:
        return OfferContext(
            provider=self.name,
            search_id=handle.search_id,
            origin=handle.origin,
            destination=handle.destination,
            currency=handle.currency,
            passengers=handle.passengers,
            seated_passengers=handle.seated_passengers,
        )

    def check_handle(self, handle: SearchHandle) -> None:
        if handle.provider != self.name:
            raise ProviderMismatchError(
                f"handle issued by '{handle.provider}' cannot be polled here",
                provider=self.name,
                details={"handle_provider": handle.provider, "search_id": handle.search_id},
            )

    def check_offer(self, offer: FlightOffer) -> None:
        if offer.provider != self.name:
            raise ProviderMismatchError(
                f"offer from '{offer.provider}' cannot be booked here",
                provider=self.name,
                details={"offer_provider": offer.provider, "offer_id": offer.offer_id},
            )

    def require_configured(self) -> None:
        if not self.is_configured:
            raise AuthError("provider credentials are not configured", provider=self.name, status_code=500)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        idempotent: bool | None = None,
        auth_statuses: tuple[int, ...] = (401, 403),
        **kwargs,
    ) -> httpx.Response:
        """Send one request, mapping failures onto the provider error taxonomy.

        GETs are retried by the retry policy; everything else runs once.
        """
        if idempotent is None:
            idempotent = method.upper() == "GET"

        async def send() -> httpx.Response:
            client = await self._get_client()
            try:
                resp = await client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                logger.error(f"{self.name} {method} {url} unreachable: {e}")
                raise TransportError(f"{method} {url} failed: {e}", provider=self.name) from e

            if resp.status_code in auth_statuses:
                logger.error(f"{self.name} rejected credentials: {resp.status_code}")
                raise AuthError(
                    f"{method} {url} rejected credentials",
                    provider=self.name,
                    status_code=resp.status_code,
                    details={"body": _response_body(resp)},
                )
            if resp.status_code >= 400:
                logger.error(f"{self.name} {method} {url} error: {resp.status_code}")
                raise UpstreamError(
                    f"{method} {url} returned HTTP {resp.status_code}",
                    provider=self.name,
                    status_code=resp.status_code,
                    body=_response_body(resp),
                )
            return resp

        return await self.retry_policy.run(send, idempotent=idempotent, label=f"{self.name} {method} {url}")

    def _json(self, resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError(
                f"invalid JSON from {resp.request.url}",
                provider=self.name,
                status_code=502,
                body=resp.text[:500],
            ) from e
