"""Duffel adapter — offer requests that return offers synchronously."""

import logging

from koalaroute.schemas.booking import BookingConfirmation, TravelerInfo
from koalaroute.schemas.flight import FlightOffer, PollStatus, SearchHandle
from koalaroute.schemas.search import SearchRequest
from koalaroute.services.errors import UpstreamError
from koalaroute.services.offer_normalizer import normalize_batch, parse_duffel_offer
from koalaroute.services.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)

OFFER_REQUESTS_PATH = "/air/offer_requests"
LINK_SESSIONS_PATH = "/links/sessions"


class DuffelAdapter(ProviderAdapter):
    """Adapter for the Duffel Flights API.

    Creating an offer request returns the initial offers in the same
    response, so ``search`` completes immediately. ``poll`` re-fetches the
    offer request by id to pick up the current offer set.
    """

    name = "duffel"
    base_url = "https://api.duffel.com"

    def __init__(
        self,
        access_token: str,
        *,
        api_version: str = "v2",
        success_url: str = "",
        failure_url: str = "",
        abandonment_url: str = "",
        supplier_timeout_ms: int = 20000,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self._access_token = access_token
        self._api_version = api_version
        self._success_url = success_url
        self._failure_url = failure_url
        self._abandonment_url = abandonment_url
        self._supplier_timeout_ms = supplier_timeout_ms

    @property
    def is_configured(self) -> bool:
        return bool(self._access_token)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Duffel-Version": self._api_version,
            "Accept": "application/json",
        }

    @staticmethod
    def build_passengers(request: SearchRequest) -> list[dict]:
        passengers = [{"type": "adult"} for _ in range(request.adults)]
        passengers += [{"type": "child"} for _ in range(request.children)]
        passengers += [{"type": "infant_without_seat"} for _ in range(request.infants)]
        return passengers

    def _offers(self, data: dict, handle: SearchHandle) -> list[FlightOffer]:
        offers = (data.get("data") or {}).get("offers") or []
        batch = normalize_batch(offers, self.offer_context(handle), self.converter, parse_duffel_offer)
        return batch.offers

    async def search(self, request: SearchRequest) -> tuple[SearchHandle, PollStatus, list[FlightOffer]]:
        self.require_configured()

        slices = [{
            "origin": request.origin,
            "destination": request.destination,
            "departure_date": request.departure_date.isoformat(),
        }]
        if request.return_date:
            slices.append({
                "origin": request.destination,
                "destination": request.origin,
                "departure_date": request.return_date.isoformat(),
            })

        payload = {
            "data": {
                "slices": slices,
                "passengers": self.build_passengers(request),
                "cabin_class": request.cabin_class,
            }
        }

        resp = await self._request(
            "POST",
            OFFER_REQUESTS_PATH,
            json=payload,
            params={"return_offers": "true", "supplier_timeout": str(self._supplier_timeout_ms)},
            headers=self._headers(),
        )
        data = self._json(resp)
        offer_request_id = (data.get("data") or {}).get("id")
        if not offer_request_id:
            raise UpstreamError("no offer request id returned", provider=self.name, status_code=502, body=data)

        handle = self.new_handle(request, search_id=offer_request_id)
        offers = self._offers(data, handle)
        logger.info(f"Duffel offer request {offer_request_id}: {len(offers)} offers")
        return handle, PollStatus.COMPLETE, offers

    async def poll(self, handle: SearchHandle) -> tuple[PollStatus, list[FlightOffer]]:
        self.check_handle(handle)
        self.require_configured()

        resp = await self._request(
            "GET",
            f"{OFFER_REQUESTS_PATH}/{handle.search_id}",
            headers=self._headers(),
        )
        return PollStatus.COMPLETE, self._offers(self._json(resp), handle)

    async def book(self, offer: FlightOffer, traveler: TravelerInfo) -> BookingConfirmation:
        """Create a hosted Duffel Links session for the chosen offer."""
        self.check_offer(offer)
        self.require_configured()

        offer_id = offer.provider_payload.get("offer_id") or offer.offer_id
        payload = {
            "data": {
                "reference": offer_id,
                "offer_id": offer_id,
                "success_url": self._success_url,
                "failure_url": self._failure_url,
                "abandonment_url": self._abandonment_url,
                "traveller_currency": offer.currency,
            }
        }
        resp = await self._request("POST", LINK_SESSIONS_PATH, json=payload, headers=self._headers())
        data = self._json(resp)
        url = (data.get("data") or {}).get("url")
        if not url:
            raise UpstreamError("no booking url returned", provider=self.name, status_code=502, body=data)

        logger.info(f"Duffel link created for offer {offer_id}")
        return BookingConfirmation(provider=self.name, reference=offer_id, url=url, raw=data)
