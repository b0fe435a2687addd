"""Aviasales adapter — Travelpayouts signed search with asynchronous result polling."""

import logging
from typing import Any

from koalaroute.schemas.booking import BookingConfirmation, TravelerInfo
from koalaroute.schemas.flight import FlightOffer, PollStatus, SearchHandle
from koalaroute.schemas.search import SearchRequest
from koalaroute.services.errors import AuthError, UpstreamError
from koalaroute.services.offer_normalizer import normalize_batch, parse_aviasales_proposal
from koalaroute.services.providers.base import ProviderAdapter
from koalaroute.services.request_signer import sign

logger = logging.getLogger(__name__)

SEARCH_PATH = "/v1/flight_search"
RESULTS_PATH = "/v1/flight_search_results"
PRICES_PATH = "/aviasales/v3/prices_for_dates"

# Travelpayouts only distinguishes economy (Y) and business (C)
TRIP_CLASS_MAP = {
    "economy": "Y",
    "premium_economy": "Y",
    "business": "C",
    "first": "C",
}


def _collect_proposals(data: Any) -> list:
    """Gather proposals from a results payload (one object or a list of chunks)."""
    chunks = data if isinstance(data, list) else [data]
    proposals: list = []
    for chunk in chunks:
        if isinstance(chunk, dict):
            proposals.extend(chunk.get("proposals") or [])
    return proposals


class AviasalesAdapter(ProviderAdapter):
    """Adapter for the Travelpayouts flight search API.

    ``search`` starts a server-side search and returns a PENDING handle;
    ``poll`` fetches results by search id until proposals appear.
    """

    name = "aviasales"
    base_url = "https://api.travelpayouts.com"

    def __init__(
        self,
        api_key: str,
        marker: str,
        *,
        host: str = "localhost",
        user_ip: str = "127.0.0.1",
        locale: str = "en",
        **kwargs,
    ):
        super().__init__(**kwargs)
        self._api_key = api_key
        self._marker = marker
        self._host = host
        self._user_ip = user_ip
        self._locale = locale

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key and self._marker)

    def _headers(self) -> dict[str, str]:
        return {"X-Access-Token": self._api_key, "Accept-Encoding": "gzip, deflate"}

    def build_search_params(self, request: SearchRequest) -> dict:
        segments = [{
            "origin": request.origin,
            "destination": request.destination,
            "date": request.departure_date.isoformat(),
        }]
        if request.return_date:
            segments.append({
                "origin": request.destination,
                "destination": request.origin,
                "date": request.return_date.isoformat(),
            })

        params = {
            "marker": self._marker,
            "host": self._host,
            "user_ip": self._user_ip,
            "locale": self._locale,
            "trip_class": TRIP_CLASS_MAP.get(request.cabin_class, "Y"),
            "passengers": {
                "adults": request.adults,
                "children": request.children,
                "infants": request.infants,
            },
            "segments": segments,
        }
        params["signature"] = sign(params, self._api_key)
        return params

    async def search(self, request: SearchRequest) -> tuple[SearchHandle, PollStatus, list[FlightOffer]]:
        self.require_configured()
        payload = self.build_search_params(request)

        resp = await self._request("POST", SEARCH_PATH, json=payload, headers=self._headers())
        if "Unauthorized" in resp.text[:200]:
            raise AuthError("search signature rejected", provider=self.name, details={"body": resp.text[:200]})

        data = self._json(resp)
        search_id = (data.get("search_id") or data.get("uuid")) if isinstance(data, dict) else None
        if not search_id:
            raise UpstreamError("no search id returned", provider=self.name, status_code=502, body=data)

        logger.info(f"Aviasales search started: {search_id}")
        return self.new_handle(request, search_id=str(search_id)), PollStatus.PENDING, []

    async def poll(self, handle: SearchHandle) -> tuple[PollStatus, list[FlightOffer]]:
        self.check_handle(handle)
        self.require_configured()

        resp = await self._request(
            "GET",
            RESULTS_PATH,
            params={"uuid": handle.search_id},
            headers=self._headers(),
        )
        proposals = _collect_proposals(self._json(resp))
        if not proposals:
            return PollStatus.PENDING, []

        batch = normalize_batch(proposals, self.offer_context(handle), self.converter, parse_aviasales_proposal)
        if not batch.offers:
            logger.warning(f"Aviasales search {handle.search_id}: all {len(proposals)} proposals malformed")
            return PollStatus.PENDING, []
        return PollStatus.COMPLETE, batch.offers

    async def prices_for_dates(
        self,
        origin: str,
        destination: str,
        departure_at: str,
        return_at: str | None = None,
        currency: str = "usd",
        limit: int = 30,
    ) -> list[dict]:
        """Cached cheapest prices (no search session needed)."""
        if not self._api_key:
            raise AuthError("API token is not configured", provider=self.name, status_code=500)

        params = {
            "origin": origin.upper(),
            "destination": destination.upper(),
            "departure_at": departure_at,
            "token": self._api_key,
            "currency": currency.lower(),
            "limit": limit,
            "unique": "false",
            "sorting": "price",
            "direct": "false",
        }
        if return_at:
            params["return_at"] = return_at

        resp = await self._request("GET", PRICES_PATH, params=params)
        data = self._json(resp)
        if not data.get("success"):
            raise UpstreamError(
                "price lookup failed",
                provider=self.name,
                status_code=502,
                body=data.get("error") or data,
            )
        return data.get("data", [])

    async def book(self, offer: FlightOffer, traveler: TravelerInfo) -> BookingConfirmation:
        """Resolve the agency booking link for the offer's cheapest gate."""
        self.check_offer(offer)
        self.require_configured()

        search_id = offer.provider_payload.get("search_id")
        url_id = offer.provider_payload.get("url_id")
        if not search_id or url_id is None:
            raise ValueError("offer carries no booking link")

        resp = await self._request(
            "GET",
            f"/v1/flight_searches/{search_id}/clicks/{url_id}.json",
            params={"marker": self._marker},
            headers=self._headers(),
            idempotent=False,
        )
        data = self._json(resp)
        url = data.get("url")
        if not url:
            raise UpstreamError("no booking url returned", provider=self.name, status_code=502, body=data)

        logger.info(f"Aviasales booking link created for search {search_id}")
        return BookingConfirmation(provider=self.name, reference=str(url_id), url=url, raw=data)
