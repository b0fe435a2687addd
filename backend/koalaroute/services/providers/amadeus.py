"""Amadeus adapter — OAuth2 client-credentials GDS with synchronous search."""

import logging

from koalaroute.schemas.booking import BookingConfirmation, TravelerInfo
from koalaroute.schemas.flight import FlightOffer, PollStatus, SearchHandle
from koalaroute.schemas.search import SearchRequest
from koalaroute.services.credential_cache import CredentialCache
from koalaroute.services.errors import UpstreamError
from koalaroute.services.offer_normalizer import normalize_batch, parse_amadeus_offer
from koalaroute.services.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)

TOKEN_PATH = "/v1/security/oauth2/token"

# Our cabin codes -> Amadeus travelClass
CABIN_MAP = {
    "economy": "ECONOMY",
    "premium_economy": "PREMIUM_ECONOMY",
    "business": "BUSINESS",
    "first": "FIRST",
}

# Amadeus sandbox accepts any future-dated test card for orders
TEST_PAYMENT = {
    "method": "CREDIT_CARD",
    "card": {
        "vendorCode": "VI",
        "cardNumber": "4111111111111111",
        "expiryDate": "2030-01",
    },
}


class AmadeusAdapter(ProviderAdapter):
    """Adapter for Amadeus Self-Service API.

    Every call is a direct authenticated request that returns final data,
    so searches complete immediately and never enter the polling state.
    """

    name = "amadeus"
    base_url = "https://test.api.amadeus.com"

    def __init__(self, credential_cache: CredentialCache, *, configured: bool = True, max_results: int = 50, **kwargs):
        super().__init__(**kwargs)
        self._credentials = credential_cache
        self._configured = configured
        self._max_results = max_results

    @property
    def is_configured(self) -> bool:
        return self._configured

    async def _auth_headers(self) -> dict[str, str]:
        token = await self._credentials.get_token(self.name)
        return {"Authorization": f"Bearer {token.value}"}

    async def _call(self, method: str, url: str, **kwargs):
        """Authenticated call; upstream errors pass through with status and body."""
        self.require_configured()
        headers = await self._auth_headers()
        headers.update(kwargs.pop("headers", {}))
        try:
            resp = await self._request(method, url, headers=headers, auth_statuses=(), **kwargs)
        except UpstreamError as e:
            if e.status_code == 401:
                # Token revoked upstream before its advertised expiry
                self._credentials.invalidate(self.name)
            raise
        return self._json(resp)

    async def search(self, request: SearchRequest) -> tuple[SearchHandle, PollStatus, list[FlightOffer]]:
        params = {
            "originLocationCode": request.origin,
            "destinationLocationCode": request.destination,
            "departureDate": request.departure_date.isoformat(),
            "adults": request.adults,
            "travelClass": CABIN_MAP.get(request.cabin_class, "ECONOMY"),
            "max": self._max_results,
            "currencyCode": request.currency.upper(),
        }
        if request.return_date:
            params["returnDate"] = request.return_date.isoformat()
        if request.children:
            params["children"] = request.children
        if request.infants:
            params["infants"] = request.infants

        data = await self._call("GET", "/v2/shopping/flight-offers", params=params)

        handle = self.new_handle(request)
        batch = normalize_batch(data.get("data", []), self.offer_context(handle), self.converter, parse_amadeus_offer)
        logger.info(f"Amadeus returned {len(batch.offers)} offers for {request.origin}->{request.destination}")
        return handle, PollStatus.COMPLETE, batch.offers

    async def poll(self, handle: SearchHandle) -> tuple[PollStatus, list[FlightOffer]]:
        self.check_handle(handle)
        return PollStatus.COMPLETE, []

    async def search_locations(self, keyword: str, sub_type: str = "AIRPORT,CITY", limit: int = 10) -> list[dict]:
        """Airport/city autocomplete."""
        data = await self._call(
            "GET",
            "/v1/reference-data/locations",
            params={"keyword": keyword, "subType": sub_type, "page[limit]": limit},
        )
        return [
            {
                "iata": loc.get("iataCode"),
                "name": loc.get("name"),
                "sub_type": loc.get("subType"),
                "city": loc.get("address", {}).get("cityName"),
                "country": loc.get("address", {}).get("countryCode"),
            }
            for loc in data.get("data", [])
        ]

    async def price_offer(self, flight_offer: dict) -> dict:
        """Confirm the live price of a flight offer before booking."""
        return await self._call(
            "POST",
            "/v1/shopping/flight-offers/pricing",
            json={"data": {"type": "flight-offers-pricing", "flightOffers": [flight_offer]}},
        )

    async def book(self, offer: FlightOffer, traveler: TravelerInfo) -> BookingConfirmation:
        self.check_offer(offer)
        flight_offer = offer.provider_payload["flight_offer"]

        phones = [{
            "deviceType": "MOBILE",
            "countryCallingCode": traveler.country_calling_code,
            "number": traveler.phone,
        }]
        traveler_body = {
            "id": "1",
            "dateOfBirth": traveler.date_of_birth.isoformat(),
            "name": {"firstName": traveler.first_name, "lastName": traveler.last_name},
            "gender": traveler.gender.upper(),
            "contact": {"emailAddress": traveler.email, "phones": phones},
        }
        if traveler.passport_number:
            traveler_body["documents"] = [{
                "documentType": "PASSPORT",
                "number": traveler.passport_number,
                "expiryDate": traveler.passport_expiry.isoformat() if traveler.passport_expiry else None,
                "issuanceCountry": traveler.passport_country,
                "nationality": traveler.passport_country,
                "holder": True,
            }]

        body = {
            "data": {
                "type": "flight-order",
                "flightOffers": [flight_offer],
                "travelers": [traveler_body],
                "payments": [TEST_PAYMENT],
                "ticketingContact": {
                    "contact": {"emailAddress": traveler.email, "phones": phones},
                    "addresseeName": {"firstName": traveler.first_name, "lastName": traveler.last_name},
                },
            }
        }

        data = await self._call("POST", "/v1/booking/flight-orders", json=body)
        order = data.get("data", {})
        logger.info(f"Amadeus order created: {order.get('id')}")
        return BookingConfirmation(provider=self.name, reference=str(order.get("id", "")), raw=data)
