"""Tests for the Duffel offer-request adapter."""

import json
from datetime import date

import httpx
import pytest
import respx

from koalaroute.schemas.flight import FlightOffer, PollStatus
from koalaroute.schemas.search import SearchRequest
from koalaroute.services.errors import AuthError, UpstreamError
from koalaroute.services.providers import DuffelAdapter

from conftest import DUFFEL_URL

OFFER_REQUESTS_URL = f"{DUFFEL_URL}/air/offer_requests"

OFFER = {
    "id": "off_0000A",
    "total_amount": "45.50",
    "total_currency": "GBP",
    "owner": {"iata_code": "VY"},
    "slices": [{"segments": [{
        "origin": {"iata_code": "MAD"},
        "destination": {"iata_code": "BCN"},
        "departing_at": "2025-09-10T09:00:00",
        "arriving_at": "2025-09-10T10:15:00",
    }]}],
}


def _offer_request(offers: list) -> dict:
    return {"data": {"id": "orq_0000A", "offers": offers}}


class TestSearch:
    @pytest.mark.anyio
    @respx.mock
    async def test_offer_request_returns_offers(self, duffel, search_request):
        route = respx.post(OFFER_REQUESTS_URL).mock(
            return_value=httpx.Response(201, json=_offer_request([OFFER]))
        )

        handle, status, offers = await duffel.search(search_request)

        assert status == PollStatus.COMPLETE
        assert handle.search_id == "orq_0000A"
        assert offers[0].offer_id == "off_0000A"
        # 45.50 GBP -> USD at 0.011 / 0.009
        assert offers[0].price_minor == 5561

        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer duffel_test_token"
        assert request.headers["Duffel-Version"] == "v2"
        assert request.url.params["return_offers"] == "true"
        body = json.loads(request.content)["data"]
        assert body["passengers"] == [{"type": "adult"}]
        assert body["slices"] == [{"origin": "MAD", "destination": "BCN", "departure_date": "2025-09-10"}]

    @pytest.mark.anyio
    @respx.mock
    async def test_round_trip_adds_return_slice(self, duffel):
        route = respx.post(OFFER_REQUESTS_URL).mock(return_value=httpx.Response(201, json=_offer_request([])))
        request = SearchRequest(
            origin="MAD",
            destination="BCN",
            departure_date=date(2025, 9, 10),
            return_date=date(2025, 9, 17),
            adults=2,
            children=1,
            infants=1,
        )

        await duffel.search(request)

        body = json.loads(route.calls.last.request.content)["data"]
        assert body["slices"][1] == {"origin": "BCN", "destination": "MAD", "departure_date": "2025-09-17"}
        assert [p["type"] for p in body["passengers"]] == ["adult", "adult", "child", "infant_without_seat"]

    @pytest.mark.anyio
    @respx.mock
    async def test_unauthorized(self, duffel, search_request):
        respx.post(OFFER_REQUESTS_URL).mock(return_value=httpx.Response(401, json={"errors": []}))

        with pytest.raises(AuthError):
            await duffel.search(search_request)

    @pytest.mark.anyio
    @respx.mock
    async def test_validation_error_keeps_body(self, duffel, search_request):
        body = {"errors": [{"code": "validation_error", "message": "Field 'origin' is invalid"}]}
        respx.post(OFFER_REQUESTS_URL).mock(return_value=httpx.Response(422, json=body))

        with pytest.raises(UpstreamError) as exc_info:
            await duffel.search(search_request)

        assert exc_info.value.status_code == 422
        assert exc_info.value.body == body


class TestPoll:
    @pytest.mark.anyio
    @respx.mock
    async def test_refetches_offer_request(self, duffel, search_request):
        respx.post(OFFER_REQUESTS_URL).mock(return_value=httpx.Response(201, json=_offer_request([])))
        route = respx.get(f"{OFFER_REQUESTS_URL}/orq_0000A").mock(
            return_value=httpx.Response(200, json=_offer_request([OFFER]))
        )

        handle, _, _ = await duffel.search(search_request)
        status, offers = await duffel.poll(handle)

        assert status == PollStatus.COMPLETE
        assert [o.offer_id for o in offers] == ["off_0000A"]
        assert route.call_count == 1


class TestBook:
    @pytest.mark.anyio
    @respx.mock
    async def test_creates_link_session(self, duffel, traveler):
        route = respx.post(f"{DUFFEL_URL}/links/sessions").mock(
            return_value=httpx.Response(201, json={"data": {"url": "https://links.duffel.com/?token=abc"}})
        )
        offer = FlightOffer(
            offer_id="off_0000A",
            provider="duffel",
            origin="MAD",
            destination="BCN",
            price_minor=5561,
            currency="USD",
            provider_payload={"offer_id": "off_0000A", "offer_request_id": "orq_0000A"},
        )

        confirmation = await duffel.book(offer, traveler)

        assert confirmation.url == "https://links.duffel.com/?token=abc"
        assert confirmation.reference == "off_0000A"
        body = json.loads(route.calls.last.request.content)["data"]
        assert body["success_url"] == "https://app.test/ok"
        assert body["traveller_currency"] == "USD"

    @pytest.mark.anyio
    async def test_unconfigured(self, converter, traveler):
        adapter = DuffelAdapter("", converter=converter)
        offer = FlightOffer(
            offer_id="off_0000A", provider="duffel", origin="MAD", destination="BCN", price_minor=1, currency="USD"
        )

        with pytest.raises(AuthError):
            await adapter.book(offer, traveler)
