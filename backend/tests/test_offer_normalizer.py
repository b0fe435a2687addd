"""Tests for provider offer normalization."""

import pytest

from koalaroute.schemas.flight import UNKNOWN
from koalaroute.services.currency_converter import CurrencyConverter
from koalaroute.services.errors import NormalizationWarning, UnsupportedCurrencyError
from koalaroute.services.offer_normalizer import (
    OfferContext,
    normalize_batch,
    parse_amadeus_offer,
    parse_aviasales_proposal,
    parse_duffel_offer,
)


def _ctx(provider: str, currency: str = "usd", passengers: int = 1, seated: int | None = None) -> OfferContext:
    return OfferContext(
        provider=provider,
        search_id="abc123",
        origin="MAD",
        destination="BCN",
        currency=currency,
        passengers=passengers,
        seated_passengers=passengers if seated is None else seated,
    )


def _proposal(**overrides) -> dict:
    proposal = {
        "sign": "s-1",
        "terms": {"20": {"unified_price": 150, "url": 2000001}},
        "segment": [{"flight": [{
            "marketing_carrier": "IB",
            "departure": "MAD",
            "arrival": "BCN",
            "departure_date": "2025-09-10",
            "departure_time": "07:05",
            "arrival_date": "2025-09-10",
            "arrival_time": "08:20",
        }]}],
    }
    proposal.update(overrides)
    return proposal


class TestAviasales:
    def test_converts_rub_price_to_request_currency(self, converter):
        offer = parse_aviasales_proposal(_proposal(), _ctx("aviasales"), converter, 0)

        assert offer.price_minor == 165
        assert offer.currency == "USD"
        assert offer.airline_code == "IB"
        assert offer.departure_time == "2025-09-10T07:05"
        assert offer.arrival_time == "2025-09-10T08:20"

    def test_multiplies_by_passengers(self, converter):
        offer = parse_aviasales_proposal(_proposal(), _ctx("aviasales", passengers=2), converter, 0)

        assert offer.price_minor == 330
        assert offer.passengers == 2

    def test_lap_infants_are_not_charged(self, converter):
        ctx = _ctx("aviasales", passengers=3, seated=2)

        offer = parse_aviasales_proposal(_proposal(), ctx, converter, 0)

        assert offer.price_minor == 330
        assert offer.passengers == 3

    def test_picks_cheapest_gate(self, converter):
        proposal = _proposal(terms={
            "20": {"unified_price": 300, "url": 1},
            "41": {"unified_price": 150, "url": 2},
        })

        offer = parse_aviasales_proposal(proposal, _ctx("aviasales"), converter, 0)

        assert offer.provider_payload["gate_id"] == "41"
        assert offer.provider_payload["url_id"] == 2
        assert offer.provider_payload["search_id"] == "abc123"

    def test_missing_optional_fields_use_unknown_marker(self, converter):
        proposal = {"unified_price": 150}

        offer = parse_aviasales_proposal(proposal, _ctx("aviasales"), converter, 3)

        assert offer.offer_id == "abc123-3"
        assert offer.airline_code == UNKNOWN
        assert offer.departure_time == UNKNOWN
        assert offer.arrival_time == UNKNOWN
        assert offer.origin == "MAD"
        assert offer.destination == "BCN"


class TestNormalizeBatch:
    def test_malformed_proposal_is_skipped_with_warning(self, converter):
        raw = [
            _proposal(sign="a"),
            {"sign": "broken", "terms": {}},
            "not-an-object",
            _proposal(sign="b", terms={"7": {"unified_price": "abc"}}),
            _proposal(sign="c"),
        ]

        batch = normalize_batch(raw, _ctx("aviasales"), converter, parse_aviasales_proposal)

        assert [o.offer_id for o in batch.offers] == ["a", "c"]
        assert [w.index for w in batch.warnings] == [1, 2, 3]
        assert all(isinstance(w, NormalizationWarning) for w in batch.warnings)
        assert all(w.provider == "aviasales" for w in batch.warnings)

    def test_negative_price_is_rejected(self, converter):
        batch = normalize_batch([{"unified_price": -5}], _ctx("aviasales"), converter, parse_aviasales_proposal)

        assert batch.offers == []
        assert len(batch.warnings) == 1

    def test_strict_unknown_currency_is_not_a_malformed_offer(self):
        strict = CurrencyConverter(strict=True)

        with pytest.raises(UnsupportedCurrencyError):
            normalize_batch([_proposal()], _ctx("aviasales", currency="jpy"), strict, parse_aviasales_proposal)

    def test_empty_input(self, converter):
        batch = normalize_batch([], _ctx("aviasales"), converter, parse_aviasales_proposal)

        assert batch.offers == []
        assert batch.warnings == []


AMADEUS_OFFER = {
    "id": "1",
    "validatingAirlineCodes": ["UX"],
    "price": {"currency": "EUR", "grandTotal": "100.00", "total": "100.00"},
    "itineraries": [{"segments": [
        {
            "carrierCode": "UX",
            "departure": {"iataCode": "MAD", "at": "2025-09-10T07:00:00"},
            "arrival": {"iataCode": "PMI", "at": "2025-09-10T08:15:00"},
        },
        {
            "carrierCode": "UX",
            "departure": {"iataCode": "PMI", "at": "2025-09-10T10:00:00"},
            "arrival": {"iataCode": "BCN", "at": "2025-09-10T10:50:00"},
        },
    ]}],
}


class TestAmadeus:
    def test_parses_offer(self, converter):
        offer = parse_amadeus_offer(AMADEUS_OFFER, _ctx("amadeus", currency="eur"), converter, 0)

        assert offer.offer_id == "1"
        assert offer.airline_code == "UX"
        assert offer.origin == "MAD"
        assert offer.destination == "BCN"
        assert offer.departure_time == "2025-09-10T07:00:00"
        assert offer.arrival_time == "2025-09-10T10:50:00"
        assert offer.price_minor == 10000
        assert offer.currency == "EUR"
        assert offer.provider_payload["flight_offer"] is AMADEUS_OFFER

    def test_total_price_not_multiplied_by_passengers(self, converter):
        offer = parse_amadeus_offer(AMADEUS_OFFER, _ctx("amadeus", currency="gbp", passengers=3), converter, 0)

        assert offer.price_minor == 9000

    def test_falls_back_to_segment_carrier(self, converter):
        raw = dict(AMADEUS_OFFER, validatingAirlineCodes=[])

        offer = parse_amadeus_offer(raw, _ctx("amadeus", currency="eur"), converter, 0)

        assert offer.airline_code == "UX"

    def test_missing_price_is_malformed(self, converter):
        raw = dict(AMADEUS_OFFER, price={})

        batch = normalize_batch([raw], _ctx("amadeus"), converter, parse_amadeus_offer)

        assert batch.offers == []
        assert batch.warnings[0].reason == "missing price"


DUFFEL_OFFER = {
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


class TestDuffel:
    def test_parses_offer(self, converter):
        offer = parse_duffel_offer(DUFFEL_OFFER, _ctx("duffel", currency="gbp"), converter, 0)

        assert offer.offer_id == "off_0000A"
        assert offer.airline_code == "VY"
        assert offer.price_minor == 4550
        assert offer.currency == "GBP"
        assert offer.departure_time == "2025-09-10T09:00:00"
        assert offer.provider_payload == {"offer_id": "off_0000A", "offer_request_id": "abc123"}

    def test_missing_id_is_malformed(self, converter):
        raw = {k: v for k, v in DUFFEL_OFFER.items() if k != "id"}

        batch = normalize_batch([raw, DUFFEL_OFFER], _ctx("duffel"), converter, parse_duffel_offer)

        assert len(batch.offers) == 1
        assert batch.warnings[0].index == 0
