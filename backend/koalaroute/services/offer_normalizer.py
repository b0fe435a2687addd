"""Offer normalizer — maps each provider's raw offer shape into FlightOffer.

A malformed proposal is skipped and reported as a NormalizationWarning; it
never aborts the rest of the batch. Optional fields the provider leaves out
are filled with the UNKNOWN marker.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from koalaroute.data.currency import PROVIDER_BASE_CURRENCIES
from koalaroute.schemas.flight import UNKNOWN, FlightOffer
from koalaroute.services.currency_converter import CurrencyConverter
from koalaroute.services.errors import NormalizationWarning, UnsupportedCurrencyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OfferContext:
    """What the normalizer needs to know about the originating search."""
    provider: str
    search_id: str
    origin: str
    destination: str
    currency: str
    passengers: int = 1
    seated_passengers: int = 1


@dataclass
class NormalizedBatch:
    offers: list[FlightOffer] = field(default_factory=list)
    warnings: list[NormalizationWarning] = field(default_factory=list)


ParseFn = Callable[[dict, OfferContext, CurrencyConverter, int], FlightOffer]


def normalize_batch(
    raw_items: Iterable[Any],
    ctx: OfferContext,
    converter: CurrencyConverter,
    parse: ParseFn,
) -> NormalizedBatch:
    batch = NormalizedBatch()
    for index, raw in enumerate(raw_items):
        try:
            if not isinstance(raw, dict):
                raise TypeError(f"expected object, got {type(raw).__name__}")
            batch.offers.append(parse(raw, ctx, converter, index))
        except UnsupportedCurrencyError:
            raise
        except (AttributeError, KeyError, TypeError, ValueError, IndexError, InvalidOperation) as e:
            warning = NormalizationWarning(provider=ctx.provider, index=index, reason=str(e) or type(e).__name__)
            batch.warnings.append(warning)
            logger.warning(f"Skipping malformed {ctx.provider} offer #{index}: {warning.reason}")
    return batch


def _price(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValueError("missing price")
    price = Decimal(str(value))
    if not price.is_finite() or price < 0:
        raise ValueError(f"invalid price {value!r}")
    return price


def _or_unknown(value: Any) -> str:
    if value is None or value == "":
        return UNKNOWN
    return str(value)


# --- Signed metasearch (Aviasales) ---

def _best_term(proposal: dict) -> tuple[str | None, dict]:
    terms = proposal.get("terms") or {}
    if not isinstance(terms, dict) or not terms:
        return None, {}
    gate_id, term = min(
        terms.items(),
        key=lambda item: Decimal(str(item[1].get("unified_price", item[1].get("price", "Infinity")))),
    )
    return gate_id, term


def _flights(proposal: dict) -> list[dict]:
    flights: list[dict] = []
    for segment in proposal.get("segment") or []:
        flights.extend(segment.get("flight") or [])
    return flights


def _flight_time(flight: dict | None, prefix: str) -> str:
    if not flight:
        return UNKNOWN
    day = flight.get(f"{prefix}_date")
    clock = flight.get(f"{prefix}_time")
    if day and clock:
        return f"{day}T{clock}"
    timestamp = flight.get(f"{prefix}_timestamp")
    return _or_unknown(timestamp)


def parse_aviasales_proposal(
    proposal: dict, ctx: OfferContext, converter: CurrencyConverter, index: int
) -> FlightOffer:
    gate_id, term = _best_term(proposal)
    raw_price = proposal.get("unified_price", term.get("unified_price"))
    price = _price(raw_price)

    flights = _flights(proposal)
    first = flights[0] if flights else None
    last = flights[-1] if flights else None

    airline = proposal.get("validating_carrier")
    if not airline and first:
        airline = first.get("marketing_carrier") or first.get("operating_carrier")

    base = PROVIDER_BASE_CURRENCIES["aviasales"]
    # Unified prices are quoted per seated passenger
    minor = converter.convert_minor(price, base, ctx.currency, passengers=ctx.seated_passengers)

    return FlightOffer(
        offer_id=str(proposal.get("sign") or f"{ctx.search_id}-{index}"),
        provider=ctx.provider,
        airline_code=_or_unknown(airline),
        origin=proposal.get("origin") or (first or {}).get("departure") or ctx.origin,
        destination=proposal.get("destination") or (last or {}).get("arrival") or ctx.destination,
        departure_time=_flight_time(first, "departure"),
        arrival_time=_flight_time(last, "arrival"),
        price_minor=minor,
        currency=ctx.currency.upper(),
        passengers=ctx.passengers,
        provider_payload={
            "search_id": ctx.search_id,
            "gate_id": gate_id,
            "url_id": term.get("url"),
            "sign": proposal.get("sign"),
        },
    )


# --- OAuth2 GDS (Amadeus) ---

def parse_amadeus_offer(
    offer: dict, ctx: OfferContext, converter: CurrencyConverter, index: int
) -> FlightOffer:
    price_block = offer.get("price") or {}
    price = _price(price_block.get("grandTotal", price_block.get("total")))
    source_currency = price_block.get("currency") or PROVIDER_BASE_CURRENCIES["amadeus"]

    itineraries = offer.get("itineraries") or [{}]
    segments = itineraries[0].get("segments") or []
    first = segments[0] if segments else {}
    last = segments[-1] if segments else {}

    validating = offer.get("validatingAirlineCodes") or []
    airline = validating[0] if validating else first.get("carrierCode")

    # grandTotal already covers every traveler
    minor = converter.convert_minor(price, source_currency, ctx.currency)

    return FlightOffer(
        offer_id=str(offer.get("id") or f"{ctx.search_id}-{index}"),
        provider=ctx.provider,
        airline_code=_or_unknown(airline),
        origin=first.get("departure", {}).get("iataCode") or ctx.origin,
        destination=last.get("arrival", {}).get("iataCode") or ctx.destination,
        departure_time=_or_unknown(first.get("departure", {}).get("at")),
        arrival_time=_or_unknown(last.get("arrival", {}).get("at")),
        price_minor=minor,
        currency=ctx.currency.upper(),
        passengers=ctx.passengers,
        provider_payload={"flight_offer": offer},
    )


# --- Offer requests (Duffel) ---

def parse_duffel_offer(
    offer: dict, ctx: OfferContext, converter: CurrencyConverter, index: int
) -> FlightOffer:
    offer_id = offer["id"]
    price = _price(offer.get("total_amount"))
    source_currency = offer.get("total_currency") or PROVIDER_BASE_CURRENCIES["duffel"]

    slices = offer.get("slices") or [{}]
    segments = slices[0].get("segments") or []
    first = segments[0] if segments else {}
    last = segments[-1] if segments else {}

    airline = (offer.get("owner") or {}).get("iata_code")
    if not airline:
        airline = (first.get("marketing_carrier") or {}).get("iata_code")

    minor = converter.convert_minor(price, source_currency, ctx.currency)

    return FlightOffer(
        offer_id=str(offer_id),
        provider=ctx.provider,
        airline_code=_or_unknown(airline),
        origin=(first.get("origin") or {}).get("iata_code") or ctx.origin,
        destination=(last.get("destination") or {}).get("iata_code") or ctx.destination,
        departure_time=_or_unknown(first.get("departing_at")),
        arrival_time=_or_unknown(last.get("arriving_at")),
        price_minor=minor,
        currency=ctx.currency.upper(),
        passengers=ctx.passengers,
        provider_payload={"offer_id": offer_id, "offer_request_id": ctx.search_id},
    )
