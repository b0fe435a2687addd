"""Provider router — provider status plus provider-specific lookups."""

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from koalaroute.dependencies import Gateway, get_gateway
from koalaroute.routers.search import provider_http_error
from koalaroute.services.errors import ProviderError
from koalaroute.services.providers import AmadeusAdapter, AviasalesAdapter

router = APIRouter()


def _adapter(gateway: Gateway, name: str, kind: type):
    adapter = gateway.adapters.get(name)
    if not isinstance(adapter, kind):
        raise HTTPException(status_code=404, detail=f"Provider {name} is not available")
    return adapter


@router.get("/providers")
async def list_providers(gateway: Gateway = Depends(get_gateway)):
    """Configured state of each provider. Never returns secrets."""
    return [
        {
            "provider": name,
            "configured": adapter.is_configured,
            "default": name == gateway.orchestrator.default_provider,
        }
        for name, adapter in gateway.adapters.items()
    ]


@router.get("/amadeus/locations")
async def amadeus_locations(
    keyword: str = Query(..., min_length=2),
    sub_type: str = Query("AIRPORT,CITY"),
    limit: int = Query(10, ge=1, le=50),
    gateway: Gateway = Depends(get_gateway),
):
    """Airport and city autocomplete."""
    adapter: AmadeusAdapter = _adapter(gateway, "amadeus", AmadeusAdapter)
    try:
        return await adapter.search_locations(keyword, sub_type, limit)
    except ProviderError as e:
        raise provider_http_error(e)


@router.post("/amadeus/pricing")
async def amadeus_pricing(
    flight_offer: dict[str, Any] = Body(..., embed=True),
    gateway: Gateway = Depends(get_gateway),
):
    """Confirm the current price of an Amadeus flight offer."""
    adapter: AmadeusAdapter = _adapter(gateway, "amadeus", AmadeusAdapter)
    try:
        return await adapter.price_offer(flight_offer)
    except ProviderError as e:
        raise provider_http_error(e)


@router.get("/aviasales/prices")
async def aviasales_prices(
    origin: str = Query(..., min_length=3, max_length=3),
    destination: str = Query(..., min_length=3, max_length=3),
    departure_at: str = Query(...),
    return_at: str | None = Query(None),
    currency: str = Query("usd"),
    limit: int = Query(30, ge=1, le=1000),
    gateway: Gateway = Depends(get_gateway),
):
    """Cached cheapest prices for a route and month or day."""
    adapter: AviasalesAdapter = _adapter(gateway, "aviasales", AviasalesAdapter)
    try:
        data = await adapter.prices_for_dates(origin, destination, departure_at, return_at, currency, limit)
    except ProviderError as e:
        raise provider_http_error(e)
    return {"data": data}
