"""Dependency wiring — builds the gateway's components from settings."""

import logging
from dataclasses import dataclass

from fastapi import HTTPException, Request

from koalaroute.config import Settings
from koalaroute.services.booking_service import BookingService
from koalaroute.services.credential_cache import ClientCredentialsExchange, CredentialCache
from koalaroute.services.currency_converter import CurrencyConverter
from koalaroute.services.providers import AmadeusAdapter, AviasalesAdapter, DuffelAdapter, ProviderAdapter
from koalaroute.services.providers.amadeus import TOKEN_PATH
from koalaroute.services.retry import RetryPolicy
from koalaroute.services.search_orchestrator import SearchOrchestrator

logger = logging.getLogger(__name__)


@dataclass
class Gateway:
    """Everything a request handler needs; one instance per application."""
    settings: Settings
    credential_cache: CredentialCache
    converter: CurrencyConverter
    adapters: dict[str, ProviderAdapter]
    booking: BookingService
    orchestrator: SearchOrchestrator

    async def close(self):
        await self.orchestrator.close()


def build_gateway(settings: Settings) -> Gateway:
    converter = CurrencyConverter(settings.currency_rates, strict=settings.strict_currency)
    retry_policy = RetryPolicy(
        max_retries=settings.retry_max_attempts,
        backoff_seconds=settings.retry_backoff_seconds,
    )
    # Handles stay valid for the whole poll budget plus one interval of slack
    search_ttl = settings.poll_interval_seconds * (settings.poll_max_attempts + 1)
    common = {
        "converter": converter,
        "retry_policy": retry_policy,
        "timeout": settings.http_timeout_seconds,
        "search_ttl_seconds": search_ttl,
    }

    cache = CredentialCache(refresh_margin_seconds=settings.token_refresh_margin_seconds)
    cache.register(
        "amadeus",
        ClientCredentialsExchange(
            provider="amadeus",
            token_url=f"{settings.amadeus_base_url.rstrip('/')}{TOKEN_PATH}",
            client_id=settings.amadeus_client_id,
            client_secret=settings.amadeus_client_secret,
            timeout=settings.http_timeout_seconds,
        ),
    )

    adapters: dict[str, ProviderAdapter] = {
        "amadeus": AmadeusAdapter(
            cache,
            configured=bool(settings.amadeus_client_id and settings.amadeus_client_secret),
            base_url=settings.amadeus_base_url,
            **common,
        ),
        "aviasales": AviasalesAdapter(
            settings.aviasales_api_key,
            settings.aviasales_marker,
            host=settings.aviasales_host,
            user_ip=settings.aviasales_user_ip,
            locale=settings.aviasales_locale,
            base_url=settings.aviasales_base_url,
            **common,
        ),
        "duffel": DuffelAdapter(
            settings.duffel_access_token,
            api_version=settings.duffel_version,
            success_url=settings.duffel_link_success_url,
            failure_url=settings.duffel_link_failure_url,
            abandonment_url=settings.duffel_link_abandonment_url,
            base_url=settings.duffel_base_url,
            **common,
        ),
    }

    for name, adapter in adapters.items():
        if not adapter.is_configured:
            logger.warning(f"{name} credentials not configured, provider calls will fail with AuthError")

    booking = BookingService(adapters)
    orchestrator = SearchOrchestrator(
        adapters,
        booking,
        poll_interval_seconds=settings.poll_interval_seconds,
        poll_max_attempts=settings.poll_max_attempts,
        default_provider=settings.default_provider,
    )
    return Gateway(
        settings=settings,
        credential_cache=cache,
        converter=converter,
        adapters=adapters,
        booking=booking,
        orchestrator=orchestrator,
    )


def get_gateway(request: Request) -> Gateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise HTTPException(status_code=503, detail="Gateway not initialized")
    return gateway


def get_orchestrator(request: Request) -> SearchOrchestrator:
    return get_gateway(request).orchestrator
