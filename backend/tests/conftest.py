"""Shared fixtures for gateway tests."""

from datetime import date

import pytest

from koalaroute.schemas.booking import TravelerInfo
from koalaroute.schemas.search import SearchRequest
from koalaroute.services.credential_cache import CredentialCache
from koalaroute.services.currency_converter import CurrencyConverter
from koalaroute.services.providers import AmadeusAdapter, AviasalesAdapter, DuffelAdapter
from koalaroute.services.retry import RetryPolicy

AMADEUS_URL = "https://amadeus.test"
AVIASALES_URL = "https://travelpayouts.test"
DUFFEL_URL = "https://duffel.test"


@pytest.fixture
def anyio_backend():
    """Use asyncio backend."""
    return "asyncio"


@pytest.fixture
def converter() -> CurrencyConverter:
    return CurrencyConverter()


@pytest.fixture
def no_wait_retry() -> RetryPolicy:
    return RetryPolicy(max_retries=1, backoff_seconds=0.0)


@pytest.fixture
def search_request() -> SearchRequest:
    return SearchRequest(
        origin="MAD",
        destination="BCN",
        departure_date=date(2025, 9, 10),
        adults=1,
        currency="usd",
    )


@pytest.fixture
def traveler() -> TravelerInfo:
    return TravelerInfo(
        first_name="Ana",
        last_name="Lopez",
        date_of_birth=date(1990, 4, 2),
        gender="female",
        email="ana@example.com",
        phone="5551234567",
        passport_number="X1234567",
        passport_expiry=date(2031, 1, 1),
        passport_country="ES",
    )


@pytest.fixture
def aviasales(converter, no_wait_retry) -> AviasalesAdapter:
    return AviasalesAdapter(
        "secret-token",
        "662691",
        converter=converter,
        retry_policy=no_wait_retry,
        base_url=AVIASALES_URL,
    )


@pytest.fixture
def duffel(converter, no_wait_retry) -> DuffelAdapter:
    return DuffelAdapter(
        "duffel_test_token",
        success_url="https://app.test/ok",
        failure_url="https://app.test/fail",
        abandonment_url="https://app.test/back",
        converter=converter,
        retry_policy=no_wait_retry,
        base_url=DUFFEL_URL,
    )


@pytest.fixture
def credential_cache() -> CredentialCache:
    return CredentialCache(refresh_margin_seconds=60)


@pytest.fixture
def amadeus(credential_cache, converter, no_wait_retry) -> AmadeusAdapter:
    return AmadeusAdapter(
        credential_cache,
        converter=converter,
        retry_policy=no_wait_retry,
        base_url=AMADEUS_URL,
    )
