"""Tests for currency conversion."""

from decimal import Decimal

import pytest

from koalaroute.schemas.flight import FlightOffer
from koalaroute.services.currency_converter import CurrencyConverter
from koalaroute.services.errors import UnsupportedCurrencyError


def _offer(price_minor: int, currency: str = "USD") -> FlightOffer:
    return FlightOffer(
        offer_id="o1",
        provider="aviasales",
        origin="MAD",
        destination="BCN",
        price_minor=price_minor,
        currency=currency,
    )


class TestConvert:
    def test_base_to_usd(self, converter):
        assert converter.convert(150, "rub", "usd") == Decimal("1.65")

    def test_multiplies_by_passengers(self, converter):
        assert converter.convert(150, "rub", "usd", passengers=3) == Decimal("4.95")

    def test_rounds_half_up_to_cents(self):
        converter = CurrencyConverter({"rub": 1.0, "usd": 0.015})

        assert converter.convert(1, "rub", "usd") == Decimal("0.02")

    def test_cross_rate(self, converter):
        # 100 EUR -> GBP = 100 * 0.009 / 0.01
        assert converter.convert(100, "eur", "gbp") == Decimal("90.00")

    def test_same_currency_is_identity(self, converter):
        assert converter.convert("99.99", "USD", "usd") == Decimal("99.99")

    def test_unknown_currency_falls_back_to_identity(self, converter):
        assert converter.convert(150, "rub", "jpy") == Decimal("150.00")

    def test_strict_mode_rejects_unknown_currency(self):
        converter = CurrencyConverter(strict=True)

        with pytest.raises(UnsupportedCurrencyError):
            converter.convert(150, "rub", "jpy")

    def test_convert_minor(self, converter):
        assert converter.convert_minor(150, "rub", "usd") == 165

    def test_supports(self, converter):
        assert converter.supports("USD")
        assert not converter.supports("jpy")


class TestReprice:
    def test_rate_one_is_idempotent(self, converter):
        offer = _offer(165)

        once = converter.reprice(offer, "usd")
        twice = converter.reprice(once, "usd")

        assert once.price_minor == twice.price_minor == 165
        assert twice.currency == "USD"

    def test_reprice_does_not_apply_passenger_multiplier(self, converter):
        offer = _offer(10000, "EUR").model_copy(update={"passengers": 2})

        repriced = converter.reprice(offer, "gbp")

        assert repriced.price == Decimal("90.00")
        assert repriced.currency == "GBP"
