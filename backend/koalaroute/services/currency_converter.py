"""Currency converter — static rate table with an explicit unknown-currency policy."""

import logging
from decimal import ROUND_HALF_UP, Decimal

from koalaroute.data.currency import DEFAULT_CONVERSION_RATES, UNKNOWN_CURRENCY_RATE
from koalaroute.schemas.flight import FlightOffer
from koalaroute.services.errors import UnsupportedCurrencyError

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_minor_units(amount: Decimal) -> int:
    return int((amount.quantize(CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())


class CurrencyConverter:
    """Converts provider prices into the caller's currency.

    ``rates`` holds units of each currency per one unit of a shared base
    currency, so ``rate(a -> b) = rates[b] / rates[a]``. A currency missing
    from the table gets ``UNKNOWN_CURRENCY_RATE`` unless ``strict`` is set.
    """

    def __init__(self, rates: dict[str, float] | None = None, strict: bool = False):
        table = rates if rates is not None else DEFAULT_CONVERSION_RATES
        self._rates = {code.lower(): Decimal(str(rate)) for code, rate in table.items()}
        self.strict = strict

    def supports(self, currency: str) -> bool:
        return currency.lower() in self._rates

    def ensure_supported(self, currency: str) -> None:
        """Reject a target currency up front when running in strict mode."""
        if self.strict and not self.supports(currency):
            raise UnsupportedCurrencyError(f"No conversion rate for {currency.lower()}")

    def rate(self, source: str, target: str) -> Decimal:
        source, target = source.lower(), target.lower()
        if source == target:
            return Decimal(1)

        missing = [c for c in (source, target) if c not in self._rates]
        if missing:
            if self.strict:
                raise UnsupportedCurrencyError(f"No conversion rate for {', '.join(missing)}")
            logger.warning(f"No conversion rate for {', '.join(missing)}, using {UNKNOWN_CURRENCY_RATE}")
            return Decimal(str(UNKNOWN_CURRENCY_RATE))

        return self._rates[target] / self._rates[source]

    def convert(self, amount, source: str, target: str, passengers: int = 1) -> Decimal:
        """Convert ``amount`` and multiply by ``passengers``, rounded to cents."""
        value = Decimal(str(amount)) * self.rate(source, target) * passengers
        return value.quantize(CENT, rounding=ROUND_HALF_UP)

    def convert_minor(self, amount, source: str, target: str, passengers: int = 1) -> int:
        return to_minor_units(self.convert(amount, source, target, passengers))

    def reprice(self, offer: FlightOffer, target: str) -> FlightOffer:
        """Convert an already-normalized offer to ``target`` (price is already a total)."""
        minor = self.convert_minor(offer.price, offer.currency, target)
        return offer.model_copy(update={"price_minor": minor, "currency": target.upper()})
