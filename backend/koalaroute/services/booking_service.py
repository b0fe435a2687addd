"""Booking submitter — one-shot order or link creation with the offer's own provider."""

import logging
from typing import TYPE_CHECKING

from koalaroute.schemas.booking import BookingConfirmation, TravelerInfo
from koalaroute.schemas.flight import FlightOffer
from koalaroute.services.errors import ProviderError, UnknownProviderError

if TYPE_CHECKING:
    from koalaroute.services.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


class BookingService:
    """Submits a previously returned offer for booking.

    Never retried: a duplicate order is worse than a surfaced failure.
    """

    def __init__(self, adapters: dict[str, "ProviderAdapter"]):
        self._adapters = adapters

    async def book(self, offer: FlightOffer, traveler: TravelerInfo) -> BookingConfirmation:
        adapter = self._adapters.get(offer.provider)
        if adapter is None:
            raise UnknownProviderError(f"Unknown flights provider: {offer.provider}")

        logger.info(f"Booking offer {offer.offer_id} with {offer.provider}")
        try:
            confirmation = await adapter.book(offer, traveler)
        except ProviderError as e:
            logger.error(f"Booking failed on {offer.provider}: {e}")
            raise
        logger.info(f"Booking confirmed on {offer.provider}: {confirmation.reference}")
        return confirmation
