from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel

# Marker for optional offer fields the provider left out
UNKNOWN = "N/A"


class PollStatus(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"


class SearchState(str, Enum):
    INITIATED = "initiated"
    POLLING = "polling"
    COMPLETE = "complete"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({
    SearchState.COMPLETE,
    SearchState.TIMED_OUT,
    SearchState.FAILED,
    SearchState.CANCELLED,
})


class SearchHandle(BaseModel):
    provider: str
    search_id: str
    created_at: datetime
    deadline: datetime
    origin: str = UNKNOWN
    destination: str = UNKNOWN
    currency: str = "usd"
    passengers: int = 1
    seated_passengers: int = 1

    model_config = {"frozen": True}


class FlightOffer(BaseModel):
    offer_id: str
    provider: str
    airline_code: str = UNKNOWN
    origin: str
    destination: str
    departure_time: str = UNKNOWN
    arrival_time: str = UNKNOWN
    price_minor: int
    currency: str
    passengers: int = 1
    provider_payload: dict[str, Any] = {}

    model_config = {"frozen": True}

    @property
    def price(self) -> Decimal:
        return (Decimal(self.price_minor) / 100).quantize(Decimal("0.01"))
