from datetime import date

from pydantic import BaseModel, Field, field_validator, model_validator

CABIN_CLASSES = ("economy", "premium_economy", "business", "first")


class SearchRequest(BaseModel):
    origin: str = Field(..., min_length=3, max_length=3)
    destination: str = Field(..., min_length=3, max_length=3)
    departure_date: date
    return_date: date | None = None
    adults: int = Field(1, ge=1, le=9)
    children: int = Field(0, ge=0, le=9)
    infants: int = Field(0, ge=0, le=9)
    cabin_class: str = "economy"
    currency: str = "usd"

    model_config = {"frozen": True}

    @field_validator("origin", "destination")
    @classmethod
    def _upper_iata(cls, value: str) -> str:
        value = value.strip().upper()
        if not value.isalpha():
            raise ValueError("IATA code must be alphabetic")
        return value

    @field_validator("currency")
    @classmethod
    def _lower_currency(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("cabin_class")
    @classmethod
    def _known_cabin(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in CABIN_CLASSES:
            raise ValueError(f"cabin_class must be one of {', '.join(CABIN_CLASSES)}")
        return value

    @model_validator(mode="after")
    def _check_trip(self):
        if self.origin == self.destination:
            raise ValueError("origin and destination must differ")
        if self.return_date and self.return_date < self.departure_date:
            raise ValueError("return_date must not be before departure_date")
        if self.infants > self.adults:
            raise ValueError("each infant must travel with an adult")
        return self

    @property
    def passenger_count(self) -> int:
        return self.adults + self.children + self.infants

    @property
    def seated_passengers(self) -> int:
        """Travelers holding their own seat (infants fly on a lap)."""
        return self.adults + self.children
