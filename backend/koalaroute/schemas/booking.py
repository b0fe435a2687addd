from datetime import date
from typing import Any

from pydantic import BaseModel, EmailStr

from koalaroute.schemas.flight import FlightOffer


class TravelerInfo(BaseModel):
    first_name: str
    last_name: str
    date_of_birth: date
    gender: str = "MALE"
    email: EmailStr
    phone: str
    country_calling_code: str = "1"
    passport_number: str | None = None
    passport_expiry: date | None = None
    passport_country: str | None = None


class BookingRequest(BaseModel):
    offer: FlightOffer
    traveler: TravelerInfo


class BookingConfirmation(BaseModel):
    provider: str
    reference: str
    url: str | None = None
    raw: dict[str, Any] = {}
