"""Currency data — default conversion table and provider base currencies."""

# Units of each currency per one unit of the base currency (RUB)
DEFAULT_CONVERSION_RATES: dict[str, float] = {
    "rub": 1.0,
    "usd": 0.011,
    "eur": 0.01,
    "gbp": 0.009,
}

# Currency each provider quotes in when the response does not say
PROVIDER_BASE_CURRENCIES: dict[str, str] = {
    "aviasales": "rub",
    "amadeus": "eur",
    "duffel": "gbp",
}

# Applied when a currency is missing from the table (permissive policy)
UNKNOWN_CURRENCY_RATE = 1.0
