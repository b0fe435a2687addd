from pydantic_settings import BaseSettings

from koalaroute.data.currency import DEFAULT_CONVERSION_RATES


class Settings(BaseSettings):
    # Amadeus (OAuth2 client credentials)
    amadeus_client_id: str = ""
    amadeus_client_secret: str = ""
    amadeus_base_url: str = "https://test.api.amadeus.com"

    # Aviasales / Travelpayouts (signed search)
    aviasales_api_key: str = ""
    aviasales_marker: str = ""
    aviasales_base_url: str = "https://api.travelpayouts.com"
    aviasales_host: str = "localhost"
    aviasales_user_ip: str = "127.0.0.1"
    aviasales_locale: str = "en"

    # Duffel (offer requests)
    duffel_access_token: str = ""
    duffel_base_url: str = "https://api.duffel.com"
    duffel_version: str = "v2"
    duffel_link_success_url: str = "https://koalarouteai.com/booking/success"
    duffel_link_failure_url: str = "https://koalarouteai.com/booking/failure"
    duffel_link_abandonment_url: str = "https://koalarouteai.com/search"

    # Search orchestration
    default_provider: str = "aviasales"
    poll_interval_seconds: float = 5.0
    poll_max_attempts: int = 12  # 12 x 5s = 60s
    search_request_timeout_seconds: float = 90.0

    # Currency
    default_currency: str = "usd"
    currency_rates: dict[str, float] = dict(DEFAULT_CONVERSION_RATES)
    strict_currency: bool = False

    # HTTP
    token_refresh_margin_seconds: int = 60
    http_timeout_seconds: float = 30.0
    retry_max_attempts: int = 1
    retry_backoff_seconds: float = 1.0

    # CORS
    cors_origins: str = "http://localhost:5173"

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",")]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
