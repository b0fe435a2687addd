from koalaroute.services.providers.amadeus import AmadeusAdapter
from koalaroute.services.providers.aviasales import AviasalesAdapter
from koalaroute.services.providers.base import ProviderAdapter
from koalaroute.services.providers.duffel import DuffelAdapter

__all__ = ["AmadeusAdapter", "AviasalesAdapter", "DuffelAdapter", "ProviderAdapter"]
