from abc import ABC, abstractmethod


class ExchangeRateProvider(ABC):
    provider_name: str

    @abstractmethod
    def fetch_rate(self, base: str, quote: str) -> float:
        """Returns units of `quote` per one unit of `base`."""
        raise NotImplementedError
