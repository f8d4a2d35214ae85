from unittest.mock import MagicMock, patch

import pytest
import requests

from cataleon.db import get_cached_rate, save_rate
from cataleon.errors import ExternalServiceError
from cataleon.providers.base import ExchangeRateProvider
from cataleon.providers.exchange_rate import (
    USD_INR,
    ExchangeRateAPIProvider,
    convert_inr_to_usd,
    format_currency,
    get_usd_inr_rate,
)


class FakeProvider(ExchangeRateProvider):
    provider_name = "fake"

    def __init__(self, rate=None, error=None):
        self.rate = rate
        self.error = error
        self.calls = 0

    def fetch_rate(self, base, quote):
        self.calls += 1
        if self.error:
            raise ExternalServiceError(self.error)
        return self.rate


def _age_cached_rate(conn):
    conn.execute("UPDATE exchange_rates SET fetched_at = ?", ("2000-01-01T00:00:00+00:00",))
    conn.commit()


class TestGetUsdInrRate:
    def test_fresh_cache_skips_provider(self, conn):
        save_rate(conn, USD_INR, 83.5, "fake")
        provider = FakeProvider(rate=90.0)

        assert get_usd_inr_rate(conn, provider=provider) == (83.5, None)
        assert provider.calls == 0

    def test_stale_cache_refreshed(self, conn):
        save_rate(conn, USD_INR, 83.5, "fake")
        _age_cached_rate(conn)

        rate, warning = get_usd_inr_rate(conn, provider=FakeProvider(rate=86.0))

        assert (rate, warning) == (86.0, None)
        assert get_cached_rate(conn, USD_INR)["rate"] == 86.0

    def test_force_refresh(self, conn):
        save_rate(conn, USD_INR, 83.5, "fake")
        provider = FakeProvider(rate=84.0)
        assert get_usd_inr_rate(conn, force_refresh=True, provider=provider)[0] == 84.0
        assert provider.calls == 1

    def test_failure_uses_cached_rate(self, conn):
        save_rate(conn, USD_INR, 83.5, "fake")
        _age_cached_rate(conn)

        rate, warning = get_usd_inr_rate(conn, provider=FakeProvider(error="timeout"))

        assert rate == 83.5
        assert "cached rate" in warning

    def test_failure_without_cache_uses_fallback(self, conn):
        rate, warning = get_usd_inr_rate(conn, provider=FakeProvider(error="timeout"))

        assert rate == pytest.approx(87.67)
        assert "fallback" in warning
        assert get_cached_rate(conn, USD_INR) is None


class TestExchangeRateAPIProvider:
    def test_reads_quote_from_payload(self):
        provider = ExchangeRateAPIProvider(url="https://rates.example/latest/USD")
        response = MagicMock()
        response.json.return_value = {"base": "USD", "rates": {"INR": 83.2, "EUR": 0.9}}

        with patch.object(provider.session, "get", return_value=response) as get:
            assert provider.fetch_rate("USD", "INR") == 83.2

        get.assert_called_once_with("https://rates.example/latest/USD", timeout=10)

    def test_network_error_wrapped(self):
        provider = ExchangeRateAPIProvider(url="https://rates.example/latest/USD")
        with patch.object(provider.session, "get", side_effect=requests.ConnectionError("down")):
            with pytest.raises(ExternalServiceError, match="request failed"):
                provider.fetch_rate("USD", "INR")

    def test_missing_quote(self):
        provider = ExchangeRateAPIProvider(url="https://rates.example/latest/USD")
        response = MagicMock()
        response.json.return_value = {"rates": {}}
        with patch.object(provider.session, "get", return_value=response):
            with pytest.raises(ExternalServiceError, match="Missing INR"):
                provider.fetch_rate("USD", "INR")

    def test_only_usd_base(self):
        with pytest.raises(ExternalServiceError):
            ExchangeRateAPIProvider(url="https://rates.example").fetch_rate("EUR", "INR")


class TestFormatting:
    @pytest.mark.parametrize(
        "amount, expected",
        [
            (1234567.891, "₹12,34,567.89"),
            (999, "₹999.00"),
            (100000, "₹1,00,000.00"),
            (-2500.5, "-₹2,500.50"),
        ],
    )
    def test_inr_grouping(self, amount, expected):
        assert format_currency(amount) == expected

    def test_usd(self):
        assert format_currency(1234.5, "USD") == "$1,234.50"

    def test_no_decimals(self):
        assert format_currency(1500, decimals=0) == "₹1,500"

    def test_convert(self):
        assert convert_inr_to_usd(8767, 87.67) == 100.0
        assert convert_inr_to_usd(100, 0) == 0.0
