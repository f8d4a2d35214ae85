import logging
import os
import sqlite3
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from cataleon.db import get_all_settings, get_cached_rate, is_fresh, save_rate
from cataleon.errors import ExternalServiceError
from cataleon.providers.base import ExchangeRateProvider

logger = logging.getLogger(__name__)

USD_INR = "USD/INR"
DEFAULT_API_URL = "https://api.exchangerate-api.com/v4/latest/USD"


class ExchangeRateAPIProvider(ExchangeRateProvider):
    """
    Provider implementation for exchangerate-api.com.

    GET <url> returns {"base": "USD", "rates": {"INR": 87.5, ...}}. The base is
    part of the URL, so only quotes against USD are supported.
    """

    provider_name = "exchangerate-api"

    def __init__(self, url: str | None = None, timeout_seconds: int = 10):
        self.url = (url or os.getenv("EXCHANGE_RATE_API_URL", DEFAULT_API_URL)).strip()
        self.timeout_seconds = timeout_seconds

        self.session = requests.Session()
        retry = Retry(
            total=2,
            connect=2,
            read=2,
            backoff_factor=0.5,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET"],
        )
        adapter = HTTPAdapter(max_retries=retry)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def fetch_rate(self, base: str, quote: str) -> float:
        if base.upper() != "USD":
            raise ExternalServiceError(f"{self.provider_name} only quotes against USD")

        try:
            response = self.session.get(self.url, timeout=self.timeout_seconds)
            response.raise_for_status()
            payload: dict[str, Any] = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise ExternalServiceError(f"Exchange rate request failed: {exc}") from exc

        rate = payload.get("rates", {}).get(quote.upper())
        if rate is None:
            raise ExternalServiceError(f"Missing {quote} rate from {self.provider_name}")
        if float(rate) <= 0:
            raise ExternalServiceError(f"Invalid {quote} rate from {self.provider_name}")
        return float(rate)


def get_usd_inr_rate(
    conn: sqlite3.Connection,
    force_refresh: bool = False,
    provider: ExchangeRateProvider | None = None,
) -> tuple[float, str | None]:
    """
    Returns the USD->INR rate, refreshing the cached value when it is stale.

    A provider failure never raises: the last cached rate is used, or the
    configured fallback rate when nothing has been cached yet, and a warning
    message is returned alongside it.
    """
    settings = get_all_settings(conn)
    cached = get_cached_rate(conn, USD_INR)

    if not force_refresh and cached is not None and is_fresh(
        cached["fetched_at"], settings["exchange_rate_cache_ttl_seconds"]
    ):
        return float(cached["rate"]), None

    provider = provider or ExchangeRateAPIProvider()
    try:
        rate = provider.fetch_rate("USD", "INR")
    except ExternalServiceError as exc:
        logger.warning("Exchange rate refresh failed: %s", exc.message)
        if cached is not None:
            return float(cached["rate"]), f"Exchange rate API unavailable. Using cached rate. Details: {exc.message}"
        return (
            settings["fallback_usd_inr_rate"],
            f"Exchange rate API unavailable and no cached rate yet. Using fallback rate. Details: {exc.message}",
        )

    save_rate(conn, USD_INR, rate, provider.provider_name)
    logger.info("Refreshed USD/INR rate: %.4f", rate)
    return rate, None


def convert_inr_to_usd(amount_inr: float, usd_inr_rate: float) -> float:
    if not usd_inr_rate:
        return 0.0
    return round(amount_inr / usd_inr_rate, 2)


def _group_indian(digits: str) -> str:
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_currency(amount: float, currency: str = "INR", decimals: int = 2) -> str:
    """Formats INR with lakh/crore grouping (12,34,567.00) and USD with thousands."""
    sign = "-" if amount < 0 else ""
    text = f"{abs(amount):.{decimals}f}"
    whole, _, fraction = text.partition(".")
    if currency.upper() == "INR":
        grouped = _group_indian(whole)
        symbol = "₹"
    else:
        grouped = f"{int(whole):,}"
        symbol = "$"
    return f"{sign}{symbol}{grouped}{'.' + fraction if fraction else ''}"
