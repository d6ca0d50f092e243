"""Exchange rate API client (exchangerate-api.com, v4)."""

import logging
from decimal import Decimal, InvalidOperation

import httpx

from ..exceptions import ExchangeRateAPIError

logger = logging.getLogger(__name__)


def is_usable_rate(rate: Decimal) -> bool:
    """Finite and strictly positive."""
    return rate.is_finite() and rate > 0


class ExchangeRateClient:
    """Client for the free-tier exchangerate-api.com v4 API."""

    BASE_URL = "https://api.exchangerate-api.com/v4/latest"

    def __init__(self, base_url: str | None = None, timeout: float = 30.0):
        """Initialize the exchange rate client."""
        self.base_url = base_url or self.BASE_URL
        self.client = httpx.Client(
            base_url=self.base_url,
            headers={"Accept": "application/json"},
            timeout=timeout,
        )

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def get_latest_rates(self, base_currency: str) -> dict[str, Decimal]:
        """
        Get the latest rate table for a base currency.

        Args:
            base_currency: ISO currency code used as the base

        Returns:
            Mapping of currency code to multiplier (1 base = rate target)

        Raises:
            ExchangeRateAPIError: On network errors, non-2xx responses or a
                body without at least one finite, positive rate
        """
        try:
            response = self.client.get(f"/{base_currency}")
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Exchange rate API error: {e}")
            raise ExchangeRateAPIError(
                base_currency,
                f"Exchange rate API returned {e.response.status_code} "
                f"for base {base_currency}",
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"HTTP error fetching exchange rates: {e}")
            raise ExchangeRateAPIError(base_currency) from e
        except ValueError as e:
            raise ExchangeRateAPIError(
                base_currency, f"Exchange rate API returned invalid JSON: {e}"
            ) from e

        raw_rates = data.get("rates") if isinstance(data, dict) else None
        if not isinstance(raw_rates, dict):
            raise ExchangeRateAPIError(
                base_currency, "Exchange rate API response has no rates table"
            )

        try:
            # str() first so floats keep their printed value
            rates = {code: Decimal(str(value)) for code, value in raw_rates.items()}
        except InvalidOperation as e:
            raise ExchangeRateAPIError(
                base_currency, f"Exchange rate API returned a non-numeric rate: {e}"
            ) from e

        unusable = sorted(code for code, rate in rates.items() if not is_usable_rate(rate))
        if unusable:
            logger.warning(
                f"Dropping unusable rates for base {base_currency}: {', '.join(unusable)}"
            )
            rates = {code: rate for code, rate in rates.items() if is_usable_rate(rate)}
        if not rates:
            raise ExchangeRateAPIError(
                base_currency, "Exchange rate API returned no usable rates"
            )

        logger.debug(f"Fetched {len(rates)} rates for base {base_currency}")
        return rates
