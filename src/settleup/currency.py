"""Currency conversion with a 24h rate cache and graceful degradation.

Rate resolution, first match wins:

1. Same currency -> 1 (a manual rate is ignored).
2. Manual rate recorded for the exact pair, or its inverse for the reverse pair.
3. Unexpired cached table for the base currency.
4. Fresh fetch from the rate API, written back to the cache.
5. Stale cache when the fetch fails.
6. 1 (no conversion).

Conversion never raises: a missing or unreachable rate degrades to a stale
table or to the identity rate so callers are never blocked on currency.
"""

import logging
import sqlite3
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from .clients.exchange_rates import ExchangeRateClient, is_usable_rate
from .db import Database
from .exceptions import ExchangeRateAPIError
from .models import BalanceEntry, ExchangeRateCache, ManualExchangeRate

logger = logging.getLogger(__name__)

ONE = Decimal("1")
CENT = Decimal("0.01")


def round_money(amount: Decimal) -> Decimal:
    """Round to 2 decimal places, half away from zero."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def utc_now() -> datetime:
    return datetime.now(UTC)


class CurrencyConverter:
    """Resolves exchange rates and converts amounts between currencies."""

    def __init__(
        self,
        cache: Database,
        client_factory: Callable[[], ExchangeRateClient] = ExchangeRateClient,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the converter.

        Args:
            cache: Store holding one rate table per base currency
            client_factory: Builds an API client for each fetch
            ttl: How long a fetched table stays valid
            clock: Source of the current time
        """
        self.cache = cache
        self.client_factory = client_factory
        self.ttl = ttl
        self.clock = clock

    def get_exchange_rate(
        self,
        from_currency: str,
        to_currency: str,
        manual_rate: ManualExchangeRate | None = None,
    ) -> Decimal:
        """
        Get the multiplier converting from_currency into to_currency.

        Args:
            from_currency: Source currency code
            to_currency: Target currency code
            manual_rate: Optional hand-entered rate from the originating expense

        Returns:
            Exchange rate (e.g. 0.85 means 1 USD = 0.85 EUR), never raises
        """
        if from_currency == to_currency:
            return ONE

        if manual_rate is not None:
            rate = _apply_manual_rate(manual_rate, from_currency, to_currency)
            if rate is not None:
                return rate

        cached = self._read_cache(from_currency)
        if cached and not cached.is_expired(self.clock()):
            rate = _lookup(cached.rates, to_currency)
            if rate is None:
                logger.warning(
                    f"Cached {from_currency} table has no usable {to_currency} rate, using 1:1"
                )
                return ONE
            logger.debug(f"Cache hit for {from_currency}->{to_currency}: {rate}")
            return rate

        try:
            with self.client_factory() as client:
                rates = client.get_latest_rates(from_currency)
        except ExchangeRateAPIError as e:
            logger.error(f"Failed to fetch exchange rates: {e}")

            if cached:
                logger.warning(
                    f"Using expired exchange rate cache for {from_currency} "
                    f"(fetched {cached.fetched_at.isoformat()})"
                )
                return _lookup(cached.rates, to_currency) or ONE

            logger.warning(
                f"No exchange rate available for {from_currency}->{to_currency}, "
                f"using 1:1"
            )
            return ONE

        rates = {code: rate for code, rate in rates.items() if is_usable_rate(rate)}
        self._write_cache(from_currency, rates)

        rate = rates.get(to_currency)
        if rate is None:
            logger.warning(
                f"Rate API has no usable {to_currency} rate for base {from_currency}, using 1:1"
            )
            return ONE

        logger.info(f"Fetched exchange rate {from_currency}->{to_currency}: {rate}")
        return rate

    def convert_amount(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: str,
        manual_rate: ManualExchangeRate | None = None,
    ) -> Decimal:
        """Convert an amount, rounding to cents. Same-currency input is returned as is."""
        if from_currency == to_currency:
            return amount

        rate = self.get_exchange_rate(from_currency, to_currency, manual_rate)
        return round_money(Decimal(amount) * rate)

    def convert_balances(
        self, entries: list[BalanceEntry], target_currency: str
    ) -> list[BalanceEntry]:
        """
        Convert each entry's amount into target_currency, keeping everything else.

        Entries that round to 0.00 in the target currency are dropped, since a
        balance entry always carries a positive amount.
        """
        converted = []
        for entry in entries:
            amount = self.convert_amount(entry.amount, entry.currency, target_currency)
            if amount <= 0:
                logger.debug(
                    f"Dropping {entry.amount} {entry.currency} entry, "
                    f"rounds to {amount} {target_currency}"
                )
                continue
            converted.append(
                entry.model_copy(update={"amount": amount, "currency": target_currency})
            )
        return converted

    def _read_cache(self, base_currency: str) -> ExchangeRateCache | None:
        try:
            return self.cache.get_exchange_rate_cache(base_currency)
        except sqlite3.Error as e:
            logger.warning(f"Could not read exchange rate cache for {base_currency}: {e}")
            return None

    def _write_cache(self, base_currency: str, rates: dict[str, Decimal]):
        now = self.clock()
        entry = ExchangeRateCache(
            base_currency=base_currency,
            rates=rates,
            fetched_at=now,
            expires_at=now + self.ttl,
        )
        try:
            self.cache.save_exchange_rate_cache(entry)
        except sqlite3.Error as e:
            logger.warning(f"Could not save exchange rate cache for {base_currency}: {e}")


def _apply_manual_rate(
    manual_rate: ManualExchangeRate, from_currency: str, to_currency: str
) -> Decimal | None:
    """Rate from a manual entry if it covers the pair in either direction."""
    if (manual_rate.from_currency, manual_rate.to_currency) == (
        from_currency,
        to_currency,
    ):
        return manual_rate.rate
    if (manual_rate.from_currency, manual_rate.to_currency) == (
        to_currency,
        from_currency,
    ):
        return ONE / manual_rate.rate
    # Recorded for some other pair
    return None


def _lookup(rates: dict[str, Decimal], to_currency: str) -> Decimal | None:
    """A table's rate for to_currency, treating zero or negative entries as missing."""
    rate = rates.get(to_currency)
    if rate is None or not is_usable_rate(rate):
        return None
    return rate
