"""Service layer that wires the converter and aggregator together.

Collaborators are passed in explicitly rather than looked up globally, so a
calculation depends only on its inputs.
"""

import logging
from datetime import timedelta
from functools import partial

from .aggregator import BalanceAggregator
from .clients.exchange_rates import ExchangeRateClient
from .config import Settings
from .currency import CurrencyConverter
from .db import Database
from .models import BalanceResult
from .names import NameResolver
from .providers import DataProvider

logger = logging.getLogger(__name__)


class BalanceService:
    """Entry point for callers that present balances."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        name_resolver: NameResolver | None = None,
    ):
        """Initialize the balance service."""
        self.settings = settings
        self.db = database
        self.name_resolver = name_resolver
        self.converter = CurrencyConverter(
            cache=database,
            client_factory=partial(
                ExchangeRateClient,
                base_url=settings.exchange_rate_api_url,
                timeout=settings.http_timeout,
            ),
            ttl=timedelta(hours=settings.exchange_rate_ttl_hours),
        )

    def aggregator_for(self, provider: DataProvider) -> BalanceAggregator:
        """Build an aggregator reading from the given provider."""
        return BalanceAggregator(
            provider=provider,
            converter=self.converter,
            name_resolver=self.name_resolver,
            default_currency=self.settings.default_currency,
        )

    def load_balances(
        self,
        provider: DataProvider,
        simplified: bool = False,
        target_currency: str | None = None,
    ) -> BalanceResult | None:
        """
        Calculate balances, turning any failure into a logged ``None``.

        A ``None`` result means "failed to load balances": callers show an
        error state rather than stale data. Call again whenever a settlement
        is created or deleted.
        """
        try:
            return self.aggregator_for(provider).calculate_balances(
                simplified=simplified, target_currency=target_currency
            )
        except Exception:
            logger.exception("Failed to load balances")
            return None
