"""Custom exceptions for SettleUp."""


class SettleUpError(Exception):
    """Base exception for all SettleUp errors."""

    pass


class ConfigurationError(SettleUpError):
    """Raised when configuration is invalid or missing."""

    pass


class DataProviderError(SettleUpError):
    """Raised when expense or settlement records cannot be loaded."""

    pass


class APIError(SettleUpError):
    """Base class for API-related errors."""

    pass


class ExchangeRateAPIError(APIError):
    """Raised when the exchange rate API request fails."""

    def __init__(self, base_currency: str, message: str | None = None):
        self.base_currency = base_currency
        super().__init__(
            message or f"Failed to fetch exchange rates for base {base_currency}"
        )
