"""SQLite database operations for SettleUp."""

import json
import sqlite3
from datetime import datetime
from decimal import Decimal
from pathlib import Path

from .models import ExchangeRateCache


class Database:
    """SQLite database manager for the exchange rate cache."""

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        cursor = self.conn.cursor()

        # One row per base currency, overwritten on every successful fetch
        cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS exchange_rates (
                base_currency TEXT PRIMARY KEY,
                rates TEXT NOT NULL,
                fetched_at TIMESTAMP NOT NULL,
                expires_at TIMESTAMP NOT NULL
            )
        """
        )

        self.conn.commit()

    def close(self):
        """Close database connection."""
        self.conn.close()

    # ========================================================================
    # Exchange rate cache operations
    # ========================================================================

    def get_exchange_rate_cache(self, base_currency: str) -> ExchangeRateCache | None:
        """Get the cached rate table for a base currency."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT base_currency, rates, fetched_at, expires_at
            FROM exchange_rates
            WHERE base_currency = ?
            """,
            (base_currency,),
        )
        row = cursor.fetchone()
        if not row:
            return None

        # Rates are stored as strings so Decimal precision survives the round trip
        rates = {code: Decimal(value) for code, value in json.loads(row["rates"]).items()}
        return ExchangeRateCache(
            base_currency=row["base_currency"],
            rates=rates,
            fetched_at=datetime.fromisoformat(row["fetched_at"]),
            expires_at=datetime.fromisoformat(row["expires_at"]),
        )

    def save_exchange_rate_cache(self, cache: ExchangeRateCache):
        """Create or overwrite the cached rate table for a base currency."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            INSERT INTO exchange_rates (base_currency, rates, fetched_at, expires_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(base_currency) DO UPDATE SET
                rates = excluded.rates,
                fetched_at = excluded.fetched_at,
                expires_at = excluded.expires_at
            """,
            (
                cache.base_currency,
                json.dumps({code: str(rate) for code, rate in cache.rates.items()}),
                cache.fetched_at.isoformat(),
                cache.expires_at.isoformat(),
            ),
        )
        self.conn.commit()

    def delete_exchange_rate_cache(self, base_currency: str):
        """Drop the cached rate table for a base currency."""
        cursor = self.conn.cursor()
        cursor.execute(
            "DELETE FROM exchange_rates WHERE base_currency = ?", (base_currency,)
        )
        self.conn.commit()
