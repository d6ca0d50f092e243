"""SettleUp - Work out who owes whom from shared expenses."""

__version__ = "0.1.0"

from .aggregator import BalanceAggregator
from .config import Settings, load_settings
from .currency import CurrencyConverter
from .db import Database
from .models import (
    BalanceEntry,
    BalanceResult,
    Expense,
    ExpenseSplit,
    PersonIdentifier,
    Settlement,
)
from .service import BalanceService
from .simplifier import simplify_debts

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "BalanceAggregator",
    "BalanceEntry",
    "BalanceResult",
    "BalanceService",
    "CurrencyConverter",
    "Expense",
    "ExpenseSplit",
    "PersonIdentifier",
    "Settlement",
    "simplify_debts",
]
