"""Sources of expense and settlement records."""

import json
import logging
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from .exceptions import DataProviderError
from .models import Expense, Settlement

logger = logging.getLogger(__name__)


class DataProvider(Protocol):
    """Read-only access to the working set of expenses and settlements."""

    def get_expenses(self) -> list[Expense]: ...

    def get_settlements(self) -> list[Settlement]: ...


class InMemoryDataProvider:
    """Serves a fixed snapshot of records."""

    def __init__(
        self,
        expenses: list[Expense] | None = None,
        settlements: list[Settlement] | None = None,
    ):
        self.expenses = list(expenses or [])
        self.settlements = list(settlements or [])

    def get_expenses(self) -> list[Expense]:
        return list(self.expenses)

    def get_settlements(self) -> list[Settlement]:
        return list(self.settlements)


class JsonDataProvider(InMemoryDataProvider):
    """
    Loads records from a JSON export.

    Expected document::

        {
          "expenses": [{"id": "...", "amount": "30.00", "currency": "AUD",
                        "paid_by_user_id": "...", "splits": [...]}],
          "settlements": [{"from_user_id": "...", "to_user_id": "...",
                           "amount": "10.00", "currency": "AUD",
                           "settlement_type": "global"}]
        }
    """

    def __init__(self, path: Path):
        self.path = path
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise DataProviderError(f"Could not read records from {path}: {e}") from e

        try:
            expenses = [Expense(**item) for item in data.get("expenses", [])]
            settlements = [Settlement(**item) for item in data.get("settlements", [])]
        except (AttributeError, TypeError, ValidationError) as e:
            raise DataProviderError(f"Invalid records in {path}: {e}") from e

        logger.info(
            f"Loaded {len(expenses)} expenses and {len(settlements)} settlements "
            f"from {path}"
        )
        super().__init__(expenses, settlements)
