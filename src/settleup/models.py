"""Pydantic domain models for SettleUp."""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

SUPPORTED_CURRENCIES = ("AUD", "USD", "EUR", "GBP")

# ============================================================================
# People
# ============================================================================


class PersonIdentifier(BaseModel):
    """A party to a debt: a registered user or a non-registered participant."""

    model_config = ConfigDict(frozen=True)

    user_id: str | None = None
    participant_id: str | None = None
    name: str | None = None

    @property
    def key(self) -> str | None:
        """Identity used for netting (user_id wins over participant_id)."""
        return self.user_id or self.participant_id


# ============================================================================
# Upstream records (owned by the data provider, read-only here)
# ============================================================================


class ManualExchangeRate(BaseModel):
    """A rate recorded by hand on an expense."""

    from_currency: str
    to_currency: str
    rate: Decimal = Field(gt=0)


class ExpenseSplit(BaseModel):
    """One participant's share of an expense."""

    expense_id: str | None = None
    user_id: str | None = None
    participant_id: str | None = None
    name: str | None = None
    amount: Decimal

    @property
    def person(self) -> PersonIdentifier:
        return PersonIdentifier(
            user_id=self.user_id, participant_id=self.participant_id, name=self.name
        )


class Expense(BaseModel):
    """A shared expense paid by one person and split between several."""

    id: str
    description: str = ""
    amount: Decimal
    currency: str
    expense_date: date | None = None
    paid_by_user_id: str | None = None
    paid_by_participant_id: str | None = None
    is_deleted: bool = False
    splits: list[ExpenseSplit] = Field(default_factory=list)
    manual_exchange_rate: ManualExchangeRate | None = None

    @property
    def payer(self) -> PersonIdentifier:
        return PersonIdentifier(
            user_id=self.paid_by_user_id, participant_id=self.paid_by_participant_id
        )


SettlementType = Literal["global", "partial", "tag"]


class Settlement(BaseModel):
    """A recorded repayment: from_* paid to_* the given amount."""

    id: str | None = None
    from_user_id: str | None = None
    from_participant_id: str | None = None
    to_user_id: str | None = None
    to_participant_id: str | None = None
    amount: Decimal = Field(gt=0)
    currency: str
    settlement_type: SettlementType = "global"
    tag: str | None = None
    settlement_date: date | None = None

    @field_validator("settlement_type", mode="before")
    @classmethod
    def _normalize_type(cls, value):
        # Older records use "tag_specific"
        if value == "tag_specific":
            return "tag"
        return value

    @property
    def from_person(self) -> PersonIdentifier:
        return PersonIdentifier(
            user_id=self.from_user_id, participant_id=self.from_participant_id
        )

    @property
    def to_person(self) -> PersonIdentifier:
        return PersonIdentifier(
            user_id=self.to_user_id, participant_id=self.to_participant_id
        )


# ============================================================================
# Balance Models
# ============================================================================


class ExpenseContribution(BaseModel):
    """An expense that contributed to a direct balance (audit trail)."""

    id: str
    description: str
    amount: Decimal  # expense total, native currency
    expense_date: date | None = None
    split_amount: Decimal  # this balance's share, native currency


class BalanceEntry(BaseModel):
    """A directed debt: from_person owes to_person amount in currency.

    ``expenses`` is only populated in the direct view. Simplified entries
    are the product of netting and never carry a breakdown.
    """

    model_config = ConfigDict(populate_by_name=True)

    from_person: PersonIdentifier = Field(alias="from")
    to_person: PersonIdentifier = Field(alias="to")
    amount: Decimal = Field(gt=0)
    currency: str
    expenses: list[ExpenseContribution] | None = None


class BalanceResult(BaseModel):
    """Output of a balance calculation."""

    balances: list[BalanceEntry]
    total_expenses: Decimal
    currency: str


class NetBalanceResult(BaseModel):
    """Net position between two people."""

    amount: Decimal
    currency: str
    direction: Literal["A_owes_B", "B_owes_A", "settled"]


# ============================================================================
# Currency Models
# ============================================================================


class ExchangeRateCache(BaseModel):
    """A cached rate table for one base currency."""

    base_currency: str
    rates: dict[str, Decimal]
    fetched_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        """A table is valid while now < expires_at."""
        return now >= self.expires_at
