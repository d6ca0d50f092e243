"""Tests for balance aggregation."""

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from settleup.aggregator import BalanceAggregator
from settleup.currency import CurrencyConverter
from settleup.db import Database
from settleup.exceptions import DataProviderError
from settleup.models import (
    ExchangeRateCache,
    Expense,
    ExpenseSplit,
    ManualExchangeRate,
    PersonIdentifier,
    Settlement,
)
from settleup.providers import InMemoryDataProvider

NOW = datetime(2025, 3, 1, 12, 0, 0, tzinfo=UTC)

ALICE = PersonIdentifier(user_id="alice")
BOB = PersonIdentifier(user_id="bob")
CAROL = PersonIdentifier(participant_id="carol-participant-1")


# Helper functions for tests
def make_expense(
    id: str,
    payer: str,
    shares: dict[str, str],
    currency: str = "AUD",
    **kwargs,
) -> Expense:
    """Expense paid by a user, split between users (or 'carol' as a participant)."""
    splits = []
    for person, amount in shares.items():
        if person == "carol":
            splits.append(
                ExpenseSplit(expense_id=id, participant_id=CAROL.participant_id, amount=Decimal(amount))
            )
        else:
            splits.append(ExpenseSplit(expense_id=id, user_id=person, amount=Decimal(amount)))
    return Expense(
        id=id,
        description=kwargs.pop("description", f"Expense {id}"),
        amount=sum((s.amount for s in splits), Decimal("0")),
        currency=currency,
        expense_date=kwargs.pop("expense_date", date(2025, 2, 1)),
        paid_by_user_id=payer,
        splits=splits,
        **kwargs,
    )


def make_settlement(frm: str, to: str, amount: str, kind: str = "global", **kwargs) -> Settlement:
    """Settlement between two users."""
    return Settlement(
        from_user_id=frm,
        to_user_id=to,
        amount=Decimal(amount),
        currency=kwargs.pop("currency", "AUD"),
        settlement_type=kind,
        **kwargs,
    )


def as_tuples(result) -> set[tuple[str, str, Decimal]]:
    return {(e.from_person.key, e.to_person.key, e.amount) for e in result.balances}


@pytest.fixture
def mock_db(tmp_path):
    """Create a temporary database."""
    db = Database(tmp_path / "test.db")
    yield db
    db.close()


@pytest.fixture
def mock_client():
    """API client that must not be needed unless a test says so."""
    client = MagicMock()
    client.__enter__.return_value = client
    client.get_latest_rates.return_value = {"AUD": Decimal("1.5"), "EUR": Decimal("0.9")}
    return client


@pytest.fixture
def converter(mock_db, mock_client):
    """Converter with a fixed clock and mocked API."""
    return CurrencyConverter(
        cache=mock_db, client_factory=MagicMock(return_value=mock_client), clock=lambda: NOW
    )


@pytest.fixture
def make_aggregator(converter):
    """Build an aggregator over a fixed set of records."""

    def _make(expenses=(), settlements=()):
        provider = InMemoryDataProvider(list(expenses), list(settlements))
        return BalanceAggregator(provider=provider, converter=converter, default_currency="AUD")

    return _make


class TestDirectBalances:
    """Raw debts from expense splits."""

    def test_split_owes_payer(self, make_aggregator):
        """Each non-payer split becomes a debt to the payer."""
        aggregator = make_aggregator([make_expense("e1", "alice", {"alice": "50", "bob": "50"})])

        result = aggregator.calculate_balances()

        assert as_tuples(result) == {("bob", "alice", Decimal("50"))}
        assert result.total_expenses == Decimal("100")
        assert result.currency == "AUD"

    def test_payer_own_share_ignored(self, make_aggregator):
        """The payer never owes themselves."""
        aggregator = make_aggregator([make_expense("e1", "alice", {"alice": "30"})])

        assert aggregator.calculate_balances().balances == []

    def test_deleted_expenses_excluded(self, make_aggregator):
        """Deleted expenses contribute nothing, including to the total."""
        aggregator = make_aggregator(
            [
                make_expense("e1", "alice", {"alice": "10", "bob": "10"}),
                make_expense("e2", "alice", {"bob": "99"}, is_deleted=True),
            ]
        )

        result = aggregator.calculate_balances()

        assert as_tuples(result) == {("bob", "alice", Decimal("10"))}
        assert result.total_expenses == Decimal("20")

    def test_same_pair_aggregates_with_breakdown(self, make_aggregator):
        """Debts between the same pair are summed and keep each expense."""
        aggregator = make_aggregator(
            [
                make_expense("e1", "alice", {"bob": "12.50"}, description="Lunch"),
                make_expense("e2", "alice", {"bob": "7.25"}, description="Coffee"),
            ]
        )

        [entry] = aggregator.calculate_balances().balances

        assert entry.amount == Decimal("19.75")
        assert [c.id for c in entry.expenses] == ["e1", "e2"]
        assert entry.expenses[0].description == "Lunch"
        assert entry.expenses[0].split_amount == Decimal("12.50")
        assert entry.expenses[0].expense_date == date(2025, 2, 1)

    def test_opposite_directions_collapse(self, make_aggregator):
        """A->B and B->A collapse into one net entry."""
        aggregator = make_aggregator(
            [
                make_expense("e1", "alice", {"bob": "50"}),
                make_expense("e2", "bob", {"alice": "20"}),
            ]
        )

        [entry] = aggregator.calculate_balances().balances

        assert (entry.from_person.key, entry.to_person.key) == ("bob", "alice")
        assert entry.amount == Decimal("30")
        assert {c.id for c in entry.expenses} == {"e1", "e2"}

    def test_mutual_debts_cancelling_vanish(self, make_aggregator):
        """Equal opposite debts leave no entry."""
        aggregator = make_aggregator(
            [
                make_expense("e1", "alice", {"bob": "15"}),
                make_expense("e2", "bob", {"alice": "15"}),
            ]
        )

        assert aggregator.calculate_balances().balances == []

    def test_participant_splits_and_names(self, make_aggregator):
        """Participants owe like users; missing names fall back to truncated ids."""
        aggregator = make_aggregator([make_expense("e1", "alice", {"carol": "8"})])

        [entry] = aggregator.calculate_balances().balances

        assert entry.from_person.participant_id == "carol-participant-1"
        assert entry.from_person.name == "Participant carol-pa"
        assert entry.to_person.name == "User alice"

    def test_split_without_person_skipped(self, make_aggregator):
        """A split with no identifier produces no debt."""
        expense = make_expense("e1", "alice", {"bob": "5"})
        expense.splits.append(ExpenseSplit(expense_id="e1", amount=Decimal("5")))
        aggregator = make_aggregator([expense])

        assert as_tuples(aggregator.calculate_balances()) == {("bob", "alice", Decimal("5"))}

    def test_provider_errors_propagate(self, converter):
        """Data provider failures are not caught."""
        provider = MagicMock()
        provider.get_expenses.side_effect = DataProviderError("store offline")
        aggregator = BalanceAggregator(provider=provider, converter=converter)

        with pytest.raises(DataProviderError):
            aggregator.calculate_balances()


class TestSettlements:
    """Netting settlements against debts."""

    @pytest.fixture
    def bob_owes_alice_50(self):
        return [make_expense("e1", "alice", {"alice": "50", "bob": "50"})]

    def test_global_settlement_reduces_debt(self, make_aggregator, bob_owes_alice_50):
        """Bob paying Alice 30 leaves 20."""
        aggregator = make_aggregator(bob_owes_alice_50, [make_settlement("bob", "alice", "30")])

        assert as_tuples(aggregator.calculate_balances()) == {("bob", "alice", Decimal("20"))}

    def test_global_settlement_clears_debt(self, make_aggregator, bob_owes_alice_50):
        """A full settlement removes the pair."""
        aggregator = make_aggregator(bob_owes_alice_50, [make_settlement("bob", "alice", "50")])

        assert aggregator.calculate_balances().balances == []

    def test_global_settlement_overpaid_flips(self, make_aggregator, bob_owes_alice_50):
        """Paying more than owed reverses the direction."""
        aggregator = make_aggregator(bob_owes_alice_50, [make_settlement("bob", "alice", "70")])

        assert as_tuples(aggregator.calculate_balances()) == {("alice", "bob", Decimal("20"))}

    def test_global_settlement_nets_both_directions(self, make_aggregator):
        """Global settlement works on the pair's net position."""
        aggregator = make_aggregator(
            [
                make_expense("e1", "alice", {"bob": "50"}),
                make_expense("e2", "bob", {"alice": "20"}),
            ],
            [make_settlement("bob", "alice", "30")],
        )

        assert aggregator.calculate_balances().balances == []

    def test_global_settlement_other_way_increases_debt(self, make_aggregator, bob_owes_alice_50):
        """Alice paying Bob while Bob owes her adds to Bob's debt."""
        aggregator = make_aggregator(bob_owes_alice_50, [make_settlement("alice", "bob", "10")])

        assert as_tuples(aggregator.calculate_balances()) == {("bob", "alice", Decimal("60"))}

    def test_partial_settlement_offsets_its_direction(self, make_aggregator, bob_owes_alice_50):
        """Partial settlement reduces exactly its own direction."""
        aggregator = make_aggregator(
            bob_owes_alice_50, [make_settlement("bob", "alice", "20", kind="partial")]
        )

        assert as_tuples(aggregator.calculate_balances()) == {("bob", "alice", Decimal("30"))}

    def test_partial_settlement_overpaid_flips(self, make_aggregator, bob_owes_alice_50):
        """Residual below zero is re-normalised to a positive reverse debt."""
        aggregator = make_aggregator(
            bob_owes_alice_50, [make_settlement("bob", "alice", "65.50", kind="partial")]
        )

        assert as_tuples(aggregator.calculate_balances()) == {("alice", "bob", Decimal("15.50"))}

    def test_partial_settlement_without_debt(self, make_aggregator):
        """A partial payment with nothing owed creates a debt back to the payer."""
        aggregator = make_aggregator([], [make_settlement("bob", "alice", "5", kind="partial")])

        assert as_tuples(aggregator.calculate_balances()) == {("alice", "bob", Decimal("5"))}

    def test_tag_settlements_ignored(self, make_aggregator, bob_owes_alice_50):
        """Tag-scoped settlements do not affect global balances."""
        aggregator = make_aggregator(
            bob_owes_alice_50, [make_settlement("bob", "alice", "50", kind="tag", tag="japan")]
        )

        assert as_tuples(aggregator.calculate_balances()) == {("bob", "alice", Decimal("50"))}

    def test_settlement_between_other_people_ignored(self, make_aggregator, bob_owes_alice_50):
        """Settlements only touch their own pair."""
        aggregator = make_aggregator(
            bob_owes_alice_50 + [make_expense("e2", "dave", {"erin": "40"})],
            [make_settlement("erin", "dave", "40")],
        )

        assert as_tuples(aggregator.calculate_balances()) == {("bob", "alice", Decimal("50"))}
    def test_settlement_to_self_ignored(self, make_aggregator, bob_owes_alice_50):
        """Someone paying themselves changes nothing."""
        aggregator = make_aggregator(bob_owes_alice_50, [make_settlement("bob", "bob", "10")])

        assert as_tuples(aggregator.calculate_balances()) == {("bob", "alice", Decimal("50"))}

    def test_settlement_to_self_without_debts(self, make_aggregator):
        """A lone self-settlement produces no balance."""
        aggregator = make_aggregator([], [make_settlement("alice", "alice", "10")])

        assert aggregator.calculate_balances().balances == []


    def test_settlement_in_other_currency_converted(self, make_aggregator, mock_db, bob_owes_alice_50):
        """Settlements are converted to the target currency before netting."""
        mock_db.save_exchange_rate_cache(
            ExchangeRateCache(
                base_currency="EUR",
                rates={"AUD": Decimal("1.6")},
                fetched_at=NOW,
                expires_at=NOW + timedelta(hours=24),
            )
        )
        aggregator = make_aggregator(
            bob_owes_alice_50, [make_settlement("bob", "alice", "25", currency="EUR")]
        )

        assert as_tuples(aggregator.calculate_balances()) == {("bob", "alice", Decimal("10.00"))}


class TestCurrency:
    """Conversion into the target currency."""

    def test_expenses_converted_via_cache(self, make_aggregator, mock_db, mock_client):
        """Foreign-currency debts and totals use the cached rate."""
        mock_db.save_exchange_rate_cache(
            ExchangeRateCache(
                base_currency="USD",
                rates={"AUD": Decimal("1.5")},
                fetched_at=NOW,
                expires_at=NOW + timedelta(hours=24),
            )
        )
        aggregator = make_aggregator(
            [
                make_expense("e1", "alice", {"alice": "10", "bob": "10"}, currency="USD"),
                make_expense("e2", "alice", {"bob": "5"}),
            ]
        )

        result = aggregator.calculate_balances(target_currency="AUD")

        assert as_tuples(result) == {("bob", "alice", Decimal("20.00"))}
        assert result.total_expenses == Decimal("35.00")
        mock_client.get_latest_rates.assert_not_called()

    def test_manual_rate_on_expense_respected(self, make_aggregator, mock_client):
        """The expense's manual rate is used instead of the API."""
        aggregator = make_aggregator(
            [
                make_expense(
                    "e1",
                    "alice",
                    {"bob": "100"},
                    currency="JPY",
                    manual_exchange_rate=ManualExchangeRate(
                        from_currency="JPY", to_currency="AUD", rate=Decimal("0.0101")
                    ),
                )
            ]
        )

        result = aggregator.calculate_balances(target_currency="AUD")

        assert as_tuples(result) == {("bob", "alice", Decimal("1.01"))}
        assert result.total_expenses == Decimal("1.01")
        mock_client.get_latest_rates.assert_not_called()

    def test_target_currency_defaults(self, make_aggregator):
        """Without a target, the default currency is used."""
        aggregator = make_aggregator([make_expense("e1", "alice", {"bob": "5"})])

        result = aggregator.calculate_balances()

        assert result.currency == "AUD"
        assert result.balances[0].currency == "AUD"

    def test_breakdown_keeps_native_amounts(self, make_aggregator, mock_client):
        """Expense contributions stay in the expense's own currency."""
        aggregator = make_aggregator(
            [make_expense("e1", "alice", {"bob": "10"}, currency="USD")]
        )

        [entry] = aggregator.calculate_balances(target_currency="AUD").balances

        assert entry.amount == Decimal("15.00")
        assert entry.currency == "AUD"
        assert entry.expenses[0].split_amount == Decimal("10")


class TestSimplified:
    """Simplified view."""

    def test_chain_simplified(self, make_aggregator):
        """Bob->Alice and Alice->Carol collapse to Bob->Carol."""
        aggregator = make_aggregator(
            [
                make_expense("e1", "alice", {"bob": "50"}),
                make_expense("e2", "carol_payer", {"alice": "50"}),
            ]
        )

        result = aggregator.calculate_balances(simplified=True)

        assert as_tuples(result) == {("bob", "carol_payer", Decimal("50"))}
        assert result.balances[0].expenses is None

    def test_direct_view_keeps_breakdown(self, make_aggregator):
        """Direct view keeps per-expense detail, simplified drops it."""
        aggregator = make_aggregator([make_expense("e1", "alice", {"bob": "50"})])

        assert aggregator.calculate_balances(simplified=False).balances[0].expenses
        assert aggregator.calculate_balances(simplified=True).balances[0].expenses is None

    def test_total_unaffected_by_simplification(self, make_aggregator):
        """total_expenses is the same in both views."""
        aggregator = make_aggregator(
            [
                make_expense("e1", "alice", {"alice": "5", "bob": "50"}),
                make_expense("e2", "bob", {"alice": "20", "carol": "10"}),
            ]
        )

        direct = aggregator.calculate_balances(simplified=False)
        simplified = aggregator.calculate_balances(simplified=True)

        assert direct.total_expenses == simplified.total_expenses == Decimal("85")


class TestNetBalance:
    """Net position between two people."""

    def test_a_owes_b(self, make_aggregator):
        """Net debt in one direction."""
        aggregator = make_aggregator(
            [
                make_expense("e1", "bob", {"alice": "40"}),
                make_expense("e2", "alice", {"bob": "15"}),
            ]
        )

        result = aggregator.calculate_net_balance(ALICE, BOB)

        assert result.direction == "A_owes_B"
        assert result.amount == Decimal("25")
        assert result.currency == "AUD"

    def test_b_owes_a(self, make_aggregator):
        """Direction is relative to argument order."""
        aggregator = make_aggregator([make_expense("e1", "bob", {"alice": "40"})])

        result = aggregator.calculate_net_balance(BOB, ALICE)

        assert result.direction == "B_owes_A"
        assert result.amount == Decimal("40")

    def test_settled(self, make_aggregator):
        """No outstanding balance is settled with amount zero."""
        aggregator = make_aggregator(
            [make_expense("e1", "bob", {"alice": "40"})],
            [make_settlement("alice", "bob", "40")],
        )

        result = aggregator.calculate_net_balance(ALICE, BOB)

        assert result.direction == "settled"
        assert result.amount == Decimal("0")


def test_settlements_for_pair(make_aggregator):
    """Only settlements attributable to the pair are returned, newest first."""
    older = make_settlement("bob", "alice", "5", settlement_date=date(2025, 1, 1))
    newer = make_settlement("alice", "bob", "3", settlement_date=date(2025, 2, 1))
    partial = make_settlement("bob", "alice", "1", kind="partial", settlement_date=date(2025, 1, 15))
    tagged = make_settlement("bob", "alice", "2", kind="tag", tag="trip")
    unrelated = make_settlement("bob", "carol_payer", "9")
    aggregator = make_aggregator([], [older, newer, partial, tagged, unrelated])

    assert aggregator.settlements_for_pair(ALICE, BOB) == [newer, partial, older]
