"""Balance aggregation: expenses and settlements in, who-owes-whom out.

Steps for ``calculate_balances``:
1. Every split owed by someone other than the payer becomes a debt
   ``split person -> payer``, converted to the target currency with the
   expense's manual rate when one is recorded.
2. Settlements are netted against those debts. A global settlement offsets
   the pair in either direction, a partial one only its own direction
   (flipping it when overpaid). Tag settlements are ignored here.
3. Debts between the same two people are collapsed into one entry.
4. Optionally the result is handed to the debt simplifier.

Records come from an injected data provider and errors raised by it are not
caught here; currency problems never surface (see ``currency``).
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from .currency import CurrencyConverter
from .models import (
    BalanceEntry,
    BalanceResult,
    Expense,
    ExpenseContribution,
    NetBalanceResult,
    PersonIdentifier,
    Settlement,
)
from .names import NameResolver, TruncatedIdNameResolver
from .providers import DataProvider
from .settlements import persons_match, settlement_matches_pair, settlements_for_pair
from .simplifier import SETTLED_EPSILON, simplify_debts

logger = logging.getLogger(__name__)

PairKey = tuple[str, str]


@dataclass
class _DirectedDebt:
    """Running total for one direction of a pair, in the target currency."""

    from_person: PersonIdentifier
    to_person: PersonIdentifier
    amount: Decimal = Decimal("0")
    contributions: list[ExpenseContribution] = field(default_factory=list)


class BalanceAggregator:
    """Computes pairwise balances from the provider's working set."""

    def __init__(
        self,
        provider: DataProvider,
        converter: CurrencyConverter,
        name_resolver: NameResolver | None = None,
        default_currency: str = "AUD",
    ):
        """Initialize the aggregator with its collaborators."""
        self.provider = provider
        self.converter = converter
        self.name_resolver = name_resolver or TruncatedIdNameResolver()
        self.default_currency = default_currency

    def calculate_balances(
        self, simplified: bool = False, target_currency: str | None = None
    ) -> BalanceResult:
        """
        Calculate who owes whom across all non-deleted expenses.

        Args:
            simplified: Reduce to a minimal-ish payment plan (loses breakdowns)
            target_currency: Currency for every amount; defaults to the
                aggregator's default currency

        Returns:
            Balance result in the target currency
        """
        currency = target_currency or self.default_currency

        expenses = [exp for exp in self.provider.get_expenses() if not exp.is_deleted]
        settlements = self.provider.get_settlements()

        debts = self._build_debts(expenses, currency)
        self._apply_settlements(debts, settlements, currency)
        direct = self._collapse(debts, currency, keep_expenses=not simplified)

        balances = simplify_debts(direct) if simplified else direct

        total_expenses: Decimal = sum(
            (
                self.converter.convert_amount(
                    exp.amount, exp.currency, currency, exp.manual_exchange_rate
                )
                for exp in expenses
            ),
            Decimal("0"),
        )

        logger.info(
            f"Calculated {len(balances)} {'simplified' if simplified else 'direct'} "
            f"balances from {len(expenses)} expenses and {len(settlements)} "
            f"settlements (total {total_expenses} {currency})"
        )

        return BalanceResult(
            balances=balances, total_expenses=total_expenses, currency=currency
        )

    def calculate_net_balance(
        self, person_a: PersonIdentifier, person_b: PersonIdentifier
    ) -> NetBalanceResult:
        """
        Net amount between two people in the default currency.

        Used to prefill a global settlement between them.
        """
        result = self.calculate_balances(simplified=False)

        a_owes_b = Decimal("0")
        b_owes_a = Decimal("0")
        for entry in result.balances:
            if persons_match(entry.from_person, person_a) and persons_match(
                entry.to_person, person_b
            ):
                a_owes_b += entry.amount
            elif persons_match(entry.from_person, person_b) and persons_match(
                entry.to_person, person_a
            ):
                b_owes_a += entry.amount

        net = a_owes_b - b_owes_a
        if abs(net) < SETTLED_EPSILON:
            return NetBalanceResult(
                amount=Decimal("0"), currency=result.currency, direction="settled"
            )
        if net > 0:
            return NetBalanceResult(
                amount=net, currency=result.currency, direction="A_owes_B"
            )
        return NetBalanceResult(
            amount=-net, currency=result.currency, direction="B_owes_A"
        )

    def settlements_for_pair(
        self, person_a: PersonIdentifier, person_b: PersonIdentifier
    ) -> list[Settlement]:
        """Settlements attributed to the balance between two people."""
        return settlements_for_pair(self.provider.get_settlements(), person_a, person_b)

    # ========================================================================
    # Internal steps
    # ========================================================================

    def _named(self, person: PersonIdentifier) -> PersonIdentifier:
        return person.model_copy(
            update={"name": self.name_resolver.display_name(person)}
        )

    def _build_debts(
        self, expenses: list[Expense], currency: str
    ) -> dict[PairKey, _DirectedDebt]:
        debts: dict[PairKey, _DirectedDebt] = {}

        for expense in expenses:
            payer = expense.payer
            if not payer.key:
                logger.debug(f"Skipping expense {expense.id} with no payer")
                continue

            for split in expense.splits:
                ower = split.person
                # Unidentified splits and the payer's own share produce no debt
                if not ower.key or ower.key == payer.key:
                    continue

                amount = self.converter.convert_amount(
                    split.amount,
                    expense.currency,
                    currency,
                    expense.manual_exchange_rate,
                )
                key = (ower.key, payer.key)
                debt = debts.get(key)
                if debt is None:
                    debt = _DirectedDebt(self._named(ower), self._named(payer))
                    debts[key] = debt

                debt.amount += amount
                debt.contributions.append(
                    ExpenseContribution(
                        id=expense.id,
                        description=expense.description,
                        amount=expense.amount,
                        expense_date=expense.expense_date,
                        split_amount=split.amount,
                    )
                )

        return debts

    def _apply_settlements(
        self,
        debts: dict[PairKey, _DirectedDebt],
        settlements: list[Settlement],
        currency: str,
    ):
        for settlement in settlements:
            payer = settlement.from_person
            payee = settlement.to_person
            if settlement.settlement_type == "tag":
                logger.debug(f"Ignoring tag settlement {settlement.id}")
                continue
            if not payer.key or not payee.key:
                logger.debug(f"Ignoring settlement {settlement.id} with no party")
                continue
            if payer.key == payee.key:
                logger.debug(f"Ignoring settlement {settlement.id} paid to self")
                continue

            amount = self.converter.convert_amount(
                settlement.amount, settlement.currency, currency
            )
            matched = [
                key
                for key, debt in debts.items()
                if settlement_matches_pair(settlement, debt.from_person, debt.to_person)
            ]

            if settlement.settlement_type == "partial":
                key = matched[0] if matched else (payer.key, payee.key)
                if key not in debts:
                    debts[key] = _DirectedDebt(self._named(payer), self._named(payee))
                debts[key].amount -= amount
                _normalize(debts, key)
            else:
                # Net both directions, then take the payment off the payer's side
                net = -amount
                contributions: list[ExpenseContribution] = []
                for key in matched:
                    debt = debts.pop(key)
                    if persons_match(debt.from_person, payer):
                        net += debt.amount
                    else:
                        net -= debt.amount
                    contributions.extend(debt.contributions)

                key = (payer.key, payee.key)
                debts[key] = _DirectedDebt(
                    self._named(payer), self._named(payee), net, contributions
                )
                _normalize(debts, key)

    def _collapse(
        self,
        debts: dict[PairKey, _DirectedDebt],
        currency: str,
        keep_expenses: bool,
    ) -> list[BalanceEntry]:
        pairs: dict[frozenset[str], list[_DirectedDebt]] = {}
        for (from_key, to_key), debt in debts.items():
            pairs.setdefault(frozenset((from_key, to_key)), []).append(debt)

        entries: list[BalanceEntry] = []
        for directed in pairs.values():
            first = directed[0]
            net = Decimal("0")
            contributions: list[ExpenseContribution] = []
            for debt in directed:
                if debt.from_person.key == first.from_person.key:
                    net += debt.amount
                else:
                    net -= debt.amount
                contributions.extend(debt.contributions)

            if abs(net) < SETTLED_EPSILON:
                continue

            from_person, to_person = first.from_person, first.to_person
            if net < 0:
                from_person, to_person, net = to_person, from_person, -net

            entries.append(
                BalanceEntry(
                    from_person=from_person,
                    to_person=to_person,
                    amount=net,
                    currency=currency,
                    expenses=contributions if keep_expenses else None,
                )
            )

        return entries


def _normalize(debts: dict[PairKey, _DirectedDebt], key: PairKey):
    """Flip a debt that went negative so amounts stay positive."""
    debt = debts[key]
    if debt.amount >= 0:
        return

    del debts[key]
    reverse_key = (key[1], key[0])
    reverse = debts.get(reverse_key)
    if reverse is None:
        debts[reverse_key] = _DirectedDebt(
            debt.to_person, debt.from_person, -debt.amount, debt.contributions
        )
    else:
        reverse.amount -= debt.amount
        reverse.contributions.extend(debt.contributions)
