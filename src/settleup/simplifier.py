"""Debt simplification: net a web of debts into a short list of payments.

Example: A owes B 50 and B owes C 50 simplifies to A owes C 50.

Algorithm (greedy):
1. Compute each person's net balance (owed to them minus what they owe)
2. Split into debtors (net < -0.01) and creditors (net > 0.01)
3. Sort both largest first
4. Pay the largest creditor from the largest debtor, retire whoever hits zero
5. Repeat until one side runs out

This is a heuristic. Finding the true minimum number of payments is NP-hard
(it reduces to subset-sum partitioning); largest-first matching is usually
within one payment of optimal for small groups but is not guaranteed to be.
The total paid always equals the total owed by debtors.
"""

import logging
from decimal import Decimal

from .models import BalanceEntry, PersonIdentifier

logger = logging.getLogger(__name__)

# Nets within a cent of zero count as settled
SETTLED_EPSILON = Decimal("0.01")


def compute_net_balances(
    entries: list[BalanceEntry],
) -> dict[str, tuple[PersonIdentifier, Decimal]]:
    """
    Net every person's position across all entries.

    Entries whose debtor or creditor has no usable id are dropped.

    Args:
        entries: Balance entries, all in one currency

    Returns:
        Mapping of person key to (person, net), positive meaning they are owed
    """
    nets: dict[str, tuple[PersonIdentifier, Decimal]] = {}

    for entry in entries:
        from_key = entry.from_person.key
        to_key = entry.to_person.key
        if not from_key or not to_key:
            logger.debug(f"Dropping balance entry with unresolvable party: {entry}")
            continue

        person, net = nets.get(from_key, (entry.from_person, Decimal("0")))
        nets[from_key] = (person, net - entry.amount)

        person, net = nets.get(to_key, (entry.to_person, Decimal("0")))
        nets[to_key] = (person, net + entry.amount)

    return nets


def simplify_debts(entries: list[BalanceEntry]) -> list[BalanceEntry]:
    """
    Reduce balances to a small set of payments that settles everyone.

    Args:
        entries: Direct balance entries, all in the same currency

    Returns:
        Simplified entries without expense breakdowns
    """
    if not entries:
        return []

    currency = entries[0].currency
    nets = compute_net_balances(entries)

    debtors: list[list] = []
    creditors: list[list] = []
    for person, net in nets.values():
        if net < -SETTLED_EPSILON:
            debtors.append([person, -net])
        elif net > SETTLED_EPSILON:
            creditors.append([person, net])

    debtors.sort(key=lambda d: d[1], reverse=True)
    creditors.sort(key=lambda c: c[1], reverse=True)

    simplified: list[BalanceEntry] = []
    debtor_idx = 0
    creditor_idx = 0

    while debtor_idx < len(debtors) and creditor_idx < len(creditors):
        debtor = debtors[debtor_idx]
        creditor = creditors[creditor_idx]

        payment = min(debtor[1], creditor[1])
        simplified.append(
            BalanceEntry(
                from_person=debtor[0],
                to_person=creditor[0],
                amount=payment,
                currency=currency,
            )
        )

        debtor[1] -= payment
        creditor[1] -= payment

        if debtor[1] < SETTLED_EPSILON:
            debtor_idx += 1
        if creditor[1] < SETTLED_EPSILON:
            creditor_idx += 1

    logger.info(
        f"Simplified {len(entries)} balances into {len(simplified)} payments "
        f"({len(debtors)} debtors, {len(creditors)} creditors)"
    )
    return simplified
