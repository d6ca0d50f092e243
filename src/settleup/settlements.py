"""Attribution of settlements to a pair of people."""

from datetime import date

from .models import PersonIdentifier, Settlement


def persons_match(a: PersonIdentifier, b: PersonIdentifier) -> bool:
    """
    Check whether two identifiers refer to the same person.

    Users are compared by user_id and participants by participant_id. An
    identifier pair with no id kind in common never matches.
    """
    if a.user_id and b.user_id:
        return a.user_id == b.user_id
    if a.participant_id and b.participant_id:
        return a.participant_id == b.participant_id
    return False


def settlement_matches_pair(
    settlement: Settlement, from_person: PersonIdentifier, to_person: PersonIdentifier
) -> bool:
    """
    Check whether a settlement applies to the from_person -> to_person balance.

    - global: matches the two people in either direction
    - partial: matches only the recorded direction
    - tag: never matches outside a tag-filtered view
    """
    if settlement.settlement_type == "tag":
        return False

    forward = persons_match(settlement.from_person, from_person) and persons_match(
        settlement.to_person, to_person
    )
    if settlement.settlement_type == "partial":
        return forward

    reverse = persons_match(settlement.from_person, to_person) and persons_match(
        settlement.to_person, from_person
    )
    return forward or reverse


def settlements_for_pair(
    settlements: list[Settlement],
    person_a: PersonIdentifier,
    person_b: PersonIdentifier,
) -> list[Settlement]:
    """Settlements attributable to the balance between two people, newest first."""
    matched = [
        s
        for s in settlements
        if settlement_matches_pair(s, person_a, person_b)
        or settlement_matches_pair(s, person_b, person_a)
    ]
    matched.sort(key=lambda s: s.settlement_date or date.min, reverse=True)
    return matched
