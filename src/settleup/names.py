"""Display names for people appearing in balances."""

from typing import Protocol

from .models import PersonIdentifier


class NameResolver(Protocol):
    """Anything that can turn a person into a display name."""

    def display_name(self, person: PersonIdentifier) -> str: ...


class TruncatedIdNameResolver:
    """Uses the recorded name, otherwise a shortened id."""

    def __init__(self, id_length: int = 8):
        self.id_length = id_length

    def display_name(self, person: PersonIdentifier) -> str:
        if person.name:
            return person.name
        if person.user_id:
            return f"User {person.user_id[: self.id_length]}"
        if person.participant_id:
            return f"Participant {person.participant_id[: self.id_length]}"
        return "Unknown"
