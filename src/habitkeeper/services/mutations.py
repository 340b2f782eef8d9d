"""Pending-mutation state machine for optimistic updates.

A mutation moves ``APPLIED -> PENDING -> CONFIRMED | ROLLED_BACK``: the local
change is applied, the store call is dispatched, then the outcome settles it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

from ..errors import InvalidTransition


class MutationKind(str, Enum):
    MARK = "mark"
    UNMARK = "unmark"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class MutationState(str, Enum):
    APPLIED = "applied"
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ROLLED_BACK = "rolled_back"


_TRANSITIONS: dict[MutationState, frozenset[MutationState]] = {
    MutationState.APPLIED: frozenset({MutationState.PENDING}),
    MutationState.PENDING: frozenset({MutationState.CONFIRMED, MutationState.ROLLED_BACK}),
    MutationState.CONFIRMED: frozenset(),
    MutationState.ROLLED_BACK: frozenset(),
}


@dataclass
class PendingMutation:
    """One optimistic change and the states it has passed through."""

    kind: MutationKind
    habit_id: Optional[int] = None
    day: Optional[date] = None
    state: MutationState = MutationState.APPLIED
    trail: list[MutationState] = field(default_factory=lambda: [MutationState.APPLIED])

    @property
    def settled(self) -> bool:
        return not _TRANSITIONS[self.state]

    def advance(self, new_state: MutationState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransition(
                f"{self.kind.value} mutation cannot move from {self.state.value} to {new_state.value}"
            )
        self.state = new_state
        self.trail.append(new_state)

    def dispatch(self) -> None:
        self.advance(MutationState.PENDING)

    def confirm(self) -> None:
        self.advance(MutationState.CONFIRMED)

    def roll_back(self) -> None:
        self.advance(MutationState.ROLLED_BACK)


__all__ = ["MutationKind", "MutationState", "PendingMutation"]
