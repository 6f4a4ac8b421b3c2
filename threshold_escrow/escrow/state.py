"""Reveal request lifecycle."""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Optional

from .errors import InvalidStateTransition


class RevealPhase(str, Enum):
    CREATED = "created"
    REVEAL_REQUESTED = "reveal_requested"
    VOTING = "voting"
    APPROVED = "approved"
    SHARES_COLLECTED = "shares_collected"
    RECONSTRUCTED = "reconstructed"
    FINALIZED = "finalized"
    REJECTED = "rejected"
    EXPIRED = "expired"

    def __str__(self) -> str:
        return self.value


TRANSITIONS: Dict[RevealPhase, FrozenSet[RevealPhase]] = {
    RevealPhase.CREATED: frozenset({RevealPhase.REVEAL_REQUESTED}),
    RevealPhase.REVEAL_REQUESTED: frozenset({RevealPhase.VOTING, RevealPhase.EXPIRED}),
    RevealPhase.VOTING: frozenset(
        {RevealPhase.APPROVED, RevealPhase.REJECTED, RevealPhase.EXPIRED}
    ),
    RevealPhase.APPROVED: frozenset({RevealPhase.SHARES_COLLECTED}),
    RevealPhase.SHARES_COLLECTED: frozenset({RevealPhase.RECONSTRUCTED}),
    RevealPhase.RECONSTRUCTED: frozenset({RevealPhase.FINALIZED}),
    RevealPhase.FINALIZED: frozenset(),
    RevealPhase.REJECTED: frozenset(),
    RevealPhase.EXPIRED: frozenset(),
}

TERMINAL_PHASES = frozenset(phase for phase, nxt in TRANSITIONS.items() if not nxt)
OPEN_FOR_VOTING = frozenset({RevealPhase.REVEAL_REQUESTED, RevealPhase.VOTING})
OPEN_FOR_SHARES = frozenset({RevealPhase.APPROVED, RevealPhase.SHARES_COLLECTED})


def can_transition(current: RevealPhase, target: RevealPhase) -> bool:
    return target in TRANSITIONS[current]


def advance(current: RevealPhase, target: RevealPhase) -> RevealPhase:
    """Return ``target`` if the edge exists, else raise InvalidStateTransition."""
    if not can_transition(current, target):
        raise InvalidStateTransition(current, target)
    return target


def tally_outcome(
    approvals: int, rejections: int, threshold: int, total: int
) -> Optional[RevealPhase]:
    """
    Decide a vote once it is settled.

    Approved when approvals reach the threshold; rejected once enough holders
    have said no that the threshold can no longer be reached. ``None`` while
    the outcome is still open.
    """
    if approvals >= threshold:
        return RevealPhase.APPROVED
    if rejections > total - threshold:
        return RevealPhase.REJECTED
    return None
