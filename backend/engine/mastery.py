"""Mastery tracking for practice runs.

Each answer moves a card's sampling weight: a correct ("know") answer halves
it, a "needs review" answer adds a fixed boost. Weight stays within
[MIN_WEIGHT, MAX_WEIGHT]. A card is mastered once it has been known
MASTERY_THRESHOLD times, after which it leaves the player's practice pool.

Key concepts:
- Weight: relative likelihood of a card being drawn next.
- Know count: cumulative correct answers; never decreases.
- Mastered: derived from know count, never set independently.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

MASTERY_THRESHOLD = 3
INITIAL_WEIGHT = 1.0
MIN_WEIGHT = 0.2
MAX_WEIGHT = 5.0
KNOW_DECAY = 0.5  # multiplier on a correct answer
REFRESHER_BOOST = 0.75  # additive on a review answer


class AnswerLabel(str, Enum):
    """How the player rated their recall of a card."""

    KNOW = "KNOW"
    REFRESHER = "REFRESHER"


@dataclass(frozen=True)
class CardContent:
    """Read-only card fields shown to a player."""

    id: int
    front: str
    back: str
    image_url: str | None = None


@dataclass(frozen=True)
class CardState:
    """A player's practice state for a single card."""

    player_id: int
    card_id: int
    know_count: int = 0
    refresher_count: int = 0
    weight: float = INITIAL_WEIGHT
    mastered: bool = False
    version: int = 0  # optimistic concurrency token, bumped by the store
    updated_at: datetime | None = None
    card: CardContent | None = None


def is_mastered(know_count: int) -> bool:
    return know_count >= MASTERY_THRESHOLD


def apply_answer(state: CardState, label: AnswerLabel) -> CardState:
    """Return the state that results from answering a card.

    Pure and total: the caller persists the result and logs the response.

    Args:
        state: The state as currently persisted.
        label: KNOW or REFRESHER.

    Returns:
        A new CardState with updated counts, weight and mastered flag.
    """
    label = AnswerLabel(label)
    know_count = state.know_count
    refresher_count = state.refresher_count

    if label is AnswerLabel.KNOW:
        know_count += 1
        weight = max(MIN_WEIGHT, state.weight * KNOW_DECAY)
    else:
        refresher_count += 1
        weight = min(MAX_WEIGHT, state.weight + REFRESHER_BOOST)

    return replace(
        state,
        know_count=know_count,
        refresher_count=refresher_count,
        weight=weight,
        mastered=is_mastered(know_count),
    )
