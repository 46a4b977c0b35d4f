"""Next-card selection, answer recording and progress for practice runs.

Selection strategy:
- Only unmastered cards are candidates
- The last RECENT_WINDOW distinct cards answered are held back, so a card
  never comes straight back, unless that would leave nothing to show
- Among the rest, roulette-wheel sampling by weight: cards answered
  REFRESHER carry more weight and resurface sooner
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_random

from backend.config import settings, utcnow
from backend.engine.errors import ConcurrencyConflict, StaleStateError, StateNotFound
from backend.engine.mastery import AnswerLabel, CardContent, CardState, apply_answer
from backend.engine.runs import Run, RunDirectory, check_run_open
from backend.engine.store import RecentResponse, StateStore

logger = logging.getLogger(__name__)

RECENT_WINDOW = 3  # distinct cards held back after being answered
RECENT_SCAN_LIMIT = 20  # responses read to find RECENT_WINDOW distinct cards


@dataclass(frozen=True)
class CardStats:
    know_count: int
    refresher_count: int


@dataclass(frozen=True)
class NextCard:
    """Either the card to show next, or a finished signal."""

    finished: bool = False
    card: CardContent | None = None
    stats: CardStats | None = None


@dataclass(frozen=True)
class Progress:
    mastered_count: int
    total: int

    @property
    def finished(self) -> bool:
        return self.mastered_count >= self.total and self.total > 0


@dataclass(frozen=True)
class AnswerResult:
    mastered: bool
    progress: Progress


def recent_distinct_card_ids(
    responses: Iterable[RecentResponse], window: int = RECENT_WINDOW
) -> set[int]:
    """Collect the first ``window`` distinct card ids from most-recent-first responses."""
    seen: list[int] = []
    for response in responses:
        if response.card_id not in seen:
            seen.append(response.card_id)
            if len(seen) >= window:
                break
    return set(seen)


def exclude_recent(candidates: Sequence[CardState], recent_ids: set[int]) -> list[CardState]:
    """Drop recently answered cards, falling back to all candidates if none would remain."""
    remaining = [c for c in candidates if c.card_id not in recent_ids]
    return remaining or list(candidates)


def weighted_choice(candidates: Sequence[CardState], rng: random.Random) -> CardState:
    """Pick a candidate with probability proportional to its weight.

    Walks the candidates in order, subtracting each weight from a roll drawn
    in [0, total weight]; the first candidate that brings the roll to zero or
    below wins. The last candidate absorbs float rounding.
    """
    if not candidates:
        raise ValueError("weighted_choice requires at least one candidate")

    total_weight = sum(c.weight for c in candidates)
    roll = rng.uniform(0, total_weight)
    for candidate in candidates:
        roll -= candidate.weight
        if roll <= 0:
            return candidate
    return candidates[-1]


class Selector:
    """Chooses cards for a player and records their answers.

    Stateless between calls: each method is a short unit of work against the
    store, safe to run concurrently for the same or different players.
    """

    def __init__(
        self,
        store: StateStore,
        runs: RunDirectory,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the selector with its collaborators.

        Args:
            store: Card state and response persistence.
            runs: Run lookup, used to mark runs that have expired.
            rng: Random source for sampling (defaults to a fresh Random).
            clock: Returns the current naive UTC time.
        """
        self.store = store
        self.runs = runs
        self.rng = rng or random.Random()
        self.clock = clock

    async def select_next(self, player_id: int, run: Run) -> NextCard:
        """Choose the next card to present to a player.

        Raises:
            RunInactive: The run has ended or already expired.
            RunExpired: The run passed its expiry during this call.
        """
        await check_run_open(run, self.runs, self.clock())

        candidates = await self.store.list_unmastered(player_id)
        if not candidates:
            logger.info("Player %d finished run %d", player_id, run.id)
            return NextCard(finished=True)

        if len(candidates) > RECENT_WINDOW:
            responses = await self.store.recent_responses(player_id, RECENT_SCAN_LIMIT)
            candidates = exclude_recent(candidates, recent_distinct_card_ids(responses))

        selected = weighted_choice(candidates, self.rng)
        logger.debug(
            "Selected card %d for player %d from %d candidates (weight %.2f)",
            selected.card_id,
            player_id,
            len(candidates),
            selected.weight,
        )
        return NextCard(
            card=selected.card,
            stats=CardStats(
                know_count=selected.know_count,
                refresher_count=selected.refresher_count,
            ),
        )

    async def get_progress(self, player_id: int) -> Progress:
        """Return how many of the player's cards are mastered."""
        mastered_count = await self.store.count_mastered(player_id)
        total = await self.store.count_total(player_id)
        return Progress(mastered_count=mastered_count, total=total)

    async def record_answer(
        self, player_id: int, card_id: int, label: AnswerLabel
    ) -> AnswerResult:
        """Apply an answer to the player's card state and report progress.

        Raises:
            StateNotFound: The card is not in this player's snapshot.
            ConcurrencyConflict: Concurrent writes kept invalidating the update.
        """
        try:
            updated = await self._record_once(player_id, card_id, AnswerLabel(label))
        except StaleStateError as exc:
            logger.error(
                "Giving up on answer for player %d card %d after %d attempts",
                player_id,
                card_id,
                settings.answer_max_attempts,
            )
            raise ConcurrencyConflict() from exc

        progress = await self.get_progress(player_id)
        if progress.finished:
            logger.info("Player %d mastered all %d cards", player_id, progress.total)
        return AnswerResult(mastered=updated.mastered, progress=progress)

    @retry(
        retry=retry_if_exception_type(StaleStateError),
        stop=stop_after_attempt(settings.answer_max_attempts),
        wait=wait_random(min=0, max=0.05),
        before_sleep=lambda state: logger.warning(
            "Stale card state, retrying answer (attempt %d)", state.attempt_number
        ),
        reraise=True,
    )
    async def _record_once(self, player_id: int, card_id: int, label: AnswerLabel) -> CardState:
        async with self.store.atomic(player_id, card_id):
            state = await self.store.get_state(player_id, card_id)
            if state is None:
                raise StateNotFound()
            updated = apply_answer(state, label)
            await self.store.save_state(updated)
            await self.store.append_response(player_id, card_id, label)
        return updated
