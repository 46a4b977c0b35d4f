"""State store boundary for the practice engine.

The engine reads and writes per-player card state and the response log only
through ``StateStore``. Writes for one answer happen inside
``atomic(player_id, card_id)``, which serializes read-modify-write for that
key and applies the state save and response append together or not at all.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime

from backend.config import utcnow
from backend.engine.errors import StaleStateError
from backend.engine.mastery import AnswerLabel, CardContent, CardState
from backend.engine.runs import Run, RunDirectory, RunStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecentResponse:
    card_id: int
    created_at: datetime


class StateStore(ABC):
    """Persistence for card states and responses."""

    @abstractmethod
    async def get_state(self, player_id: int, card_id: int) -> CardState | None:
        ...

    @abstractmethod
    async def list_unmastered(self, player_id: int) -> list[CardState]:
        """Return unmastered states ordered by card id, with card content attached."""
        ...

    @abstractmethod
    async def save_state(self, state: CardState) -> None:
        """Upsert a state.

        Raises:
            StaleStateError: if the stored version no longer matches ``state.version``.
        """
        ...

    @abstractmethod
    async def append_response(self, player_id: int, card_id: int, label: AnswerLabel) -> None:
        ...

    @abstractmethod
    async def recent_responses(self, player_id: int, limit: int) -> list[RecentResponse]:
        """Return the player's latest responses, most recent first."""
        ...

    @abstractmethod
    async def count_mastered(self, player_id: int) -> int:
        ...

    @abstractmethod
    async def count_total(self, player_id: int) -> int:
        ...

    @abstractmethod
    def atomic(self, player_id: int, card_id: int) -> AbstractAsyncContextManager[None]:
        """Async context manager wrapping one answer's read-modify-write."""
        ...


@dataclass
class InMemoryStateStore(StateStore):
    """Single-process store backed by dicts and per-key asyncio locks."""

    states: dict[tuple[int, int], CardState] = field(default_factory=dict)
    cards: dict[int, CardContent] = field(default_factory=dict)
    responses: list[tuple[int, int, AnswerLabel, datetime]] = field(default_factory=list)
    _locks: defaultdict[tuple[int, int], asyncio.Lock] = field(
        default_factory=lambda: defaultdict(asyncio.Lock), init=False, repr=False
    )

    def seed(self, player_id: int, cards: list[CardContent]) -> None:
        """Create a fresh state for each card, as joining a run does."""
        now = utcnow()
        for card in cards:
            self.cards[card.id] = card
            self.states.setdefault(
                (player_id, card.id),
                CardState(player_id=player_id, card_id=card.id, updated_at=now),
            )

    async def get_state(self, player_id: int, card_id: int) -> CardState | None:
        await asyncio.sleep(0)
        state = self.states.get((player_id, card_id))
        if state is None:
            return None
        return replace(state, card=self.cards.get(card_id))

    async def list_unmastered(self, player_id: int) -> list[CardState]:
        await asyncio.sleep(0)
        return [
            replace(state, card=self.cards.get(card_id))
            for (pid, card_id), state in sorted(self.states.items())
            if pid == player_id and not state.mastered
        ]

    async def save_state(self, state: CardState) -> None:
        key = (state.player_id, state.card_id)
        current = self.states.get(key)
        if current is not None and current.version != state.version:
            raise StaleStateError()
        self.states[key] = replace(state, version=state.version + 1, updated_at=utcnow(), card=None)

    async def append_response(self, player_id: int, card_id: int, label: AnswerLabel) -> None:
        self.responses.append((player_id, card_id, AnswerLabel(label), utcnow()))

    async def recent_responses(self, player_id: int, limit: int) -> list[RecentResponse]:
        await asyncio.sleep(0)
        mine = [
            RecentResponse(card_id=card_id, created_at=created_at)
            for pid, card_id, _, created_at in reversed(self.responses)
            if pid == player_id
        ]
        return mine[:limit]

    async def count_mastered(self, player_id: int) -> int:
        return sum(1 for (pid, _), s in self.states.items() if pid == player_id and s.mastered)

    async def count_total(self, player_id: int) -> int:
        return sum(1 for pid, _ in self.states if pid == player_id)

    @asynccontextmanager
    async def atomic(self, player_id: int, card_id: int) -> AsyncIterator[None]:
        key = (player_id, card_id)
        async with self._locks[key]:
            saved_state = self.states.get(key)
            saved_responses = len(self.responses)
            try:
                yield
            except BaseException:
                if saved_state is None:
                    self.states.pop(key, None)
                else:
                    self.states[key] = saved_state
                self.responses[saved_responses:] = [
                    r for r in self.responses[saved_responses:] if (r[0], r[1]) != key
                ]
                logger.debug("Rolled back answer for player %d card %d", player_id, card_id)
                raise


@dataclass
class InMemoryRunDirectory(RunDirectory):
    runs: dict[int, Run] = field(default_factory=dict)
    players: dict[int, int] = field(default_factory=dict)  # player id -> run id

    async def get_run(self, run_id: int) -> Run | None:
        return self.runs.get(run_id)

    async def get_player_run_id(self, player_id: int) -> int | None:
        return self.players.get(player_id)

    async def mark_expired(self, run_id: int) -> None:
        run = self.runs.get(run_id)
        if run is not None:
            self.runs[run_id] = replace(run, status=RunStatus.EXPIRED)
