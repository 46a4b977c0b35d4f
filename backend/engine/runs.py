"""Run value object, status gate and the run directory collaborator."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from backend.engine.errors import RunExpired, RunInactive

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    ENDED = "ENDED"


@dataclass(frozen=True)
class Run:
    """The engine's view of a deck run."""

    id: int
    status: RunStatus
    expires_at: datetime
    card_ids: frozenset[int] = field(default_factory=frozenset)


class RunDirectory(ABC):
    """Lookup and status updates for runs and their players.

    Owned by run management; the engine only reads runs, resolves player
    membership, and asks for expired runs to be marked as such.
    """

    @abstractmethod
    async def get_run(self, run_id: int) -> Run | None:
        ...

    @abstractmethod
    async def get_player_run_id(self, player_id: int) -> int | None:
        """Return the run a player joined, or None for an unknown player."""
        ...

    @abstractmethod
    async def mark_expired(self, run_id: int) -> None:
        ...


async def check_run_open(run: Run, runs: RunDirectory, now: datetime) -> None:
    """Raise unless the run is accepting practice.

    An active run past its expiry is transitioned to EXPIRED first.
    """
    if RunStatus(run.status) is not RunStatus.ACTIVE:
        raise RunInactive()
    if run.expires_at < now:
        logger.info("Run %d expired at %s, marking EXPIRED", run.id, run.expires_at)
        await runs.mark_expired(run.id)
        raise RunExpired()
