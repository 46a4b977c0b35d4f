"""Boundary calls for live practice: next card, answer, progress.

Resolves run ids and player membership through the run directory, then
delegates to the Selector. Transport-agnostic; the API layer maps the
results and errors onto HTTP.
"""

from backend.engine.errors import PlayerNotFound, PlayerNotInRun, RunNotFound
from backend.engine.mastery import AnswerLabel
from backend.engine.runs import Run, check_run_open
from backend.engine.selector import AnswerResult, NextCard, Progress, Selector


class PracticeService:
    def __init__(self, selector: Selector) -> None:
        self.selector = selector
        self.runs = selector.runs

    async def _load_run(self, run_id: int) -> Run:
        run = await self.runs.get_run(run_id)
        if run is None:
            raise RunNotFound()
        return run

    async def _require_player(self, player_id: int, run_id: int) -> None:
        if await self.runs.get_player_run_id(player_id) != run_id:
            raise PlayerNotInRun()

    async def next(self, player_id: int, run_id: int) -> NextCard:
        """Return the next card for a player, or a finished signal."""
        run = await self._load_run(run_id)
        await check_run_open(run, self.runs, self.selector.clock())
        await self._require_player(player_id, run.id)
        return await self.selector.select_next(player_id, run)

    async def answer(
        self,
        player_id: int,
        run_id: int,
        card_id: int,
        label: AnswerLabel,
    ) -> AnswerResult:
        """Record an answer; rejected if the run ended or expired mid-flight."""
        run = await self._load_run(run_id)
        await check_run_open(run, self.runs, self.selector.clock())
        await self._require_player(player_id, run.id)
        return await self.selector.record_answer(player_id, card_id, label)

    async def progress(self, player_id: int, run_id: int) -> Progress:
        if await self.runs.get_player_run_id(player_id) != run_id:
            raise PlayerNotFound()
        return await self.selector.get_progress(player_id)
