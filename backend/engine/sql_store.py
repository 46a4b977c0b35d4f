"""SQLAlchemy implementations of the engine's storage collaborators."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.config import utcnow
from backend.engine.errors import StaleStateError
from backend.engine.mastery import AnswerLabel, CardContent, CardState
from backend.engine.runs import Run, RunDirectory, RunStatus
from backend.engine.store import RecentResponse, StateStore
from backend.models.deck_run import DeckRun
from backend.models.player import Player
from backend.models.player_card_state import PlayerCardState
from backend.models.response import Response

logger = logging.getLogger(__name__)


def state_from_row(row: PlayerCardState, include_card: bool = True) -> CardState:
    """Convert an ORM row; ``include_card`` requires the card relationship to be loaded."""
    card = None
    if include_card and row.card is not None:
        card = CardContent(
            id=row.card.id,
            front=row.card.front,
            back=row.card.back,
            image_url=row.card.image_url,
        )
    return CardState(
        player_id=row.player_id,
        card_id=row.card_id,
        know_count=row.know_count,
        refresher_count=row.refresher_count,
        weight=row.weight,
        mastered=row.mastered,
        version=row.version,
        updated_at=row.updated_at,
        card=card,
    )


def run_from_row(row: DeckRun) -> Run:
    return Run(
        id=row.id,
        status=RunStatus(row.status),
        expires_at=row.expires_at,
        card_ids=frozenset(row.snapshot_card_ids or ()),
    )


class SqlStateStore(StateStore):
    """State store over a single request-scoped AsyncSession.

    Inside ``atomic`` the state read takes a row lock (``SELECT ... FOR UPDATE``)
    on backends that support it; every save is additionally conditional on the
    version it was read at, so a lost race surfaces as ``StaleStateError``.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the store with a database session."""
        self.session = session
        self._lock_reads = False

    async def get_state(self, player_id: int, card_id: int) -> CardState | None:
        stmt = (
            select(PlayerCardState)
            .where(
                and_(
                    PlayerCardState.player_id == player_id,
                    PlayerCardState.card_id == card_id,
                )
            )
            .options(selectinload(PlayerCardState.card))
            .execution_options(populate_existing=True)
        )
        if self._lock_reads:
            stmt = stmt.with_for_update()
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        return state_from_row(row) if row is not None else None

    async def list_unmastered(self, player_id: int) -> list[CardState]:
        stmt = (
            select(PlayerCardState)
            .where(
                and_(
                    PlayerCardState.player_id == player_id,
                    PlayerCardState.mastered.is_(False),
                )
            )
            .order_by(PlayerCardState.card_id.asc())
            .options(selectinload(PlayerCardState.card))
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return [state_from_row(row) for row in result.scalars().all()]

    async def save_state(self, state: CardState) -> None:
        now = utcnow()
        stmt = (
            update(PlayerCardState)
            .where(
                and_(
                    PlayerCardState.player_id == state.player_id,
                    PlayerCardState.card_id == state.card_id,
                    PlayerCardState.version == state.version,
                )
            )
            .values(
                know_count=state.know_count,
                refresher_count=state.refresher_count,
                weight=state.weight,
                mastered=state.mastered,
                version=state.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount:
            return

        exists_stmt = select(func.count(PlayerCardState.id)).where(
            and_(
                PlayerCardState.player_id == state.player_id,
                PlayerCardState.card_id == state.card_id,
            )
        )
        if (await self.session.execute(exists_stmt)).scalar():
            raise StaleStateError()

        self.session.add(
            PlayerCardState(
                player_id=state.player_id,
                card_id=state.card_id,
                know_count=state.know_count,
                refresher_count=state.refresher_count,
                weight=state.weight,
                mastered=state.mastered,
                version=state.version + 1,
                updated_at=now,
            )
        )
        await self.session.flush()

    async def append_response(self, player_id: int, card_id: int, label: AnswerLabel) -> None:
        self.session.add(
            Response(player_id=player_id, card_id=card_id, label=AnswerLabel(label).value)
        )
        await self.session.flush()

    async def recent_responses(self, player_id: int, limit: int) -> list[RecentResponse]:
        stmt = (
            select(Response.card_id, Response.created_at)
            .where(Response.player_id == player_id)
            .order_by(Response.created_at.desc(), Response.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [RecentResponse(card_id=row.card_id, created_at=row.created_at) for row in result.all()]

    async def count_mastered(self, player_id: int) -> int:
        stmt = select(func.count(PlayerCardState.id)).where(
            and_(
                PlayerCardState.player_id == player_id,
                PlayerCardState.mastered.is_(True),
            )
        )
        return (await self.session.execute(stmt)).scalar() or 0

    async def count_total(self, player_id: int) -> int:
        stmt = select(func.count(PlayerCardState.id)).where(PlayerCardState.player_id == player_id)
        return (await self.session.execute(stmt)).scalar() or 0

    @asynccontextmanager
    async def atomic(self, player_id: int, card_id: int) -> AsyncIterator[None]:
        self._lock_reads = True
        try:
            yield
        except BaseException:
            await self.session.rollback()
            logger.debug("Rolled back answer for player %d card %d", player_id, card_id)
            raise
        else:
            await self.session.commit()
        finally:
            self._lock_reads = False


class SqlRunDirectory(RunDirectory):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_run(self, run_id: int) -> Run | None:
        row = await self.session.get(DeckRun, run_id, populate_existing=True)
        return run_from_row(row) if row is not None else None

    async def get_player_run_id(self, player_id: int) -> int | None:
        stmt = select(Player.run_id).where(Player.id == player_id)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def mark_expired(self, run_id: int) -> None:
        await self.session.execute(
            update(DeckRun)
            .where(DeckRun.id == run_id)
            .values(status=RunStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
