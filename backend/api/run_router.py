"""API routes for live practice runs."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import (
    AnswerRequest,
    AnswerResponse,
    CardResponse,
    CardStatsResponse,
    JoinRequest,
    JoinResponse,
    NextCardResponse,
    ProgressResponse,
    RunEndResponse,
    SummaryResponse,
)
from backend.database import get_session
from backend.engine.lifecycle import end_run, join_run, run_summary
from backend.engine.practice import PracticeService
from backend.engine.selector import Progress, Selector
from backend.engine.sql_store import SqlRunDirectory, SqlStateStore

router = APIRouter(prefix="/api/run", tags=["run"])


def get_practice(db: AsyncSession = Depends(get_session)) -> PracticeService:
    """Build a request-scoped practice service over the request's session."""
    selector = Selector(store=SqlStateStore(db), runs=SqlRunDirectory(db))
    return PracticeService(selector)


def _progress_response(progress: Progress) -> ProgressResponse:
    return ProgressResponse(
        mastered_count=progress.mastered_count,
        total=progress.total,
        finished=progress.finished,
    )


@router.post("/join", response_model=JoinResponse)
async def run_join(
    request: JoinRequest,
    db: AsyncSession = Depends(get_session),
) -> JoinResponse:
    """Join a run by code and get a player id."""
    result = await join_run(db, request.code, request.nickname)
    return JoinResponse(
        run_id=result.run_id,
        player_id=result.player_id,
        deck_title=result.deck_title,
    )


@router.get("/{run_id}/next", response_model=NextCardResponse)
async def run_next(
    run_id: int,
    player_id: int,
    practice: PracticeService = Depends(get_practice),
) -> NextCardResponse:
    """Get the next card for a player."""
    next_card = await practice.next(player_id, run_id)
    if next_card.finished or next_card.card is None:
        return NextCardResponse(finished=True)

    return NextCardResponse(
        card=CardResponse.from_content(next_card.card),
        stats=CardStatsResponse(
            know_count=next_card.stats.know_count,
            refresher_count=next_card.stats.refresher_count,
        ),
    )


@router.post("/{run_id}/answer", response_model=AnswerResponse)
async def run_answer(
    run_id: int,
    request: AnswerRequest,
    practice: PracticeService = Depends(get_practice),
) -> AnswerResponse:
    """Record a KNOW or REFRESHER answer for a card."""
    result = await practice.answer(request.player_id, run_id, request.card_id, request.label)
    return AnswerResponse(
        mastered=result.mastered,
        progress=_progress_response(result.progress),
    )


@router.get("/{run_id}/progress", response_model=ProgressResponse)
async def run_progress(
    run_id: int,
    player_id: int,
    practice: PracticeService = Depends(get_practice),
) -> ProgressResponse:
    """Get how many of the player's cards are mastered."""
    return _progress_response(await practice.progress(player_id, run_id))


@router.get("/{run_id}/summary", response_model=SummaryResponse)
async def run_summary_view(
    run_id: int,
    player_id: int,
    db: AsyncSession = Depends(get_session),
) -> SummaryResponse:
    """List the player's cards in the order they were last practised."""
    cards = await run_summary(db, player_id, run_id)
    return SummaryResponse(cards=[CardResponse.from_content(c) for c in cards])


@router.post("/{run_id}/end", response_model=RunEndResponse)
async def run_end(
    run_id: int,
    db: AsyncSession = Depends(get_session),
) -> RunEndResponse:
    """End a run; further next/answer calls are rejected."""
    run = await end_run(db, run_id)
    return RunEndResponse(id=run.id, status=run.status)
