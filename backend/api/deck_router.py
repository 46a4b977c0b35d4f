"""API routes for deck authoring, starting runs and deck analytics."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.schemas import (
    CardCreateRequest,
    CardMetricsResponse,
    CardResponse,
    DeckAnalyticsResponse,
    DeckCreateRequest,
    DeckResponse,
    PublishRequest,
    RunCreateResponse,
)
from backend.database import get_session
from backend.engine.lifecycle import add_card, create_deck, create_run, deck_analytics, set_published
from backend.engine.mastery import CardContent
from backend.models.deck import Deck

router = APIRouter(prefix="/api/decks", tags=["decks"])


def _deck_response(deck: Deck) -> DeckResponse:
    return DeckResponse(
        id=deck.id,
        title=deck.title,
        description=deck.description,
        language=deck.language,
        is_published=deck.is_published,
    )


@router.post("", response_model=DeckResponse, status_code=201)
async def deck_create(
    request: DeckCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> DeckResponse:
    deck = await create_deck(db, request.title, request.description, request.language)
    return _deck_response(deck)


@router.post("/{deck_id}/cards", response_model=CardResponse, status_code=201)
async def deck_add_card(
    deck_id: int,
    request: CardCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> CardResponse:
    card = await add_card(db, deck_id, request.front, request.back, request.image_url)
    return CardResponse.from_content(
        CardContent(id=card.id, front=card.front, back=card.back, image_url=card.image_url)
    )


@router.post("/{deck_id}/publish", response_model=DeckResponse)
async def deck_publish(
    deck_id: int,
    request: PublishRequest,
    db: AsyncSession = Depends(get_session),
) -> DeckResponse:
    deck = await set_published(db, deck_id, request.is_published)
    return _deck_response(deck)


@router.post("/{deck_id}/run", response_model=RunCreateResponse, status_code=201)
async def deck_start_run(
    deck_id: int,
    db: AsyncSession = Depends(get_session),
) -> RunCreateResponse:
    """Start a time-boxed run of a published deck."""
    run = await create_run(db, deck_id)
    return RunCreateResponse(id=run.id, code=run.code, expires_at=run.expires_at)


@router.get("/{deck_id}/analytics", response_model=DeckAnalyticsResponse)
async def deck_analytics_view(
    deck_id: int,
    db: AsyncSession = Depends(get_session),
) -> DeckAnalyticsResponse:
    """Per-card know/refresher totals and mastery across all players."""
    analytics = await deck_analytics(db, deck_id)
    return DeckAnalyticsResponse(
        cards=[
            CardMetricsResponse(
                card=CardResponse.from_content(m.card),
                total_know=m.total_know,
                total_refresher=m.total_refresher,
                mastered_players=m.mastered_players,
                total_players=m.total_players,
                average_know_to_mastery=m.average_know_to_mastery,
            )
            for m in analytics.cards
        ],
        players=analytics.players,
        responses=analytics.responses,
    )
