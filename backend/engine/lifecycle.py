"""Run lifecycle: authoring a deck, starting a run, joining, ending, reporting.

A run freezes the deck's card ids at creation time. Every player who joins
gets one fresh card state per snapshot card, so later edits to the deck never
change what an in-progress run practises.
"""

import logging
import secrets
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import settings, utcnow
from backend.engine.errors import (
    DeckEmpty,
    DeckNotFound,
    DeckNotPublished,
    PlayerNotInRun,
    RunCodeUnavailable,
    RunNotFound,
)
from backend.engine.mastery import CardContent, CardState
from backend.engine.runs import RunStatus, check_run_open
from backend.engine.sql_store import SqlRunDirectory, run_from_row, state_from_row
from backend.models.card import Card
from backend.models.deck import Deck
from backend.models.deck_run import DeckRun
from backend.models.player import Player
from backend.models.player_card_state import PlayerCardState

logger = logging.getLogger(__name__)

# Crockford base32: no I, L, O or U, so codes read aloud unambiguously
CROCKFORD_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
MAX_CODE_ATTEMPTS = 5
MAX_NICKNAME_LENGTH = 32


def generate_run_code(length: int | None = None) -> str:
    """Return a random join code drawn from the Crockford alphabet."""
    length = length or settings.run_code_length
    return "".join(secrets.choice(CROCKFORD_ALPHABET) for _ in range(length))


@dataclass
class JoinResult:
    run_id: int
    player_id: int
    deck_title: str


@dataclass
class CardMetrics:
    """Aggregate answer counts for one card across all players of a deck."""

    card: CardContent
    total_know: int = 0
    total_refresher: int = 0
    mastered_players: int = 0
    total_players: int = 0
    average_know_to_mastery: float | None = None


@dataclass
class DeckAnalytics:
    cards: list[CardMetrics] = field(default_factory=list)
    players: int = 0
    responses: int = 0


# --- Authoring ---


async def create_deck(
    db: AsyncSession,
    title: str,
    description: str | None = None,
    language: str | None = None,
) -> Deck:
    deck = Deck(
        title=title.strip(),
        description=(description or "").strip() or None,
        language=(language or "").strip() or None,
    )
    db.add(deck)
    await db.commit()
    await db.refresh(deck)
    return deck


async def add_card(
    db: AsyncSession,
    deck_id: int,
    front: str,
    back: str,
    image_url: str | None = None,
) -> Card:
    deck = await db.get(Deck, deck_id)
    if deck is None:
        raise DeckNotFound()
    card = Card(deck_id=deck_id, front=front.strip(), back=back.strip(), image_url=image_url)
    db.add(card)
    await db.commit()
    await db.refresh(card)
    return card


async def set_published(db: AsyncSession, deck_id: int, is_published: bool) -> Deck:
    deck = await db.get(Deck, deck_id)
    if deck is None:
        raise DeckNotFound()
    deck.is_published = is_published
    await db.commit()
    return deck


# --- Runs ---


async def create_run(
    db: AsyncSession,
    deck_id: int,
    now: datetime | None = None,
    code_factory: Callable[[], str] = generate_run_code,
) -> DeckRun:
    """Start a run of a published deck.

    Args:
        db: Database session.
        deck_id: The deck to run.
        now: Current time (defaults to utcnow).
        code_factory: Produces candidate join codes.

    Returns:
        The created DeckRun.

    Raises:
        DeckNotFound, DeckNotPublished, DeckEmpty, RunCodeUnavailable
    """
    now = now or utcnow()
    deck = await db.get(Deck, deck_id)
    if deck is None:
        raise DeckNotFound()
    if not deck.is_published:
        raise DeckNotPublished()

    card_ids = list(
        (await db.execute(select(Card.id).where(Card.deck_id == deck_id).order_by(Card.id)))
        .scalars()
        .all()
    )
    if not card_ids:
        raise DeckEmpty()

    code = ""
    for _ in range(MAX_CODE_ATTEMPTS):
        candidate = code_factory().upper()
        taken = await db.execute(select(DeckRun.id).where(DeckRun.code == candidate))
        if taken.scalar_one_or_none() is None:
            code = candidate
            break
    if not code:
        raise RunCodeUnavailable()

    run = DeckRun(
        deck_id=deck_id,
        code=code,
        status=RunStatus.ACTIVE.value,
        expires_at=now + timedelta(minutes=settings.run_ttl_minutes),
        snapshot_card_ids=card_ids,
    )
    db.add(run)
    await db.commit()
    await db.refresh(run)

    logger.info(
        "Started run %d for deck %d: code %s, %d cards, expires %s",
        run.id,
        deck_id,
        code,
        len(card_ids),
        run.expires_at,
    )
    return run


async def join_run(
    db: AsyncSession,
    code: str,
    nickname: str | None = None,
    now: datetime | None = None,
) -> JoinResult:
    """Join a run by code, seeding one card state per snapshot card.

    Raises:
        RunNotFound: No run has this code.
        RunInactive, RunExpired: The run is not accepting players.
    """
    now = now or utcnow()
    stmt = select(DeckRun).where(DeckRun.code == code.strip().upper())
    row = (await db.execute(stmt)).scalar_one_or_none()
    if row is None:
        raise RunNotFound("Invalid or expired code.")

    await check_run_open(run_from_row(row), SqlRunDirectory(db), now)

    deck = await db.get(Deck, row.deck_id)
    cleaned = (nickname or "").strip()[:MAX_NICKNAME_LENGTH] or None
    player = Player(run_id=row.id, nickname=cleaned, created_at=now)
    db.add(player)
    await db.flush()

    for card_id in dict.fromkeys(row.snapshot_card_ids):
        db.add(PlayerCardState(player_id=player.id, card_id=card_id, updated_at=now))
    await db.commit()

    logger.info(
        "Player %d joined run %d with %d cards",
        player.id,
        row.id,
        len(row.snapshot_card_ids),
    )
    return JoinResult(run_id=row.id, player_id=player.id, deck_title=deck.title)


async def end_run(db: AsyncSession, run_id: int) -> DeckRun:
    run = await db.get(DeckRun, run_id)
    if run is None:
        raise RunNotFound()
    run.status = RunStatus.ENDED.value
    await db.commit()
    logger.info("Ended run %d", run_id)
    return run


async def run_summary(db: AsyncSession, player_id: int, run_id: int) -> list[CardContent]:
    """Return the player's cards in the order they were last practised."""
    player = await db.get(Player, player_id)
    if player is None or player.run_id != run_id:
        raise PlayerNotInRun()

    stmt = (
        select(Card)
        .join(PlayerCardState, PlayerCardState.card_id == Card.id)
        .where(PlayerCardState.player_id == player_id)
        .order_by(PlayerCardState.updated_at.asc(), PlayerCardState.id.asc())
    )
    cards = (await db.execute(stmt)).scalars().all()
    return [
        CardContent(id=c.id, front=c.front, back=c.back, image_url=c.image_url) for c in cards
    ]


# --- Analytics ---


def aggregate_deck_metrics(
    cards: Iterable[CardContent],
    states: Iterable[CardState],
) -> DeckAnalytics:
    """Fold per-player card states into per-card metrics.

    ``average_know_to_mastery`` is the mean know count among players who
    mastered the card, rounded to 2 places, or None if nobody has.
    """
    buckets: dict[int, CardMetrics] = {}
    mastered_know_sums: dict[int, int] = {}
    analytics = DeckAnalytics()
    for card in cards:
        metrics = CardMetrics(card=card)
        buckets[card.id] = metrics
        mastered_know_sums[card.id] = 0
        analytics.cards.append(metrics)

    player_ids: set[int] = set()
    for state in states:
        player_ids.add(state.player_id)
        analytics.responses += state.know_count + state.refresher_count
        metrics = buckets.get(state.card_id)
        if metrics is None:
            continue
        metrics.total_know += state.know_count
        metrics.total_refresher += state.refresher_count
        metrics.total_players += 1
        if state.mastered:
            metrics.mastered_players += 1
            mastered_know_sums[state.card_id] += state.know_count

    for card_id, metrics in buckets.items():
        if metrics.mastered_players:
            metrics.average_know_to_mastery = round(
                mastered_know_sums[card_id] / metrics.mastered_players, 2
            )

    analytics.players = len(player_ids)
    return analytics


async def deck_analytics(db: AsyncSession, deck_id: int) -> DeckAnalytics:
    if await db.get(Deck, deck_id) is None:
        raise DeckNotFound()

    cards = (
        await db.execute(
            select(Card).where(Card.deck_id == deck_id).order_by(Card.created_at.asc(), Card.id.asc())
        )
    ).scalars().all()
    states = (
        await db.execute(
            select(PlayerCardState)
            .join(Card, PlayerCardState.card_id == Card.id)
            .where(Card.deck_id == deck_id)
        )
    ).scalars().all()

    return aggregate_deck_metrics(
        [CardContent(id=c.id, front=c.front, back=c.back, image_url=c.image_url) for c in cards],
        [state_from_row(s, include_card=False) for s in states],
    )
