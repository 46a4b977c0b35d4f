"""Pydantic schemas for API request/response models."""

from datetime import datetime

from pydantic import BaseModel, Field

from backend.config import settings
from backend.engine.mastery import AnswerLabel, CardContent


def resolve_image_url(ref: str | None) -> str | None:
    """Turn a stored image key into a URL; full URLs pass through untouched."""
    if not ref:
        return None
    if ref.startswith(("http://", "https://")) or not settings.image_base_url:
        return ref
    return f"{settings.image_base_url.rstrip('/')}/{ref.lstrip('/')}"


# --- Decks ---


class DeckCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=500)
    language: str | None = Field(default=None, min_length=2, max_length=10)


class DeckResponse(BaseModel):
    id: int
    title: str
    description: str | None
    language: str | None
    is_published: bool


class CardCreateRequest(BaseModel):
    front: str = Field(min_length=1, max_length=400)
    back: str = Field(min_length=1, max_length=400)
    image_url: str | None = Field(default=None, max_length=1000)


class PublishRequest(BaseModel):
    is_published: bool


class CardResponse(BaseModel):
    """Card content as shown to players."""

    id: int
    front: str
    back: str
    image_url: str | None = None

    @classmethod
    def from_content(cls, card: CardContent) -> "CardResponse":
        return cls(
            id=card.id,
            front=card.front,
            back=card.back,
            image_url=resolve_image_url(card.image_url),
        )


class CardMetricsResponse(BaseModel):
    card: CardResponse
    total_know: int
    total_refresher: int
    mastered_players: int
    total_players: int
    average_know_to_mastery: float | None


class DeckAnalyticsResponse(BaseModel):
    """Per-card answer aggregates for every run of a deck."""

    cards: list[CardMetricsResponse]
    players: int
    responses: int


# --- Runs ---


class RunCreateResponse(BaseModel):
    id: int
    code: str
    expires_at: datetime


class RunEndResponse(BaseModel):
    id: int
    status: str


class JoinRequest(BaseModel):
    code: str = Field(min_length=4, max_length=12)
    nickname: str | None = Field(default=None, min_length=1, max_length=32)


class JoinResponse(BaseModel):
    run_id: int
    player_id: int
    deck_title: str


class CardStatsResponse(BaseModel):
    know_count: int
    refresher_count: int


class NextCardResponse(BaseModel):
    """The next card to practise, or ``finished`` once everything is mastered."""

    finished: bool = False
    card: CardResponse | None = None
    stats: CardStatsResponse | None = None


class AnswerRequest(BaseModel):
    player_id: int
    card_id: int
    label: AnswerLabel


class ProgressResponse(BaseModel):
    mastered_count: int
    total: int
    finished: bool


class AnswerResponse(BaseModel):
    mastered: bool
    progress: ProgressResponse


class SummaryResponse(BaseModel):
    cards: list[CardResponse]
