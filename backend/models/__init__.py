"""SQLAlchemy ORM models for the Flashrooms database."""

from backend.models.base import Base
from backend.models.card import Card
from backend.models.deck import Deck
from backend.models.deck_run import DeckRun
from backend.models.player import Player
from backend.models.player_card_state import PlayerCardState
from backend.models.response import Response

__all__ = ["Base", "Card", "Deck", "DeckRun", "Player", "PlayerCardState", "Response"]
