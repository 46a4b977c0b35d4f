"""Flashcard content owned by a deck."""

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class Card(Base, TimestampMixin):
    """A front/back card. The practice engine only ever reads it."""

    __tablename__ = "cards"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    deck_id: Mapped[int] = mapped_column(ForeignKey("decks.id"), nullable=False)
    front: Mapped[str] = mapped_column(String(400), nullable=False)
    back: Mapped[str] = mapped_column(String(400), nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)  # storage key or URL

    deck: Mapped["Deck"] = relationship(back_populates="cards")  # type: ignore[name-defined] # noqa: F821
