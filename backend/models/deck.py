from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class Deck(Base, TimestampMixin):
    __tablename__ = "decks"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    language: Mapped[str | None] = mapped_column(String(10), nullable=True)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    cards: Mapped[list["Card"]] = relationship(back_populates="deck", order_by="Card.id")  # type: ignore[name-defined] # noqa: F821
    runs: Mapped[list["DeckRun"]] = relationship(back_populates="deck")  # type: ignore[name-defined] # noqa: F821
