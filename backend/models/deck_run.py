"""A time-boxed practice run of a published deck."""

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


class DeckRun(Base, TimestampMixin):
    __tablename__ = "deck_runs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    deck_id: Mapped[int] = mapped_column(ForeignKey("decks.id"), nullable=False)
    code: Mapped[str] = mapped_column(String(12), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="ACTIVE"
    )  # ACTIVE, EXPIRED, ENDED
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    snapshot_card_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)

    deck: Mapped["Deck"] = relationship(back_populates="runs")  # type: ignore[name-defined] # noqa: F821
    players: Mapped[list["Player"]] = relationship(back_populates="run")  # type: ignore[name-defined] # noqa: F821
