"""Per-player mastery state for each card in a run snapshot."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.config import utcnow
from backend.models.base import Base


class PlayerCardState(Base):
    __tablename__ = "player_card_states"
    __table_args__ = (UniqueConstraint("player_id", "card_id", name="uq_player_card"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    player_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False, index=True)
    card_id: Mapped[int] = mapped_column(ForeignKey("cards.id"), nullable=False)
    know_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    refresher_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    weight: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    mastered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # bumped on every save
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    player: Mapped["Player"] = relationship(back_populates="card_states")  # type: ignore[name-defined] # noqa: F821
    card: Mapped["Card"] = relationship()  # type: ignore[name-defined] # noqa: F821
