from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.config import utcnow
from backend.models.base import Base


class Player(Base):
    __tablename__ = "players"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    run_id: Mapped[int] = mapped_column(ForeignKey("deck_runs.id"), nullable=False)
    nickname: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    run: Mapped["DeckRun"] = relationship(back_populates="players")  # type: ignore[name-defined] # noqa: F821
    card_states: Mapped[list["PlayerCardState"]] = relationship(back_populates="player")  # type: ignore[name-defined] # noqa: F821
