from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from backend.config import utcnow
from backend.models.base import Base


class Response(Base):
    """Append-only log of submitted answers."""

    __tablename__ = "responses"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    player_id: Mapped[int] = mapped_column(ForeignKey("players.id"), nullable=False, index=True)
    card_id: Mapped[int] = mapped_column(ForeignKey("cards.id"), nullable=False)
    label: Mapped[str] = mapped_column(String(20), nullable=False)  # KNOW, REFRESHER
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
