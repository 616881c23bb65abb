from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.sql_types import ELEMENT_ID_LIST_SQL_TYPE
from app.utils.timestamps import utcnow


class UserGameStat(Base):
    """Per-user standing in a game. No PII beyond the partner's external id."""

    __tablename__ = "user_game_stats"
    __table_args__ = (
        UniqueConstraint("external_id", "game_id", name="uq_user_game_stats_external_game"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    game_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True
    )
    swush_user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    team_name: Mapped[str | None] = mapped_column(String(255))
    score: Mapped[int] = mapped_column(Integer, default=0)
    rank: Mapped[int | None] = mapped_column(Integer)
    round_score: Mapped[int] = mapped_column(Integer, default=0)
    round_rank: Mapped[int | None] = mapped_column(Integer)
    round_jump: Mapped[int] = mapped_column(Integer, default=0)
    injured_count: Mapped[int] = mapped_column(Integer, default=0)
    suspended_count: Mapped[int] = mapped_column(Integer, default=0)
    lineup_element_ids: Mapped[list[int]] = mapped_column(ELEMENT_ID_LIST_SQL_TYPE, default=list)
    synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    game: Mapped["Game"] = relationship("Game", back_populates="user_stats")
