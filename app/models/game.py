import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from app.database import Base
from app.utils.timestamps import utcnow

MIN_SYNC_INTERVAL_MINUTES = 5
MAX_SYNC_INTERVAL_MINUTES = 1440


class SportType(str, enum.Enum):
    FOOTBALL = "FOOTBALL"
    HOCKEY = "HOCKEY"
    F1 = "F1"
    OTHER = "OTHER"


class Game(Base):
    """One SWUSH fantasy game mirrored locally."""

    __tablename__ = "games"
    __table_args__ = (
        CheckConstraint(
            f"sync_interval_minutes >= {MIN_SYNC_INTERVAL_MINUTES} "
            f"AND sync_interval_minutes <= {MAX_SYNC_INTERVAL_MINUTES}",
            name="ck_games_sync_interval_range",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    game_key: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sport_type: Mapped[SportType] = mapped_column(
        Enum(SportType), nullable=False, default=SportType.OTHER, server_default="OTHER"
    )
    subsite_key: Mapped[str] = mapped_column(
        String(100), nullable=False, default="aftonbladet", server_default="aftonbladet"
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true", index=True
    )

    # Round state (written by metadata sync)
    current_round: Mapped[int] = mapped_column(Integer, default=1, server_default="1")
    total_rounds: Mapped[int | None] = mapped_column(Integer)
    round_state: Mapped[str | None] = mapped_column(String(32))  # Pending, CurrentOpen, Ended, EndedLastest
    next_trade_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    current_round_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    current_round_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Sync bookkeeping
    sync_interval_minutes: Mapped[int] = mapped_column(
        Integer, nullable=False, default=60, server_default="60"
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    swush_game_id: Mapped[int | None] = mapped_column(Integer)
    game_url: Mapped[str | None] = mapped_column(Text)
    users_total: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    elements: Mapped[list["Element"]] = relationship(
        "Element", back_populates="game", cascade="all, delete-orphan", passive_deletes=True
    )
    user_stats: Mapped[list["UserGameStat"]] = relationship(
        "UserGameStat", back_populates="game", cascade="all, delete-orphan", passive_deletes=True
    )
    sync_logs: Mapped[list["SyncLog"]] = relationship(
        "SyncLog", back_populates="game", cascade="all, delete-orphan", passive_deletes=True
    )

    @validates("sync_interval_minutes")
    def validate_sync_interval(self, key: str, value: int) -> int:
        if value is None or not (MIN_SYNC_INTERVAL_MINUTES <= value <= MAX_SYNC_INTERVAL_MINUTES):
            raise ValueError(
                f"sync_interval_minutes must be between {MIN_SYNC_INTERVAL_MINUTES} "
                f"and {MAX_SYNC_INTERVAL_MINUTES}, got {value}"
            )
        return value
