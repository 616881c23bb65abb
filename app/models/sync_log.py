import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.utils.timestamps import utcnow


class SyncType(str, enum.Enum):
    manual = "manual"
    scheduled = "scheduled"


class SyncLogStatus(str, enum.Enum):
    started = "started"
    completed = "completed"
    failed = "failed"


class SyncLog(Base):
    """Append-only record of one sync attempt for one game."""

    __tablename__ = "sync_logs"
    __table_args__ = (
        Index("ix_sync_logs_started_at", "started_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    game_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sync_type: Mapped[SyncType] = mapped_column(
        Enum(SyncType), nullable=False, default=SyncType.manual, server_default="manual"
    )
    status: Mapped[SyncLogStatus] = mapped_column(
        Enum(SyncLogStatus), nullable=False, default=SyncLogStatus.started, server_default="started"
    )
    users_synced: Mapped[int] = mapped_column(Integer, default=0)
    elements_synced: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    game: Mapped["Game"] = relationship("Game", back_populates="sync_logs")
