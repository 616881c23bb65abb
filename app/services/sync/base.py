"""
Base class and utilities for sync services.

Contains the shared pieces used by every stage of a game sync: the game
snapshot passed between stages, stage results, batching and the
dialect-aware upsert helper.
"""
import logging
from dataclasses import dataclass
from typing import Iterator, Sequence, TypeVar

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Game
from app.services.swush_client import SwushClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 100


# ==================== Stage plumbing ====================

@dataclass(frozen=True)
class SyncTarget:
    """
    Identifiers of the game being synced.

    Captured once before the first stage so later stages never touch an
    ORM instance that a commit or rollback has expired.
    """

    id: int
    game_key: str
    subsite_key: str
    name: str | None = None

    @classmethod
    def from_game(cls, game: "Game | SyncTarget") -> "SyncTarget":
        if isinstance(game, SyncTarget):
            return game
        return cls(
            id=game.id,
            game_key=game.game_key,
            subsite_key=game.subsite_key,
            name=game.name,
        )


@dataclass
class StageResult:
    success: bool
    count: int = 0
    error: str | None = None


class SyncStageError(Exception):
    """A stage failed; the remaining stages of this game's sync are skipped."""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        self.message = message
        super().__init__(message)


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of ``items`` of at most ``size`` elements."""
    if size <= 0:
        raise ValueError("batch size must be positive")
    for start in range(0, len(items), size):
        yield items[start:start + size]


# ==================== Base Sync Service ====================

class BaseSyncService:
    """
    Base class for all sync services.

    Provides common functionality:
    - Database session
    - SWUSH API client
    - Batch size for upserts
    - Dialect-aware INSERT ... ON CONFLICT
    """

    def __init__(
        self,
        db: AsyncSession,
        client: SwushClient,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        """
        Initialize the sync service.

        Args:
            db: SQLAlchemy async session
            client: SWUSH client (wired at startup, see build_swush_client)
            batch_size: Rows per upsert statement
        """
        self.db = db
        self.client = client
        self.batch_size = batch_size

    def _insert(self, model):
        """INSERT construct supporting ON CONFLICT for the session's dialect."""
        dialect = self.db.get_bind().dialect.name
        if dialect == "sqlite":
            return sqlite.insert(model)
        return postgresql.insert(model)
