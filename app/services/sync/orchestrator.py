"""
Sync orchestrator service.

Runs the per-game sync state machine and the multi-game runs built on it.
Stages run strictly in order and each one gates the next:

1. Game metadata (rounds, deadline, user count)
2. Elements (roster)
3. Users (paginated)
"""
import logging
from datetime import datetime
from typing import Callable

from sqlalchemy import insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.models import Game, SyncLog, SyncLogStatus, SyncType
from app.schemas.sync import FailedGame, SyncResult
from app.services.swush_client import SwushClient
from app.services.sync.base import DEFAULT_BATCH_SIZE, SyncStageError, SyncTarget
from app.services.sync.element_sync import ElementSyncService
from app.services.sync.game_sync import GameSyncService
from app.services.sync.user_sync import UserSyncService
from app.services.sync_schedule import (
    ENDED_ROUND_STATES,
    SyncScheduleEvaluator,
    build_schedule_evaluator,
)
from app.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


def is_game_season_ended(game: Game) -> bool:
    """All rounds played: total known, current round at the end, round finished."""
    if not game.total_rounds or game.total_rounds <= 0:
        return False
    if (game.current_round or 0) < game.total_rounds:
        return False
    return (game.round_state or "") in ENDED_ROUND_STATES


class SyncOrchestrator:
    """
    Orchestrates SWUSH syncs for games.

    Games are always synced one at a time: every game draws on the same
    daily request budget, so parallel syncs would race for it.
    """

    def __init__(
        self,
        db: AsyncSession,
        client: SwushClient,
        batch_size: int = DEFAULT_BATCH_SIZE,
        min_budget_per_game: int = 3,
        game_base_url: str = "",
        evaluator: SyncScheduleEvaluator | None = None,
    ):
        """
        Args:
            db: SQLAlchemy async session
            client: SWUSH client
            batch_size: Rows per upsert batch
            min_budget_per_game: Scheduled runs start no new game below this remaining budget
            game_base_url: Prefix for the public game URL stored on games
            evaluator: Due/priority evaluator (defaults to standard windows)
        """
        self.db = db
        self.client = client
        self.min_budget_per_game = min_budget_per_game
        self.evaluator = evaluator or SyncScheduleEvaluator()

        self.game = GameSyncService(db, client, batch_size, game_base_url=game_base_url)
        self.elements = ElementSyncService(db, client, batch_size)
        self.users = UserSyncService(db, client, batch_size)

    # ==================== Sync log ====================

    async def _create_sync_log(self, target: SyncTarget, sync_type: SyncType) -> int | None:
        try:
            result = await self.db.execute(
                insert(SyncLog)
                .values(
                    game_id=target.id,
                    sync_type=sync_type,
                    status=SyncLogStatus.started,
                    users_synced=0,
                    elements_synced=0,
                    started_at=utcnow(),
                )
                .returning(SyncLog.id)
            )
            log_id = result.scalar_one()
            await self.db.commit()
            return log_id
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to create sync log for {target.game_key}: {e}")
            return None

    async def _finish_sync_log(self, log_id: int | None, **values) -> None:
        if log_id is None:
            return
        try:
            await self.db.execute(
                update(SyncLog)
                .where(SyncLog.id == log_id)
                .values(completed_at=utcnow(), **values)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to update sync log {log_id}: {e}")

    async def get_sync_logs(self, game_id: int | None = None, limit: int = 50) -> list[SyncLog]:
        query = select(SyncLog).order_by(SyncLog.started_at.desc(), SyncLog.id.desc()).limit(limit)
        if game_id is not None:
            query = query.where(SyncLog.game_id == game_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ==================== Single game ====================

    async def sync_game(
        self,
        game: Game | SyncTarget,
        sync_type: SyncType = SyncType.manual,
        round: int | None = None,
        on_progress: Callable[[int, int], None] | None = None,
    ) -> SyncResult:
        """
        Full sync of one game: metadata, then elements, then users.

        Any stage failure aborts the remaining stages and marks the sync
        log failed with that stage's error message.
        """
        target = SyncTarget.from_game(game)
        logger.info(f"Starting {sync_type.value} sync for {target.game_key}")

        log_id = await self._create_sync_log(target, sync_type)

        try:
            details = await self.game.sync_game_details(target)
            if not details.success:
                raise SyncStageError("metadata", details.error or "Failed to sync game details")

            elements = await self.elements.sync_elements(target, round)
            if not elements.success:
                raise SyncStageError("elements", elements.error or "Failed to sync elements")

            users = await self.users.sync_users(target, on_progress=on_progress, round=round)
            if not users.success:
                raise SyncStageError("users", users.error or "Failed to sync users")
        except SyncStageError as e:
            logger.error(f"Sync failed for {target.game_key} at {e.stage} stage: {e.message}")
            await self.db.rollback()
            await self._finish_sync_log(log_id, status=SyncLogStatus.failed, error_message=e.message)
            return SyncResult(success=False, error=e.message)
        except Exception as e:
            logger.exception(f"Unexpected error syncing {target.game_key}")
            await self.db.rollback()
            message = str(e) or e.__class__.__name__
            await self._finish_sync_log(log_id, status=SyncLogStatus.failed, error_message=message)
            return SyncResult(success=False, error=message)

        await self._finish_sync_log(
            log_id,
            status=SyncLogStatus.completed,
            elements_synced=elements.count,
            users_synced=users.count,
        )
        logger.info(
            f"Completed sync for {target.game_key}: "
            f"{elements.count} elements, {users.count} users"
        )
        return SyncResult(
            success=True,
            games_synced=1,
            elements_synced=elements.count,
            users_synced=users.count,
        )

    # ==================== Multi-game runs ====================

    async def get_active_games(self) -> list[Game]:
        result = await self.db.execute(
            select(Game).where(Game.is_active.is_(True)).order_by(Game.id)
        )
        return list(result.scalars().all())

    async def get_games_due_for_sync(self, now: datetime | None = None) -> list[Game]:
        games = await self.get_active_games()
        return self.evaluator.due_games(games, now or utcnow())

    async def _sync_sequentially(
        self,
        targets: list[SyncTarget],
        sync_type: SyncType,
        check_budget: bool,
    ) -> SyncResult:
        result = SyncResult(success=True, games_checked=len(targets))

        for index, target in enumerate(targets):
            if check_budget:
                remaining = await self.client.get_remaining_budget()
                if remaining < self.min_budget_per_game:
                    result.games_skipped = len(targets) - index
                    logger.warning(
                        f"Only {remaining} SWUSH requests left today, "
                        f"skipping {result.games_skipped} remaining games"
                    )
                    break

            game_result = await self.sync_game(target, sync_type)
            if game_result.success:
                result.games_synced += 1
                result.elements_synced += game_result.elements_synced
                result.users_synced += game_result.users_synced
            else:
                result.failed_games.append(
                    FailedGame(game_key=target.game_key, error=game_result.error or "Unknown")
                )

        return result

    async def sync_all_active_games(self, sync_type: SyncType = SyncType.scheduled) -> SyncResult:
        """Sync every active game, one after another."""
        logger.info("Starting sync for all active games")
        try:
            games = await self.get_active_games()
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch active games: {e}")
            return SyncResult(success=False, error=str(e))

        if not games:
            logger.info("No active games to sync")
            return SyncResult(success=True)

        targets = [SyncTarget.from_game(g) for g in games]
        result = await self._sync_sequentially(targets, sync_type, check_budget=False)
        logger.info(
            f"Completed sync for all games: {result.games_synced}/{len(targets)} synced, "
            f"{len(result.failed_games)} failed"
        )
        return result

    async def sync_due_games(self, now: datetime | None = None) -> SyncResult:
        """
        Scheduled run: sync the games whose interval has elapsed.

        Stops starting new games once the remaining daily budget drops below
        ``min_budget_per_game``.
        """
        try:
            games = await self.get_games_due_for_sync(now)
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch games for sync check: {e}")
            return SyncResult(success=False, error=str(e))

        if not games:
            logger.info("No games due for sync")
            return SyncResult(success=True)

        logger.info(f"Found {len(games)} games due for sync: {[g.game_key for g in games]}")
        targets = [SyncTarget.from_game(g) for g in games]
        result = await self._sync_sequentially(targets, SyncType.scheduled, check_budget=True)

        if result.failed_games:
            logger.warning(
                f"Scheduled sync completed with {len(result.failed_games)} failures: "
                f"{[f.game_key for f in result.failed_games]}"
            )
        else:
            logger.info(f"Scheduled sync completed: {result.games_synced} games synced")
        return result


def build_sync_orchestrator(
    db: AsyncSession,
    client: SwushClient | None,
    settings: Settings,
) -> SyncOrchestrator:
    """
    Orchestrator wired from settings, shared by the API routes and Celery tasks.

    ``client`` may be None for callers that only read sync logs or due games.
    """
    return SyncOrchestrator(
        db,
        client,
        batch_size=settings.sync_batch_size,
        min_budget_per_game=settings.sync_min_budget_per_game,
        game_base_url=settings.game_base_url,
        evaluator=build_schedule_evaluator(settings),
    )
