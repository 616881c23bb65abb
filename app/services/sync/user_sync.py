"""
User sync service.

Mirrors per-user standings of a game into user_game_stats. Only users
carrying the partner's external id are stored.
"""
import logging
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from app.models import UserGameStat
from app.schemas.swush import SwushUser
from app.services.sync.base import BaseSyncService, StageResult, SyncTarget, chunked
from app.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

USER_UPDATE_FIELDS = (
    "swush_user_id",
    "team_name",
    "score",
    "rank",
    "round_score",
    "round_rank",
    "round_jump",
    "injured_count",
    "suspended_count",
    "lineup_element_ids",
    "synced_at",
    "updated_at",
)


def user_row(game_id: int, user: SwushUser) -> dict:
    # The first userteam is the user's primary team
    team = user.userteams[0] if user.userteams else None
    now = utcnow()
    return {
        "external_id": user.external_id,
        "game_id": game_id,
        "swush_user_id": user.id,
        "team_name": team.name if team and team.name is not None else user.name,
        "score": (team.score if team else None) or 0,
        "rank": team.rank if team else None,
        "round_score": (team.round_score if team else None) or 0,
        "round_rank": team.round_rank if team else None,
        "round_jump": (team.round_jump if team else None) or 0,
        "injured_count": user.injured or 0,
        "suspended_count": user.suspended or 0,
        "lineup_element_ids": list(team.lineup_element_ids) if team else [],
        "synced_at": now,
        "updated_at": now,
    }


class UserSyncService(BaseSyncService):
    """Service for syncing users (third stage of a game sync)."""

    async def sync_users(
        self,
        target: SyncTarget,
        on_progress: Callable[[int, int], None] | None = None,
        round: int | None = None,
    ) -> StageResult:
        """
        Fetch every users page and upsert in batches on (external_id, game_id).

        Users without an external id are skipped.
        """
        logger.info(f"Syncing users for {target.game_key}")

        response = await self.client.get_all_users(
            target.subsite_key, target.game_key, on_progress=on_progress, round=round
        )
        if not response.ok:
            return StageResult(success=False, error=response.error or "Failed to fetch users")

        users = response.data.users
        synced = 0
        skipped = 0

        for batch in chunked(users, self.batch_size):
            rows = [user_row(target.id, u) for u in batch if u.external_id]
            skipped += len(batch) - len(rows)
            if not rows:
                continue

            stmt = self._insert(UserGameStat).values(rows)
            stmt = stmt.on_conflict_do_update(
                index_elements=["external_id", "game_id"],
                set_={field: stmt.excluded[field] for field in USER_UPDATE_FIELDS},
            )
            try:
                async with self.db.begin_nested():
                    await self.db.execute(stmt)
            except SQLAlchemyError as e:
                logger.error(f"Failed to upsert users batch for {target.game_key}: {e}")
                continue
            synced += len(rows)

        await self.db.commit()
        if skipped:
            logger.info(f"Skipped {skipped} users without external id for {target.game_key}")
        logger.info(f"Synced {synced} users for {target.game_key}")
        return StageResult(success=True, count=synced)
