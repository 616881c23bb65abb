"""
Game metadata sync service.

Refreshes round state, deadlines and the user count of a game from SWUSH.
"""
import logging

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from app.models import Game
from app.schemas.swush import SwushRound
from app.services.sync.base import BaseSyncService, StageResult, SyncTarget
from app.utils.timestamps import ensure_utc, utcnow

logger = logging.getLogger(__name__)

CURRENT_ROUND_STATE = "CurrentOpen"


def find_current_round(rounds: list[SwushRound], current_round_index: int | None = None) -> SwushRound | None:
    """The open round, else the round SWUSH reports as current."""
    for r in rounds:
        if r.state == CURRENT_ROUND_STATE:
            return r
    if current_round_index is not None:
        for r in rounds:
            if r.index == current_round_index:
                return r
    return None


class GameSyncService(BaseSyncService):
    """Service for syncing game metadata (first stage of a game sync)."""

    def __init__(self, *args, game_base_url: str = "", **kwargs):
        super().__init__(*args, **kwargs)
        self.game_base_url = game_base_url.rstrip("/")

    async def sync_game_details(self, target: SyncTarget) -> StageResult:
        """
        Fetch game details and write them onto the game row.

        Returns:
            StageResult with count 1 on success
        """
        logger.info(f"Syncing game details for {target.game_key}")

        response = await self.client.get_game(target.subsite_key, target.game_key)
        if not response.ok:
            return StageResult(success=False, error=response.error or "Failed to fetch game")

        swush_game = response.data
        current = find_current_round(swush_game.rounds, swush_game.current_round_index)

        values = {
            "swush_game_id": swush_game.game_id,
            "current_round": swush_game.current_round_index,
            "total_rounds": len(swush_game.rounds),
            "round_state": current.state if current else None,
            "next_trade_deadline": ensure_utc(current.trade_closes) if current else None,
            "current_round_start": ensure_utc(current.start) if current else None,
            "current_round_end": ensure_utc(current.end) if current else None,
            "users_total": swush_game.userteams_count,
            "last_synced_at": utcnow(),
            "updated_at": utcnow(),
        }
        if self.game_base_url:
            values["game_url"] = f"{self.game_base_url}/{target.game_key}"

        try:
            await self.db.execute(update(Game).where(Game.id == target.id).values(**values))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to update game {target.game_key}: {e}")
            return StageResult(success=False, error=str(e))

        return StageResult(success=True, count=1)
