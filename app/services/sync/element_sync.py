"""
Element sync service.

Mirrors a game's roster (SWUSH "elements") into the elements table.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError

from app.models import Element
from app.schemas.swush import SwushElement
from app.services.sync.base import BaseSyncService, StageResult, SyncTarget, chunked
from app.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

ELEMENT_UPDATE_FIELDS = (
    "short_name",
    "full_name",
    "team_name",
    "image_url",
    "popularity",
    "trend",
    "growth",
    "total_growth",
    "value",
    "is_injured",
    "is_suspended",
    "updated_at",
)


def element_row(game_id: int, el: SwushElement) -> dict:
    return {
        "game_id": game_id,
        "element_id": el.element_id,
        "short_name": el.short_name or "",
        "full_name": el.full_name or "",
        "team_name": el.team_name or "",
        "image_url": el.image_url,
        "popularity": el.popularity or 0,
        "trend": el.trend or 0,
        "growth": el.growth or 0,
        "total_growth": el.total_growth or 0,
        "value": el.value or 0,
        "is_injured": bool(el.is_injured),
        "is_suspended": bool(el.is_suspended),
        "updated_at": utcnow(),
    }


class ElementSyncService(BaseSyncService):
    """Service for syncing elements (second stage of a game sync)."""

    async def sync_elements(self, target: SyncTarget, round: int | None = None) -> StageResult:
        """
        Fetch all elements and upsert them in batches on (game_id, element_id).

        A batch that fails to write is logged and skipped; only a failed
        fetch fails the stage.
        """
        logger.info(f"Syncing elements for {target.game_key}")

        response = await self.client.get_elements(target.subsite_key, target.game_key, round)
        if not response.ok:
            return StageResult(success=False, error=response.error or "Failed to fetch elements")

        elements = response.data
        synced = 0

        for batch in chunked(elements, self.batch_size):
            rows = [element_row(target.id, el) for el in batch]
            stmt = self._insert(Element).values(rows)
            stmt = stmt.on_conflict_do_update(
                index_elements=["game_id", "element_id"],
                set_={field: stmt.excluded[field] for field in ELEMENT_UPDATE_FIELDS},
            )
            try:
                async with self.db.begin_nested():
                    await self.db.execute(stmt)
            except SQLAlchemyError as e:
                logger.error(f"Failed to upsert elements batch for {target.game_key}: {e}")
                continue
            synced += len(rows)

        await self.db.commit()
        logger.info(f"Synced {synced} elements for {target.game_key}")
        return StageResult(success=True, count=synced)
