import logging

from sqlalchemy import select

from app.config import get_settings
from app.database import AsyncSessionLocal
from app.models import Game, SyncType
from app.services.swush_client import build_swush_client
from app.services.sync import SyncOrchestrator, build_sync_orchestrator
from app.tasks import celery_app
from app.utils.async_celery import run_async

logger = logging.getLogger(__name__)

settings = get_settings()


def _build_orchestrator(db) -> SyncOrchestrator:
    client = build_swush_client(settings, AsyncSessionLocal)
    return build_sync_orchestrator(db, client, settings)


async def _sync_due_games():
    """Sync the games whose interval has elapsed."""
    async with AsyncSessionLocal() as db:
        orchestrator = _build_orchestrator(db)
        result = await orchestrator.sync_due_games()
        return result.model_dump()


async def _sync_all_active_games(sync_type: SyncType):
    async with AsyncSessionLocal() as db:
        orchestrator = _build_orchestrator(db)
        result = await orchestrator.sync_all_active_games(sync_type)
        return result.model_dump()


async def _sync_game(game_id: int, sync_type: SyncType):
    async with AsyncSessionLocal() as db:
        result = await db.execute(select(Game).where(Game.id == game_id))
        game = result.scalar_one_or_none()
        if game is None:
            logger.warning(f"Game {game_id} not found, skipping sync")
            return {"success": False, "error": f"Game {game_id} not found"}

        orchestrator = _build_orchestrator(db)
        sync_result = await orchestrator.sync_game(game, sync_type)
        return sync_result.model_dump()


@celery_app.task(name="app.tasks.sync_tasks.sync_due_games")
def sync_due_games():
    """Celery task: scheduled sync of due games (beat)."""
    return run_async(_sync_due_games())


@celery_app.task(name="app.tasks.sync_tasks.sync_all_active_games")
def sync_all_active_games(sync_type: str = SyncType.scheduled.value):
    """Celery task: sync every active game."""
    return run_async(_sync_all_active_games(SyncType(sync_type)))


@celery_app.task(name="app.tasks.sync_tasks.sync_game")
def sync_game(game_id: int, sync_type: str = SyncType.manual.value):
    """Celery task: sync one game."""
    return run_async(_sync_game(game_id, SyncType(sync_type)))
