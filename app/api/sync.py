import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db, get_swush_client
from app.config import get_settings
from app.models import Game, SyncType
from app.schemas.sync import (
    BudgetResponse,
    SyncLogResponse,
    SyncResponse,
    SyncResult,
    SyncScheduleResponse,
    SyncStatus,
)
from app.services.swush_client import SwushClient
from app.services.sync import build_sync_orchestrator
from app.services.sync_schedule import build_schedule_evaluator
from app.utils.timestamps import ensure_utc, minutes_between, utc_today, utcnow

logger = logging.getLogger(__name__)

settings = get_settings()

router = APIRouter(prefix="/sync", tags=["sync"])


def _run_response(result: SyncResult, label: str) -> SyncResponse:
    if not result.success:
        sync_status = SyncStatus.FAILED
    elif result.failed_games or result.games_skipped:
        sync_status = SyncStatus.PARTIAL
    else:
        sync_status = SyncStatus.SUCCESS

    message = f"{label}: {result.games_synced} games synced"
    if result.failed_games:
        message += f", {len(result.failed_games)} failed"
    if result.games_skipped:
        message += f", {result.games_skipped} skipped (API budget)"
    if result.error:
        message = f"{label} failed: {result.error}"

    return SyncResponse(status=sync_status, message=message, details=result.model_dump())


@router.post("/games/{game_id}", response_model=SyncResponse)
async def sync_game(
    game_id: int,
    db: AsyncSession = Depends(get_db),
    client: SwushClient = Depends(get_swush_client),
):
    """Trigger a manual sync for one game."""
    result = await db.execute(select(Game).where(Game.id == game_id))
    game = result.scalar_one_or_none()
    if not game:
        raise HTTPException(status_code=404, detail="Game not found")

    # Throttle manual syncs to avoid hammering SWUSH
    cooldown = settings.manual_sync_cooldown_minutes
    if game.last_synced_at:
        minutes_since_sync = minutes_between(ensure_utc(game.last_synced_at), utcnow())
        if minutes_since_sync < cooldown:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=(
                    f"Game was synced {round(minutes_since_sync)} minutes ago. "
                    f"Please wait at least {cooldown} minutes between syncs."
                ),
            )

    logger.info(f"Manual sync triggered for {game.game_key}")
    orchestrator = build_sync_orchestrator(db, client, settings)
    sync_result = await orchestrator.sync_game(game, SyncType.manual)

    if not sync_result.success:
        return SyncResponse(
            status=SyncStatus.FAILED,
            message=f"Sync failed: {sync_result.error}",
            details={"game_id": game_id, "error": sync_result.error},
        )

    return SyncResponse(
        status=SyncStatus.SUCCESS,
        message="Sync completed successfully",
        details={
            "game_id": game_id,
            "elements_synced": sync_result.elements_synced,
            "users_synced": sync_result.users_synced,
        },
    )


@router.post("/active", response_model=SyncResponse)
async def sync_active_games(
    db: AsyncSession = Depends(get_db),
    client: SwushClient = Depends(get_swush_client),
):
    """Sync every active game, one at a time."""
    orchestrator = build_sync_orchestrator(db, client, settings)
    result = await orchestrator.sync_all_active_games(SyncType.manual)
    return _run_response(result, "Active games sync")


@router.post("/due", response_model=SyncResponse)
async def sync_due_games(
    db: AsyncSession = Depends(get_db),
    client: SwushClient = Depends(get_swush_client),
):
    """Run the scheduled sync now: only games whose interval has elapsed."""
    orchestrator = build_sync_orchestrator(db, client, settings)
    result = await orchestrator.sync_due_games()
    return _run_response(result, "Due games sync")


@router.get("/schedule", response_model=SyncScheduleResponse)
async def get_sync_schedule(db: AsyncSession = Depends(get_db)):
    """Sync schedule of all games with timing, priority and critical periods."""
    result = await db.execute(select(Game).order_by(Game.name))
    games = list(result.scalars().all())
    now = utcnow()
    return SyncScheduleResponse(
        schedule=build_schedule_evaluator(settings).build_schedule(games, now),
        generated_at=now,
    )


@router.get("/budget", response_model=BudgetResponse)
async def get_budget(client: SwushClient = Depends(get_swush_client)):
    """Today's SWUSH request budget."""
    return BudgetResponse(
        date=utc_today().isoformat(),
        used=await client.budget.get_used(),
        remaining=await client.budget.get_remaining(),
        cap=client.budget.cap,
    )


@router.get("/logs", response_model=list[SyncLogResponse])
async def get_sync_logs(
    game_id: int | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """Most recent sync logs, newest first."""
    orchestrator = build_sync_orchestrator(db, None, settings)
    return await orchestrator.get_sync_logs(game_id=game_id, limit=limit)
